from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Dict, Optional

import aiofiles
import aiofiles.os


logger = logging.getLogger(__name__)


class MtimeGuard:
    """
    Remembers when each static asset was last rewritten by the optimizer.

    An output file whose mtime is not newer than its recorded time has not
    been touched since we wrote it and is left alone. Without a path the
    guard only lives as long as this object.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self._entries: Dict[str, float] = {}
        if self.path is not None:
            self._entries = self._read(self.path)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> float:
        return self._entries.get(key, 0.0)

    def is_fresh(self, key: str, mtime: float) -> bool:
        return mtime <= self.get(key)

    def touch(self, key: str, when: Optional[float] = None) -> None:
        self._entries[key] = time.time() if when is None else float(when)

    async def save(self) -> None:
        if self.path is None:
            return
        await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
        async with aiofiles.open(self.path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(self._entries, indent=2, sort_keys=True))

    @staticmethod
    def _read(path: Path) -> Dict[str, float]:
        try:
            with path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            # A damaged guard only costs one extra optimization per file.
            logger.warning("ignoring unreadable mtime guard %s: %s", path, exc)
            return {}

        if not isinstance(raw, dict):
            logger.warning("ignoring mtime guard %s: not a JSON object", path)
            return {}
        return {str(k): float(v) for k, v in raw.items() if isinstance(v, (int, float))}
