from __future__ import annotations

import hashlib
import logging
from pathlib import Path, PurePosixPath
from typing import Optional

import aiofiles
import aiofiles.os

from .settings import CacheKey


logger = logging.getLogger(__name__)

# Length of the content digest appended to entry names in "content" mode.
DIGEST_CHARS = 16


class CacheStore:
    """
    On-disk cache of optimized bytes, mirroring logical paths below root.

    In "path" mode an entry is found by location alone, so an edited source
    that keeps its path reuses the stale entry. "content" mode adds a digest
    of the input to the entry name.
    """

    def __init__(self, root: Path, key: CacheKey = "path"):
        self.root = Path(root)
        self.key = key

    def entry_path(self, path: str, data: bytes) -> Path:
        # Drop anchors and parent references so an entry never lands outside root.
        parts = [p for p in PurePosixPath(path.replace("\\", "/")).parts if p not in ("/", "..", ".")]
        if not parts:
            raise ValueError(f"cannot derive a cache entry from {path!r}")

        entry = self.root.joinpath(*parts)
        if self.key == "content":
            digest = hashlib.sha256(data).hexdigest()[:DIGEST_CHARS]
            entry = entry.with_name(f"{entry.stem}.{digest}{entry.suffix}")
        return entry

    async def ensure_root(self) -> None:
        await aiofiles.os.makedirs(self.root, exist_ok=True)

    async def lookup(self, path: str, data: bytes) -> Optional[bytes]:
        entry = self.entry_path(path, data)
        if not await aiofiles.os.path.isfile(entry):
            return None

        async with aiofiles.open(entry, "rb") as f:
            cached = await f.read()
        logger.debug("cache hit: %s", entry)
        return cached

    async def store(self, path: str, data: bytes, optimized: bytes) -> None:
        entry = self.entry_path(path, data)
        # Another process may create the same directory concurrently.
        await aiofiles.os.makedirs(entry.parent, exist_ok=True)

        async with aiofiles.open(entry, "wb") as f:
            await f.write(optimized)
        logger.debug("cache store: %s (%d bytes)", entry, len(optimized))
