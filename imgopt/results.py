from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional


def size_ratio(new_size: int, old_size: int) -> int:
    """
    Percent change from old_size to new_size, rounded down.

    Integer arithmetic keeps 50 -> 60 at +20 where floats would give +19.
    """
    if old_size <= 0:
        return 0
    return (100 * (new_size - old_size)) // old_size


@dataclass(frozen=True)
class SizeStat:
    """
    Outcome of optimizing one file, in bytes.

    skip_write means the optimized bytes were not smaller and the original
    was kept.
    """
    size: int
    old_size: int
    ratio: int
    skip_write: bool
    is_cached: bool

    @property
    def saved_bytes(self) -> int:
        return max(0, self.old_size - self.size)

    @property
    def status(self) -> str:
        if self.skip_write:
            return "skipped"
        if self.is_cached:
            return "cached"
        return "written"


@dataclass(frozen=True)
class ProcessOutcome:
    content: Optional[bytes] = None
    skip_write: bool = False

    @property
    def should_write(self) -> bool:
        return bool(self.content) and not self.skip_write


@dataclass
class BuildResults:
    """
    Per-build stats and errors, keyed by logical path.

    Written by many in-flight tasks on one event loop thread; read once after
    every pass has been joined.
    """
    stats: Dict[str, SizeStat] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def add_stat(self, path: str, stat: SizeStat) -> None:
        self.stats[path] = stat

    def add_error(self, path: str, message: str) -> None:
        self.errors[path] = message

    def clear(self) -> None:
        self.stats.clear()
        self.errors.clear()

    @property
    def total_old_bytes(self) -> int:
        return sum(s.old_size for s in self.stats.values() if not s.skip_write)

    @property
    def total_saved_bytes(self) -> int:
        return sum(s.old_size - s.size for s in self.stats.values() if not s.skip_write)

    @property
    def saved_percent(self) -> float:
        total = self.total_old_bytes
        if total <= 0:
            return 0.0
        return (self.total_saved_bytes / total) * 100.0
