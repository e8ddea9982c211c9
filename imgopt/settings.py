from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field, fields, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, FrozenSet, Literal, Mapping, Optional

from scour import scour

from .errors import SettingsError
from .matching import MatcherSpec, compile_pattern, validate_matcher


CacheKey = Literal["path", "content"]

DEFAULT_TEST = re.compile(r"\.(jpe?g|png|gif|tiff|webp|svg|avif)$", re.IGNORECASE)

# scour options; "multipass" is ours and is stripped before scour sees them.
DEFAULT_SVG: Dict[str, Any] = {
    "multipass": True,
    "digits": 10,  # keeps numeric values as written
    "enable_viewboxing": False,  # leaves an existing viewBox alone
    "strip_ids": False,
    "shorten_ids": False,
    "strip_comments": True,
    "remove_metadata": True,
    "remove_descriptions": True,
    "quiet": True,
}

# Pillow Image.save() keyword arguments, keyed by file extension.
DEFAULT_FORMATS: Dict[str, Dict[str, Any]] = {
    "png": {"optimize": True},
    "jpeg": {"quality": 100, "optimize": True},
    "jpg": {"quality": 100, "optimize": True},
    "tiff": {"compression": "tiff_adobe_deflate"},
    # GIF has no lossless knob; frames are re-encoded as-is.
    "gif": {"optimize": True},
    "webp": {"lossless": True},
    "avif": {"quality": 100, "subsampling": "4:4:4"},
}

FORMAT_KEYS = ("svg",) + tuple(DEFAULT_FORMATS)


@lru_cache(maxsize=None)
def svg_option_names() -> FrozenSet[str]:
    # scour silently drops keys it does not know, so check them here.
    return frozenset(vars(scour.sanitizeOptions())) | {"multipass"}


def _default_block(name: str):
    source = DEFAULT_SVG if name == "svg" else DEFAULT_FORMATS[name]
    return field(default_factory=lambda: copy.deepcopy(source))


@dataclass(frozen=True)
class OptimizeSettings:
    """
    Every knob the optimizer reads.

    Build it through resolve_settings() when starting from user input, so
    per-format blocks are merged over the defaults instead of replacing them.
    """

    # ----- Selection -----
    test: "re.Pattern[str]" = DEFAULT_TEST
    include: MatcherSpec = None
    exclude: MatcherSpec = None
    include_public: bool = True

    # ----- Reporting -----
    log_stats: bool = True
    report_file: Optional[Path] = None

    # ----- Cache -----
    cache: bool = False
    cache_location: Optional[Path] = None
    cache_key: CacheKey = "path"

    # ----- Scheduling -----
    # None means every selected file of a pass runs at once.
    max_concurrency: Optional[int] = None

    # ----- Static pass -----
    # None keeps the mtime guard in memory only.
    mtime_guard_file: Optional[Path] = None

    # ----- Per-format codec options -----
    svg: Dict[str, Any] = _default_block("svg")
    png: Dict[str, Any] = _default_block("png")
    jpeg: Dict[str, Any] = _default_block("jpeg")
    jpg: Dict[str, Any] = _default_block("jpg")
    tiff: Dict[str, Any] = _default_block("tiff")
    gif: Dict[str, Any] = _default_block("gif")
    webp: Dict[str, Any] = _default_block("webp")
    avif: Dict[str, Any] = _default_block("avif")

    def __post_init__(self) -> None:
        if not isinstance(self.test, re.Pattern):
            raise SettingsError("test must be a compiled regular expression")
        validate_matcher(self.include, "include")
        validate_matcher(self.exclude, "exclude")

        if self.cache and self.cache_location is None:
            raise SettingsError("cache is enabled but cache_location is not set")
        if self.cache_key not in ("path", "content"):
            raise SettingsError(f"cache_key must be 'path' or 'content', got {self.cache_key!r}")
        if self.max_concurrency is not None:
            if not isinstance(self.max_concurrency, int) or isinstance(self.max_concurrency, bool):
                raise SettingsError(f"max_concurrency must be an integer, got {self.max_concurrency!r}")
            if self.max_concurrency < 1:
                raise SettingsError("max_concurrency must be at least 1")

        for name in FORMAT_KEYS:
            if not isinstance(getattr(self, name), dict):
                raise SettingsError(f"options for {name!r} must be a mapping")

        unknown_svg = sorted(set(self.svg) - svg_option_names())
        if unknown_svg:
            raise SettingsError(f"unknown svg option(s): {', '.join(unknown_svg)}")

    def format_options(self, ext: str) -> Optional[Dict[str, Any]]:
        """Options block for an extension (without the dot), or None."""
        ext = ext.lower()
        if ext not in FORMAT_KEYS:
            return None
        return getattr(self, ext)


def resolve_settings(overrides: Optional[Mapping[str, Any]] = None) -> OptimizeSettings:
    """
    Merge user options over the defaults.

    Scalar keys replace the default. Per-format blocks merge key by key, the
    user value winning. Unknown keys are rejected.
    """
    base = OptimizeSettings()
    if not overrides:
        return base

    known = {f.name for f in fields(OptimizeSettings)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise SettingsError(f"unknown option(s): {', '.join(unknown)}")

    values: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key in FORMAT_KEYS:
            if not isinstance(value, Mapping):
                raise SettingsError(f"options for {key!r} must be a mapping")
            merged = dict(getattr(base, key))
            merged.update(value)
            values[key] = merged
        elif key == "test" and isinstance(value, str):
            values[key] = compile_pattern(value, "test", re.IGNORECASE)
        elif key in ("cache_location", "mtime_guard_file", "report_file") and value is not None:
            values[key] = Path(value)
        else:
            values[key] = value

    return replace(base, **values)
