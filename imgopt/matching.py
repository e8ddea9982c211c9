from __future__ import annotations

import re
from typing import TYPE_CHECKING, AbstractSet, Callable, Iterable, List, Optional, Sequence, TypeVar, Union

from .errors import SelectionError

if TYPE_CHECKING:
    from .settings import OptimizeSettings


# None, an exact name, a compiled pattern, or a collection of exact names.
MatcherSpec = Optional[Union[str, "re.Pattern[str]", Sequence[str], AbstractSet[str]]]

T = TypeVar("T")

_COLLECTIONS = (list, tuple, set, frozenset)


def validate_matcher(spec: MatcherSpec, field_name: str = "matcher") -> None:
    """Raise SelectionError unless spec is one of the supported shapes."""
    if spec is None or isinstance(spec, (str, re.Pattern)):
        return
    if isinstance(spec, _COLLECTIONS):
        bad = [item for item in spec if not isinstance(item, str)]
        if bad:
            raise SelectionError(f"{field_name} may only list file names, got {bad[0]!r}")
        return
    raise SelectionError(
        f"{field_name} must be a file name, a compiled pattern or a list of names, "
        f"got {type(spec).__name__}"
    )


def compile_pattern(text: str, field_name: str, flags: int = 0) -> "re.Pattern[str]":
    try:
        return re.compile(text, flags)
    except re.error as exc:
        raise SelectionError(f"{field_name}: invalid pattern: {exc}") from exc


def matches(name: str, spec: MatcherSpec) -> bool:
    if spec is None:
        return False
    if isinstance(spec, str):
        return name == spec
    if isinstance(spec, re.Pattern):
        return spec.search(name) is not None
    if isinstance(spec, _COLLECTIONS):
        return name in spec
    return False


def select_files(
    all_files: Iterable[T],
    name_of: Callable[[T], str],
    settings: "OptimizeSettings",
) -> List[T]:
    """
    Pick the files a pass should optimize.

    When include is set it is the whole rule: test and exclude are not
    consulted at all. Otherwise a file must match test (against its full
    path) and must not match exclude (against its name).
    """
    if settings.include is not None:
        return [f for f in all_files if matches(name_of(f), settings.include)]

    selected: List[T] = []
    for f in all_files:
        if not settings.test.search(str(f)):
            continue
        if matches(name_of(f), settings.exclude):
            continue
        selected.append(f)
    return selected
