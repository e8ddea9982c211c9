import re
from pathlib import Path

import pytest

from imgopt.errors import SelectionError, SettingsError
from imgopt.settings import DEFAULT_FORMATS, DEFAULT_TEST, OptimizeSettings, resolve_settings


def test_defaults():
    s = resolve_settings()
    assert s.test is DEFAULT_TEST
    assert s.include is None and s.exclude is None
    assert s.include_public is True
    assert s.cache is False
    assert s.webp == {"lossless": True}
    assert s.svg["multipass"] is True


def test_default_blocks_are_not_shared():
    a = OptimizeSettings()
    b = OptimizeSettings()
    a.png["optimize"] = False
    assert b.png == DEFAULT_FORMATS["png"]


def test_format_blocks_merge_key_by_key():
    s = resolve_settings({"jpeg": {"quality": 70, "progressive": True}})
    assert s.jpeg == {"quality": 70, "optimize": True, "progressive": True}
    # other blocks untouched
    assert s.png == DEFAULT_FORMATS["png"]


def test_scalar_keys_replace():
    s = resolve_settings({"include_public": False, "cache": True, "cache_location": "/tmp/c"})
    assert s.include_public is False
    assert s.cache_location == Path("/tmp/c")


def test_string_test_is_compiled_case_insensitively():
    s = resolve_settings({"test": r"\.png$"})
    assert s.test.search("A.PNG")


def test_unknown_key_rejected():
    with pytest.raises(SettingsError, match="qualty"):
        resolve_settings({"qualty": 3})


def test_cache_requires_location():
    with pytest.raises(SettingsError):
        resolve_settings({"cache": True})


@pytest.mark.parametrize("overrides", [
    {"cache_key": "hash"},
    {"max_concurrency": 0},
    {"max_concurrency": "many"},
    {"max_concurrency": True},
    {"max_concurrency": 2.5},
    {"png": "fast"},
    {"test": 5},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(SettingsError):
        resolve_settings(overrides)


def test_format_options_lookup():
    s = OptimizeSettings()
    assert s.format_options("JPG") == s.jpg
    assert s.format_options("bmp") is None


def test_compiled_test_kept_as_is():
    pattern = re.compile(r"\.gif$")
    assert resolve_settings({"test": pattern}).test is pattern


def test_bad_test_regex_is_a_selection_error():
    with pytest.raises(SelectionError, match="test: invalid pattern"):
        resolve_settings({"test": "("})


def test_max_concurrency_accepts_positive_int():
    assert resolve_settings({"max_concurrency": 3}).max_concurrency == 3


def test_unknown_svg_option_rejected():
    with pytest.raises(SettingsError, match="strip_idz"):
        resolve_settings({"svg": {"strip_idz": True}})


def test_known_svg_option_merged():
    s = resolve_settings({"svg": {"strip_ids": True}})
    assert s.svg["strip_ids"] is True
    assert s.svg["multipass"] is True
