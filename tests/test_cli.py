import argparse
import csv
import json

import pytest

from conftest import make_png
from imgopt.cli import _parse_format_option, _parse_value, build_parser, main, settings_from_args


@pytest.mark.parametrize("text, expected", [
    ("true", True),
    ("False", False),
    ("82", 82),
    ("0.5", 0.5),
    ("tiff_lzw", "tiff_lzw"),
])
def test_parse_value(text, expected):
    assert _parse_value(text) == expected


def test_parse_format_option():
    assert _parse_format_option("JPEG.quality=82") == ("jpeg", "quality", 82)


@pytest.mark.parametrize("bad", ["quality=82", "jpeg.quality", "bmp.quality=1", "jpeg.=1"])
def test_parse_format_option_rejects(bad):
    with pytest.raises(argparse.ArgumentTypeError):
        _parse_format_option(bad)


def test_settings_from_args():
    args = build_parser().parse_args([
        "bundle", "dist",
        "--exclude", "a.png", "--exclude", "b.png",
        "--cache-dir", ".cache", "--cache-key", "content",
        "--set", "jpeg.quality=70", "--set", "png.compress_level=9",
    ])
    overrides = settings_from_args(args)

    assert overrides["exclude"] == ["a.png", "b.png"]
    assert overrides["include"] is None
    assert overrides["cache"] is True and overrides["cache_key"] == "content"
    assert overrides["jpeg"] == {"quality": 70}
    assert overrides["png"] == {"compress_level": 9}


def test_bundle_command_rewrites_smaller_images(tmp_path):
    dist = tmp_path / "dist"
    (dist / "assets").mkdir(parents=True)
    png = make_png()
    (dist / "assets" / "a.png").write_bytes(png)
    (dist / "app.js").write_bytes(b"console.log(1)")
    report = tmp_path / "report.json"
    report_csv = tmp_path / "report.csv"

    code = main(["bundle", str(dist), "--report", str(report), "--report-csv", str(report_csv)])

    assert code == 0
    assert len((dist / "assets" / "a.png").read_bytes()) < len(png)
    assert (dist / "app.js").read_bytes() == b"console.log(1)"
    assert json.loads(report.read_text(encoding="utf-8"))["summary"]["written"] == 1
    with report_csv.open(encoding="utf-8", newline="") as f:
        assert [row["path"] for row in csv.DictReader(f)] == ["assets/a.png"]


def test_public_command(tmp_path):
    public = tmp_path / "public"
    out = tmp_path / "dist"
    public.mkdir()
    out.mkdir()
    png = make_png()
    (public / "a.png").write_bytes(png)
    (out / "a.png").write_bytes(png)
    guard = tmp_path / "guard.json"

    code = main(["public", str(public), "--out", str(out), "--guard-file", str(guard)])

    assert code == 0
    assert len((out / "a.png").read_bytes()) < len(png)
    assert "a.png" in json.loads(guard.read_text(encoding="utf-8"))


def test_failures_do_not_change_exit_status(tmp_path):
    dist = tmp_path / "dist"
    dist.mkdir()
    (dist / "broken.png").write_bytes(b"nope")
    assert main(["bundle", str(dist)]) == 0


def test_conflicting_matchers_exit_2(tmp_path, capsys):
    code = main(["bundle", str(tmp_path), "--include", "a.png", "--include-regex", "a"])
    assert code == 2
    assert "--include" in capsys.readouterr().err


def test_missing_directory_exit_2(tmp_path):
    assert main(["bundle", str(tmp_path / "missing")]) == 2


@pytest.mark.parametrize("flags", [
    ["--test", "("],
    ["--include-regex", "[a-"],
    ["--exclude-regex", "*.png"],
])
def test_invalid_regex_exit_2(tmp_path, capsys, flags):
    code = main(["bundle", str(tmp_path)] + flags)
    assert code == 2
    assert "invalid pattern" in capsys.readouterr().err


def test_unknown_svg_option_exit_2(tmp_path, capsys):
    assert main(["bundle", str(tmp_path), "--set", "svg.strip_idz=true"]) == 2
    assert "strip_idz" in capsys.readouterr().err
