from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .batch import BundleAsset, iter_files
from .errors import SettingsError
from .matching import compile_pattern
from .plugin import ImageOptimizerPlugin
from .report import BuildReport, save_report_csv
from .settings import FORMAT_KEYS, resolve_settings


def _parse_value(text: str) -> Any:
    """
    Accept:
      - "true" / "false"
      - integers ("80") and floats ("0.5")
      - anything else as a plain string
    """
    t = text.strip()
    if t.lower() in ("true", "false"):
        return t.lower() == "true"
    for cast in (int, float):
        try:
            return cast(t)
        except ValueError:
            pass
    return t


def _parse_format_option(text: str) -> tuple[str, str, Any]:
    # "png.compress_level=9" -> ("png", "compress_level", 9)
    key, sep, value = text.partition("=")
    fmt, dot, option = key.partition(".")
    if not sep or not dot or not option:
        raise argparse.ArgumentTypeError(f"expected FORMAT.KEY=VALUE, got {text!r}")
    fmt = fmt.lower()
    if fmt not in FORMAT_KEYS:
        raise argparse.ArgumentTypeError(f"unknown format {fmt!r} (choose from {', '.join(FORMAT_KEYS)})")
    return fmt, option, _parse_value(value)


def _add_common_options(p: argparse.ArgumentParser) -> None:
    # Selection
    p.add_argument("--test", default=None, help="Regex tested against each path (default: common image extensions)")
    p.add_argument("--include", action="append", default=None, metavar="NAME",
                   help="Only optimize files with this name; overrides --test/--exclude (repeatable)")
    p.add_argument("--include-regex", default=None, metavar="REGEX", help="Like --include, as a regex")
    p.add_argument("--exclude", action="append", default=None, metavar="NAME",
                   help="Never optimize files with this name (repeatable)")
    p.add_argument("--exclude-regex", default=None, metavar="REGEX", help="Like --exclude, as a regex")

    # Cache
    p.add_argument("--cache-dir", default=None, help="Enable the cache and keep it in this directory")
    p.add_argument("--cache-key", choices=("path", "content"), default="path",
                   help="Key cache entries by path (default) or by path and content digest")

    # Codec knobs
    p.add_argument("--set", dest="format_options", action="append", default=[], metavar="FORMAT.KEY=VALUE",
                   type=_parse_format_option, help="Codec option, e.g. jpeg.quality=82 (repeatable)")

    # Scheduling / reporting
    p.add_argument("--max-concurrency", type=int, default=None, help="Optimize at most N files at once")
    p.add_argument("--report", default=None, help="Write a JSON report here")
    p.add_argument("--report-csv", default=None, help="Write a CSV report here")
    p.add_argument("--no-stats", action="store_true", help="Do not print per-file savings")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="imgopt",
        description="Optimize the images of a build output",
    )
    sub = p.add_subparsers(dest="command", required=True)

    bundle = sub.add_parser("bundle", help="Optimize every image in a build directory in place")
    bundle.add_argument("directory", help="Build output directory")
    _add_common_options(bundle)

    public = sub.add_parser("public", help="Sync static public assets into a build directory, optimizing images")
    public.add_argument("public_dir", help="Directory of static assets")
    public.add_argument("--out", required=True, help="Build output directory holding copies of the assets")
    public.add_argument("--guard-file", default=None,
                        help="Persist modification-time bookkeeping here between runs")
    _add_common_options(public)

    return p


def _matcher(names: Optional[list], regex: Optional[str], flag: str) -> Any:
    if names and regex:
        raise SettingsError(f"use either --{flag} or --{flag}-regex, not both")
    if regex:
        return compile_pattern(regex, f"--{flag}-regex")
    if names:
        return list(names)
    return None


def settings_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {
        "include": _matcher(args.include, args.include_regex, "include"),
        "exclude": _matcher(args.exclude, args.exclude_regex, "exclude"),
        "log_stats": not args.no_stats,
        "report_file": args.report,
        "max_concurrency": args.max_concurrency,
    }
    if args.test:
        overrides["test"] = args.test
    if args.cache_dir:
        overrides.update(cache=True, cache_location=args.cache_dir, cache_key=args.cache_key)
    if getattr(args, "guard_file", None):
        overrides["mtime_guard_file"] = args.guard_file

    blocks: Dict[str, Dict[str, Any]] = {}
    for fmt, option, value in args.format_options:
        blocks.setdefault(fmt, {})[option] = value
    overrides.update(blocks)
    return overrides


async def _run_bundle(plugin: ImageOptimizerPlugin, directory: Path) -> BuildReport:
    bundle = {}
    for f in iter_files(directory):
        rel = f.relative_to(directory).as_posix()
        bundle[rel] = BundleAsset(file_name=rel, name=f.name, source=f.read_bytes())
    originals = {key: asset.source for key, asset in bundle.items()}

    plugin.config_resolved(directory.parent, directory.name)
    await plugin.generate_bundle(bundle)

    # Emulate the host writing the bundle to disk.
    for key, asset in bundle.items():
        if asset.source is not originals[key]:
            (directory / key).write_bytes(asset.source)

    return await plugin.close_bundle()


async def _run_public(plugin: ImageOptimizerPlugin, public_dir: Path, out_dir: Path) -> BuildReport:
    plugin.config_resolved(Path.cwd(), out_dir, public_dir)
    return await plugin.close_bundle()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    try:
        plugin = ImageOptimizerPlugin(resolve_settings(settings_from_args(args)))
    except SettingsError as exc:
        print(f"imgopt: {exc}", file=sys.stderr)
        return 2

    if args.command == "bundle":
        directory = Path(args.directory).resolve()
        if not directory.is_dir():
            print(f"imgopt: not a directory: {directory}", file=sys.stderr)
            return 2
        report = asyncio.run(_run_bundle(plugin, directory))

    elif args.command == "public":
        public_dir = Path(args.public_dir)
        if not public_dir.is_dir():
            print(f"imgopt: not a directory: {public_dir}", file=sys.stderr)
            return 2
        report = asyncio.run(_run_public(plugin, public_dir, Path(args.out)))

    else:
        parser.print_help()
        return 2

    if args.report_csv:
        save_report_csv(report, Path(args.report_csv))

    # Per-file failures are reported, not fatal.
    return 0
