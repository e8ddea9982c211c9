from __future__ import annotations

import csv
import json
import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from .results import BuildResults, SizeStat


def _kb(n: int) -> float:
    return n / 1024


def _percent_text(ratio: int) -> str:
    return f"+{ratio}%" if ratio > 0 else f"{ratio}%"


def _size_text(stat: SizeStat) -> str:
    if stat.skip_write:
        return f"skipped original: {_kb(stat.old_size):.2f} kB <= optimized: {_kb(stat.size):.2f} kB"
    if stat.is_cached:
        return f"cached original: {_kb(stat.old_size):.2f} kB; cached: {_kb(stat.size):.2f} kB"
    return f"{_kb(stat.old_size):.2f} kB -> {_kb(stat.size):.2f} kB"


def format_stats_lines(out_name: str, stats: Dict[str, SizeStat]) -> List[str]:
    """One aligned line per file: path, percent change, sizes and status."""
    if not stats:
        return []

    key_width = max(len(name) for name in stats)
    ratio_width = max(len(_percent_text(s.ratio)) for s in stats.values())

    lines = []
    for name, stat in stats.items():
        lines.append(
            f"{out_name}/{name.ljust(key_width)}  "
            f"{_percent_text(stat.ratio).rjust(ratio_width)}  {_size_text(stat)}"
        )
    return lines


def format_total_line(results: BuildResults) -> Optional[str]:
    """Savings over the files that were actually written, or None if nothing was saved."""
    saved = results.total_saved_bytes
    if saved <= 0:
        return None
    original = results.total_old_bytes
    return (
        f"total savings = {_kb(saved):.2f}kB/{_kb(original):.2f}kB "
        f"≈ {math.floor(saved / original * 100 + 0.5)}%"
    )


def log_optimization_stats(logger: logging.Logger, out_name: str, results: BuildResults) -> None:
    logger.info("")
    logger.info("[imgopt] - optimized images successfully:")
    for line in format_stats_lines(out_name, results.stats):
        logger.info(line)

    total = format_total_line(results)
    if total:
        logger.info("")
        logger.info(total)
    logger.info("")


def log_errors(logger: logging.Logger, out_name: str, results: BuildResults) -> None:
    logger.info("")
    logger.info("[imgopt] - errors during optimization:")
    key_width = max((len(name) for name in results.errors), default=0)
    for name, message in results.errors.items():
        logger.error(f"{out_name}/{name.ljust(key_width)}  {message}")
    logger.info("")


@dataclass(frozen=True)
class FileReport:
    path: str
    old_bytes: int
    new_bytes: int
    saved_bytes: int
    ratio: int
    status: str


@dataclass(frozen=True)
class BuildReport:
    created_utc: str
    summary: dict
    files: List[FileReport]
    errors: Dict[str, str]


def build_report(results: BuildResults) -> BuildReport:
    created_utc = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")

    files: List[FileReport] = []
    for path, s in results.stats.items():
        files.append(
            FileReport(
                path=path,
                old_bytes=s.old_size,
                new_bytes=s.size,
                saved_bytes=s.saved_bytes,
                ratio=s.ratio,
                status=s.status,
            )
        )

    summary_dict = {
        "total_files": len(results.stats) + len(results.errors),
        "written": sum(1 for s in results.stats.values() if s.status == "written"),
        "cached": sum(1 for s in results.stats.values() if s.status == "cached"),
        "skipped": sum(1 for s in results.stats.values() if s.status == "skipped"),
        "failed": len(results.errors),
        "total_old_bytes": results.total_old_bytes,
        "saved_bytes": results.total_saved_bytes,
        "saved_percent": round(results.saved_percent, 2),
    }

    return BuildReport(
        created_utc=created_utc,
        summary=summary_dict,
        files=files,
        errors=dict(results.errors),
    )


def save_report_json(report: BuildReport, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        json.dump(asdict(report), f, indent=2, ensure_ascii=False)


def save_report_csv(report: BuildReport, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    columns = ["path", "old_bytes", "new_bytes", "saved_bytes", "ratio", "status", "error"]
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        for fr in report.files:
            writer.writerow({**asdict(fr), "error": ""})
        for failed_path, message in report.errors.items():
            writer.writerow({"path": failed_path, "status": "failed", "error": message})
