from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, MutableMapping, Union

import aiofiles
import aiofiles.os

from .guard import MtimeGuard
from .matching import select_files
from .pipeline import ImagePipeline


logger = logging.getLogger(__name__)


@dataclass
class BundleAsset:
    """One emitted asset of the host build, held in memory."""
    file_name: str
    name: str
    source: Union[bytes, str]


Bundle = MutableMapping[str, BundleAsset]


def iter_files(root: Path) -> Iterable[Path]:
    """Yield every file below root, recursively, in a stable order."""
    root = Path(root)
    if root.is_file():
        yield root
        return
    if not root.is_dir():
        return

    for f in sorted(root.rglob("*")):
        if f.is_file():
            yield f


async def optimize_bundle(bundle: Bundle, pipeline: ImagePipeline) -> None:
    """Bundle pass: replace selected assets in memory when they got smaller."""
    all_files = list(bundle.keys())
    selected = select_files(all_files, lambda key: bundle[key].name, pipeline.settings)
    if not selected:
        return

    await pipeline.prepare(len(selected))
    logger.debug("bundle pass: %d of %d assets selected", len(selected), len(all_files))

    async def handle(key: str) -> None:
        asset = bundle[key]
        source = asset.source
        if isinstance(source, str):
            source = source.encode("utf-8")

        outcome = await pipeline.process(key, source)
        if outcome.should_write:
            asset.source = outcome.content

    await asyncio.gather(*(asyncio.create_task(handle(key)) for key in selected))


async def optimize_public(
    public_dir: Path,
    out_dir: Path,
    pipeline: ImagePipeline,
    guard: MtimeGuard,
) -> None:
    """
    Static pass: bring the copies of public assets in out_dir up to date.

    A file is only considered when its copy already exists in out_dir and has
    changed since we last wrote it. Selected files are optimized in place;
    the rest are synced verbatim from public_dir.
    """
    public_dir = Path(public_dir)
    out_dir = Path(out_dir)

    all_files: List[Path] = list(iter_files(public_dir))
    selected = set(select_files(all_files, lambda p: p.name, pipeline.settings))
    await pipeline.prepare(len(selected))
    logger.debug("public pass: %d of %d files selected", len(selected), len(all_files))

    async def handle(public_file: Path) -> None:
        rel = public_file.relative_to(public_dir).as_posix()
        target = out_dir / rel

        try:
            if not await aiofiles.os.path.exists(target):
                return
            stat = await aiofiles.os.stat(target)
            if guard.is_fresh(rel, stat.st_mtime):
                return

            if public_file not in selected:
                await _copy_bytes(public_file, target)
                return

            async with aiofiles.open(target, "rb") as f:
                data = await f.read()
        except OSError as exc:
            pipeline.results.add_error(rel, str(exc))
            return

        outcome = await pipeline.process(rel, data)
        if not outcome.should_write:
            return

        try:
            async with aiofiles.open(target, "wb") as f:
                await f.write(outcome.content)
        except OSError as exc:
            pipeline.results.add_error(rel, str(exc))
            return
        guard.touch(rel)

    await asyncio.gather(*(asyncio.create_task(handle(f)) for f in all_files))


async def _copy_bytes(src: Path, dst: Path) -> None:
    async with aiofiles.open(src, "rb") as f:
        data = await f.read()
    async with aiofiles.open(dst, "wb") as f:
        await f.write(data)
