from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Callable, Optional, Tuple

from .cache import CacheStore
from .engine import optimize_bytes
from .results import BuildResults, ProcessOutcome, SizeStat, size_ratio
from .settings import OptimizeSettings


logger = logging.getLogger(__name__)

Engine = Callable[[str, bytes, OptimizeSettings], bytes]


class ImagePipeline:
    """
    Optimizes one file at a time: cache, codec, skip-write, bookkeeping.

    Failures never leave process(); they end up in results.errors and the
    caller gets an empty outcome.
    """

    def __init__(
        self,
        settings: OptimizeSettings,
        results: Optional[BuildResults] = None,
        engine: Engine = optimize_bytes,
    ):
        self.settings = settings
        self.results = results if results is not None else BuildResults()
        self.engine = engine
        self.cache: Optional[CacheStore] = None
        if settings.cache:
            self.cache = CacheStore(settings.cache_location, key=settings.cache_key)
        self._semaphore: Optional[asyncio.Semaphore] = None

    async def prepare(self, selected_count: int) -> None:
        """Run once per pass before any file of that pass is processed."""
        # A fresh semaphore per pass keeps it bound to the running loop.
        self._semaphore = None
        if self.cache is not None and selected_count > 0:
            await self.cache.ensure_root()

    async def process(self, path: str, data: bytes) -> ProcessOutcome:
        try:
            async with self._slot():
                optimized, is_cached = await self._optimize(path, data)
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            self.results.add_error(path, message)
            logger.debug("failed to optimize %s", path, exc_info=exc)
            return ProcessOutcome()

        old_size = len(data)
        new_size = len(optimized)
        skip_write = new_size >= old_size

        self.results.add_stat(
            path,
            SizeStat(
                size=new_size,
                old_size=old_size,
                ratio=size_ratio(new_size, old_size),
                skip_write=skip_write,
                is_cached=is_cached,
            ),
        )
        return ProcessOutcome(content=optimized, skip_write=skip_write)

    async def _optimize(self, path: str, data: bytes) -> Tuple[bytes, bool]:
        if self.cache is not None:
            cached = await self.cache.lookup(path, data)
            if cached is not None:
                return cached, True

        # Codecs are CPU bound; keep them off the event loop.
        optimized = await asyncio.to_thread(self.engine, path, data, self.settings)

        if self.cache is not None:
            await self.cache.store(path, data, optimized)
        return optimized, False

    @contextlib.asynccontextmanager
    async def _slot(self) -> AsyncIterator[None]:
        limit = self.settings.max_concurrency
        if limit is None:
            yield
            return

        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(int(limit))
        async with self._semaphore:
            yield
