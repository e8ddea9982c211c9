from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .batch import Bundle, optimize_bundle, optimize_public
from .engine import optimize_bytes
from .guard import MtimeGuard
from .pipeline import Engine, ImagePipeline
from .report import BuildReport, build_report, log_errors, log_optimization_stats, save_report_json
from .results import BuildResults
from .settings import OptimizeSettings, resolve_settings


PLUGIN_NAME = "imgopt"


class ImageOptimizerPlugin:
    """
    Build hooks that optimize images of a build.

    The host calls config_resolved() once, generate_bundle() with the
    in-memory assets of every build, and close_bundle() after the build has
    been written to disk. Stats and errors cover one build; the mtime guard
    lives as long as the plugin (or on disk, when a guard file is set).
    """

    name = PLUGIN_NAME

    def __init__(
        self,
        options: Union[OptimizeSettings, Mapping[str, Any], None] = None,
        logger: Optional[logging.Logger] = None,
        engine: Engine = optimize_bytes,
    ):
        if isinstance(options, OptimizeSettings):
            self.settings = options
        else:
            self.settings = resolve_settings(options)

        self.logger = logger or logging.getLogger(PLUGIN_NAME)
        self.results = BuildResults()
        self.pipeline = ImagePipeline(self.settings, self.results, engine=engine)
        self.guard = MtimeGuard(self.settings.mtime_guard_file)

        self.root: Optional[Path] = None
        self.out_dir: Optional[Path] = None
        self.public_dir: Optional[Path] = None

    def config_resolved(
        self,
        root: Union[str, Path],
        out_dir: Union[str, Path],
        public_dir: Union[str, Path, None] = None,
    ) -> None:
        self.root = Path(root)
        # out_dir and public_dir may be given relative to the project root
        self.out_dir = self.root / out_dir
        self.public_dir = self.root / public_dir if public_dir is not None else None

    async def generate_bundle(self, bundle: Bundle) -> None:
        await optimize_bundle(bundle, self.pipeline)

    async def close_bundle(self) -> BuildReport:
        if self.out_dir is None:
            raise RuntimeError("config_resolved() must be called before close_bundle()")

        if self.public_dir is not None and self.settings.include_public:
            await optimize_public(self.public_dir, self.out_dir, self.pipeline, self.guard)
            try:
                await self.guard.save()
            except OSError as exc:
                self.logger.warning("could not save mtime guard to %s: %s", self.settings.mtime_guard_file, exc)

        out_name = self.out_dir.name
        if self.results.stats and self.settings.log_stats:
            log_optimization_stats(self.logger, out_name, self.results)
        if self.results.errors:
            log_errors(self.logger, out_name, self.results)

        report = build_report(self.results)
        if self.settings.report_file is not None:
            save_report_json(report, self.settings.report_file)

        self.results.clear()
        return report
