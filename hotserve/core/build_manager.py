import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional, Set

from .builder import AssetCompiler, BuildResult, CommandCompiler
from .config_manager import ServeConfig
from .errors import BuildError
from ..monitoring.metrics import MetricsTracker
from ..preview.reload_hub import FullReload, ReloadHub

logger = logging.getLogger(__name__)

class BuildManager:
    """Runs full builds one at a time and announces successful ones"""

    def __init__(self,
                 config: ServeConfig,
                 hub: ReloadHub,
                 compiler: AssetCompiler = None,
                 renderer=None,
                 reporter=None,
                 metrics: MetricsTracker = None):
        self.config = config
        self.hub = hub
        self.compiler = compiler or CommandCompiler(config.build_command)
        self.renderer = renderer
        self.reporter = reporter
        self.metrics = metrics or MetricsTracker()
        self.build_count = 0
        self._in_flight = False
        self._pending = False
        self._pending_paths: Set[Path] = set()

    @property
    def is_building(self) -> bool:
        return self._in_flight

    async def initial_build(self) -> BuildResult:
        """First, non-incremental build; errors abort startup"""
        self._in_flight = True
        try:
            result = await self._compile(incremental=False)
        finally:
            self._in_flight = False
        if self.renderer:
            self.renderer.regenerate(self.config.out_path)
        self.build_count += 1
        self.metrics.record('build_time', result.elapsed_time)
        return result

    async def rebuild(self, changed: Iterable[Path] = ()) -> Optional[BuildResult]:
        """Rebuild the project, or queue one trailing rebuild if one is running.

        Returns the result of the last build this call executed, or None when
        the request was folded into the build already in flight. Raises
        BuildError if that last build failed.
        """
        if self._in_flight:
            logger.debug("Build in progress; queueing one more")
            self._pending = True
            self._pending_paths.update(changed)
            return None

        self._in_flight = True
        paths = set(changed)
        try:
            while True:
                result, error = await self._run_once(paths)
                if not self._pending:
                    break
                self._pending = False
                paths, self._pending_paths = self._pending_paths, set()
        finally:
            self._in_flight = False
            self._pending = False
            self._pending_paths = set()

        if error:
            raise error
        return result

    async def _run_once(self, changed: Set[Path]):
        logger.info("Rebuilding project")
        try:
            result = await self._compile(incremental=True)
        except BuildError as e:
            return None, self._failed(changed, e)
        except Exception as e:
            logger.exception("Compiler crashed")
            error = BuildError(f"Compiler crashed: {e!r}")
            error.__cause__ = e
            return None, self._failed(changed, error)

        self.build_count += 1
        if self.config.reload_html and self.renderer:
            self.renderer.regenerate(self.config.out_path)
        self.hub.publish(FullReload())
        self.metrics.record('build_time', result.elapsed_time)
        if self.reporter:
            self.reporter.report(changed, result.diagnostics, result.elapsed_time)
        return result, None

    def _failed(self, changed: Set[Path], error: BuildError) -> BuildError:
        logger.error(f"Build failed: {error}")
        for diagnostic in error.diagnostics:
            logger.error(f"  {diagnostic.message}")
        self.metrics.record_error('build_error', str(error))
        if self.reporter:
            self.reporter.report(changed, error.diagnostics, 0.0)
        return error

    async def _compile(self, incremental: bool) -> BuildResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self.compiler.build,
            self.config,
            incremental
        )
