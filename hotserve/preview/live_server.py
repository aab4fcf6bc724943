import asyncio
import logging
import webbrowser
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional

from ..core.build_manager import BuildManager
from ..core.builder import AssetCompiler, BuildResult
from ..core.config_manager import ServeConfig
from ..core.errors import BuildError
from ..interface.console import ConsoleReporter
from ..monitoring.metrics import MetricsTracker
from .file_watcher import ChangeDebouncer, FileWatcher, WatchEvent
from .reload_hub import HotPatch, ReloadHub
from .renderer import HostPageRenderer
from .template_index import NeedsFullRebuild, PatchSet, TemplateIndex, TemplateRecord, UpdateError

logger = logging.getLogger(__name__)

ShutdownHook = Callable[[], Awaitable[None]]

class LiveServer:
    """Routes file changes to hot patches or full rebuilds"""

    def __init__(self,
                 config: ServeConfig,
                 compiler: AssetCompiler = None,
                 reporter: ConsoleReporter = None,
                 watcher: FileWatcher = None):
        self.config = config
        self.metrics = MetricsTracker()
        self.hub = ReloadHub(config.hub_capacity)
        self.reporter = reporter or ConsoleReporter(config)
        self.renderer = HostPageRenderer(config)
        self.index = TemplateIndex(config.template_extensions) if config.hot_reload else None
        self.build_manager = BuildManager(
            config,
            self.hub,
            compiler=compiler,
            renderer=self.renderer,
            reporter=self.reporter,
            metrics=self.metrics
        )
        self.watcher = watcher or FileWatcher(
            config.watch_roots,
            ChangeDebouncer(resolution=config.debounce_resolution)
        )
        self._shutdown_hooks: List[ShutdownHook] = []
        self._watch_task: Optional[asyncio.Task] = None

    def add_shutdown_hook(self, hook: ShutdownHook):
        """Register a coroutine to run when the server stops"""
        self._shutdown_hooks.append(hook)

    def initial_patches(self) -> List[TemplateRecord]:
        return self.index.pending_patches() if self.index else []

    async def prepare(self) -> BuildResult:
        """Initial build and template scan; fails early if no watch path is usable"""
        self.watcher.check_roots()
        result = await self.build_manager.initial_build()
        if self.index:
            await self._rescan()
        self.reporter.banner(result.diagnostics, result.elapsed_time)
        return result

    async def start(self):
        """Start watching in the background; fails if no watch path is usable"""
        self.watcher.check_roots()
        self._watch_task = asyncio.create_task(self.watcher.run(self.handle_event))
        self._watch_task.add_done_callback(self._watch_finished)
        if self.config.open_browser:
            webbrowser.open(f"http://localhost:{self.config.port}/")

    async def stop(self):
        """Stop watching, close sessions' feeds and run shutdown hooks"""
        self.watcher.stop()
        if self._watch_task:
            self._watch_task.cancel()
            await asyncio.gather(self._watch_task, return_exceptions=True)
            self._watch_task = None
        self.hub.close()
        for hook in self._shutdown_hooks:
            try:
                await hook()
            except Exception:
                logger.exception("Shutdown hook failed")

    @staticmethod
    def _watch_finished(task: asyncio.Task):
        if not task.cancelled() and task.exception():
            logger.error("File watcher stopped", exc_info=task.exception())

    async def handle_event(self, event: WatchEvent):
        """Process one debounced batch of changed paths"""
        if self.config.settle_delay:
            # let writers finish before the files are read
            await asyncio.sleep(self.config.settle_delay)

        if not self.index:
            await self._rebuild(event.paths)
            return

        others = sorted(p for p in event.paths if not self.index.is_template(p))
        if others:
            logger.info(f"{others[0]} is not a template; rebuilding")
            await self._rebuild(event.paths)
            return

        loop = asyncio.get_running_loop()
        patches: List[TemplateRecord] = []
        for path in sorted(event.paths):
            start_time = self.metrics.time()
            outcome = await loop.run_in_executor(None, self.index.update, path)
            if isinstance(outcome, PatchSet):
                self.metrics.record('template_update_time', self.metrics.time() - start_time)
                patches.extend(outcome.records)
            elif isinstance(outcome, NeedsFullRebuild):
                logger.info(f"Full rebuild needed: {outcome.reason}")
                if not await self._rebuild(event.paths):
                    # the index already holds these edits
                    self._publish_patches(patches)
                return
            elif isinstance(outcome, UpdateError):
                logger.error(outcome.reason)
                self.metrics.record_error('template_parse_error', outcome.reason)

        self._publish_patches(patches)

    def _publish_patches(self, patches: List[TemplateRecord]):
        for record in patches:
            self.hub.publish(HotPatch(record))
        if patches:
            self.metrics.increment('hot_patches', len(patches))
            logger.info(f"Hot patched {len(patches)} template(s)")

    async def _rebuild(self, changed: Iterable[Path]) -> bool:
        """Rebuild and rescan; True if at least one build succeeded"""
        builds_before = self.build_manager.build_count
        try:
            await self.build_manager.rebuild(changed)
        except BuildError:
            # already logged and reported
            pass
        built = self.build_manager.build_count > builds_before
        if built and self.index:
            await self._rescan()
        return built

    async def _rescan(self):
        loop = asyncio.get_running_loop()
        errors = await loop.run_in_executor(None, self.index.scan, self.config.watch_roots)
        for error in errors:
            logger.error(error)
