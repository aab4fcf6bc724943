import asyncio
import logging
import math
import time
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, FrozenSet, Iterable, List, Optional
from watchfiles import awatch

from ..core.errors import WatchSetupError

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class WatchEvent:
    paths: FrozenSet[Path]
    timestamp: float

class ChangeDebouncer:
    """Drops events that arrive in the same clock tick as the last accepted one"""

    def __init__(self, clock: Callable[[], float] = time.time, resolution: float = 1.0):
        self.clock = clock
        self.resolution = resolution
        self.last_accepted = self._tick()

    def _tick(self) -> int:
        return math.floor(self.clock() / self.resolution)

    def accept(self, event: WatchEvent) -> bool:
        tick = self._tick()
        if tick <= self.last_accepted:
            logger.debug(f"Suppressed change burst: {sorted(str(p) for p in event.paths)}")
            return False
        self.last_accepted = tick
        return True

class FileWatcher:
    def __init__(self,
                 roots: Iterable[Path],
                 debouncer: ChangeDebouncer = None,
                 watch=awatch):
        self.roots: List[Path] = [Path(root) for root in roots]
        self.debouncer = debouncer or ChangeDebouncer()
        self._watch = watch
        self._stop_event = asyncio.Event()
        self._active_roots: Optional[List[Path]] = None

    def valid_roots(self) -> List[Path]:
        """Roots that can be watched; the others are logged and skipped"""
        valid = []
        for root in self.roots:
            if root.is_dir():
                valid.append(root)
            else:
                logger.error(f"Error watching {root}: not an existing directory")
        return valid

    def check_roots(self) -> List[Path]:
        """Resolve the roots to watch, failing when none is usable"""
        if self._active_roots is None:
            roots = self.valid_roots()
            if not roots:
                raise WatchSetupError(
                    f"None of the watch paths could be watched: {', '.join(map(str, self.roots))}"
                )
            self._active_roots = roots
        return self._active_roots

    async def events(self) -> AsyncIterator[WatchEvent]:
        """Yield debounced change events until stopped"""
        roots = self.check_roots()
        logger.info(f"Watching {', '.join(map(str, roots))}")

        async for changes in self._watch(*roots, stop_event=self._stop_event):
            if self._stop_event.is_set():
                break
            paths = frozenset(
                Path(file_path) for _, file_path in changes
                if not Path(file_path).name.startswith('.')
            )
            if not paths:
                continue
            event = WatchEvent(paths=paths, timestamp=time.time())
            if self.debouncer.accept(event):
                yield event

    async def run(self, handler: Callable[[WatchEvent], Awaitable[None]]):
        """Dispatch every accepted event to the handler, one at a time"""
        async for event in self.events():
            try:
                await handler(event)
            except Exception:
                logger.exception(f"Error handling change to {sorted(map(str, event.paths))}")

    def stop(self):
        """Stop watching for changes"""
        self._stop_event.set()
