"""
File system watcher that re-runs drift detection when sources or docs change.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Union

import watchdog.observers
from watchdog.events import FileSystemEvent, FileSystemEventHandler

from .engine import DriftEngine
from .models import PrioritizedDriftResult
from .utils import get_gitignore_patterns, is_in_ignored_dir, match_file_against_pattern

ResultsCallback = Callable[[List[PrioritizedDriftResult]], Union[None, Awaitable[None]]]


class WatcherHandler(FileSystemEventHandler):
    def __init__(self, watcher: "DocDriftWatcher"):
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in ("created", "modified", "deleted", "moved"):
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if not any(path and self.watcher.is_relevant(Path(path)) for path in paths):
            return

        logging.info(f"File {event.event_type}: {event.src_path}")
        loop = self.watcher.loop
        if not loop or loop.is_closed() or not loop.is_running():
            logging.debug("Skipping drift check: event loop is not available")
            return
        loop.call_soon_threadsafe(self.watcher.schedule_check)


class DocDriftWatcher:
    """
    Watches the project and documentation roots of a DriftEngine.

    Relevant changes are debounced; once quiet for ``debounce_seconds`` the
    engine's ``check_for_drift`` runs and its results go to ``on_results``.
    """

    def __init__(
        self,
        engine: DriftEngine,
        debounce_seconds: Optional[float] = None,
        on_results: Optional[ResultsCallback] = None,
    ):
        self.engine = engine
        self.debounce_seconds = (
            debounce_seconds if debounce_seconds is not None else engine.config.watch_debounce_seconds
        )
        self.on_results = on_results
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.observer = None
        self._pending: Optional[asyncio.TimerHandle] = None
        self._check_lock = asyncio.Lock()
        self._extensions = {ext.lower() for ext in [*engine.config.source_extensions, *engine.config.doc_extensions]}
        self._ignore_patterns = get_gitignore_patterns(engine.project_root) + [
            (pattern, engine.project_root) for pattern in engine.config.ignored_patterns
        ]

    def watch_directories(self) -> List[Path]:
        directories = [self.engine.project_root]
        docs_root = self.engine.docs_root
        if docs_root.is_dir() and self.engine.project_root not in docs_root.parents and docs_root != self.engine.project_root:
            directories.append(docs_root)
        return directories

    def is_relevant(self, path: Path) -> bool:
        if not path.is_absolute():
            path = (self.engine.project_root / path).resolve()
        if path.suffix.lower() not in self._extensions:
            return False
        for root in self.watch_directories():
            try:
                path.relative_to(root)
            except ValueError:
                continue
            if is_in_ignored_dir(path, root, self.engine.config.ignored_dirs):
                return False
            return not any(match_file_against_pattern(path, pattern, base) for pattern, base in self._ignore_patterns)
        return False

    async def start(self) -> None:
        """Start observing; must be awaited on the loop that should run checks."""
        self.loop = asyncio.get_running_loop()
        observer = watchdog.observers.Observer()
        handler = WatcherHandler(self)
        for directory in self.watch_directories():
            observer.schedule(handler, str(directory), recursive=True)
            logging.info(f"Started watching directory: {directory}")
        observer.start()
        self.observer = observer

    def stop(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None

    def schedule_check(self) -> None:
        """Restart the debounce timer. Runs on the watcher's event loop."""
        if self._pending is not None:
            self._pending.cancel()
        self._pending = self.loop.call_later(self.debounce_seconds, self._start_check)

    def _start_check(self) -> None:
        self._pending = None
        self.loop.create_task(self._run_check())

    async def _run_check(self) -> Optional[List[PrioritizedDriftResult]]:
        try:
            return await self.trigger()
        except Exception as e:
            logging.error(f"Drift check failed: {e}")
            return None

    async def trigger(self) -> List[PrioritizedDriftResult]:
        """Run a drift check now and hand the results to the callback."""
        async with self._check_lock:
            results = await self.engine.check_for_drift()
            logging.info(f"Drift check found {len(results)} file(s) with drift")
            if self.on_results is not None:
                outcome: Any = self.on_results(results)
                if inspect.isawaitable(outcome):
                    await outcome
            return results
