"""File-watch driven auto-push.

``ChangeWatcher`` turns filesystem events under a project root into
pushes.  Events pass through two stages:

1. **Debounce** -- bursts of events are collapsed until nothing has
   changed for ``stability_threshold`` seconds, checked every
   ``poll_interval`` seconds.
2. **PushGate** -- at most one push runs at a time.  Events that arrive
   while a push is in flight set a single "queued" flag; when the push
   finishes (successfully or not) one more push runs and the flag is
   cleared.  Any number of events during a push therefore cost exactly
   one follow-up push.

watchdog delivers events on its own thread; they are handed to the event
loop with ``call_soon_threadsafe`` and all gate state lives on the loop.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..core.async_utils import run_sync
from .character_files import CHARACTER_FILENAME, LINKED_BOOKS_DIRNAME, TEXT_FILES
from .local_store import ENTRIES_DIRNAME, INDEX_FILENAME

logger = logging.getLogger(__name__)

DEFAULT_STABILITY_THRESHOLD = 0.5
DEFAULT_POLL_INTERVAL = 0.1

PushCallable = Callable[[], Awaitable[Any]]


class GateState(str, Enum):
    IDLE = "idle"
    PUSHING = "pushing"
    PUSHING_WITH_QUEUED = "pushing_with_queued"


class PushGate:
    """Serialise pushes and coalesce triggers that arrive mid-push.

    Args:
        push: Coroutine function performing one push.
    """

    def __init__(self, push: PushCallable) -> None:
        self._push = push
        self.pushing = False
        self.push_queued = False
        self.push_count = 0
        self.failure_count = 0

    @property
    def state(self) -> GateState:
        if not self.pushing:
            return GateState.IDLE
        if self.push_queued:
            return GateState.PUSHING_WITH_QUEUED
        return GateState.PUSHING

    async def trigger(self) -> None:
        """Request a push.

        Returns immediately when a push is already running (after marking
        one follow-up); otherwise runs pushes until no follow-up is queued.
        """
        if self.pushing:
            self.push_queued = True
            return

        self.pushing = True
        try:
            while True:
                await self._run_once()
                if not self.push_queued:
                    break
                self.push_queued = False
        finally:
            self.pushing = False

    async def _run_once(self) -> None:
        self.push_count += 1
        try:
            await self._push()
        except Exception:
            # A failed push must never stop the watch loop
            self.failure_count += 1
            logger.exception("Auto-push failed")
        else:
            logger.info("Auto-push complete")


class Debouncer:
    """Fire a callback once events have been quiet for a stability window.

    Must be used from the event loop thread.
    """

    def __init__(
        self,
        callback: Callable[[], Any],
        stability_threshold: float = DEFAULT_STABILITY_THRESHOLD,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._callback = callback
        self.stability_threshold = stability_threshold
        self.poll_interval = poll_interval
        self._last_event = 0.0
        self._task: asyncio.Task | None = None

    def touch(self) -> None:
        """Record an event and start waiting if not already."""
        loop = asyncio.get_running_loop()
        self._last_event = loop.time()
        if self._task is None or self._task.done():
            self._task = loop.create_task(self._wait_until_stable())

    async def _wait_until_stable(self) -> None:
        loop = asyncio.get_running_loop()
        while loop.time() - self._last_event < self.stability_threshold:
            await asyncio.sleep(self.poll_interval)
        self._callback()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()


def is_watched_path(root: Path, path: Path) -> bool:
    """True for files whose change should trigger a push of *root*."""
    try:
        rel = path.relative_to(root)
    except ValueError:
        return False
    parts = rel.parts
    if not parts:
        return False
    if parts[0] in (ENTRIES_DIRNAME, LINKED_BOOKS_DIRNAME):
        return True
    if len(parts) == 1:
        name = parts[0]
        return (
            name in (INDEX_FILENAME, CHARACTER_FILENAME)
            or name in TEXT_FILES
            or (name.startswith("first_message_") and name.endswith(".md"))
        )
    return False


class _ProjectEventHandler(FileSystemEventHandler):
    """Forward relevant watchdog events to the loop (runs off-loop)."""

    def __init__(
        self,
        root: Path,
        loop: asyncio.AbstractEventLoop,
        on_change: Callable[[str, str], None],
    ) -> None:
        self.root = root
        self.loop = loop
        self.on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("opened", "closed", "closed_no_write"):
            return
        paths = [event.src_path]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(dest)
        for raw in paths:
            path = Path(raw if isinstance(raw, str) else raw.decode())
            if is_watched_path(self.root, path):
                self.loop.call_soon_threadsafe(
                    self.on_change, event.event_type, str(path)
                )
                return


class ChangeWatcher:
    """Watch a project root and push it whenever it settles after a change.

    Args:
        root: Lore Book or character project directory.
        push: Coroutine function pushing *root* (usually
            ``lambda: run_sync(engine.push, root)``).
        stability_threshold: Quiet time (seconds) before a push.
        poll_interval: How often the quiet time is checked (seconds).
        observer_factory: Builds the watchdog observer.
    """

    def __init__(
        self,
        root: Path,
        push: PushCallable,
        stability_threshold: float = DEFAULT_STABILITY_THRESHOLD,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self.root = root.resolve()
        self.gate = PushGate(push)
        self.debouncer = Debouncer(
            self._settled, stability_threshold, poll_interval
        )
        self._observer_factory = observer_factory
        self._observer: Any = None
        self._stopped: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._signals: list[signal.Signals] = []
        self._push_tasks: set[asyncio.Task] = set()

    def notify(self, event_type: str, path: str) -> None:
        """Handle one relevant filesystem change (loop thread)."""
        logger.info("Detected change [%s]: %s", event_type, path)
        self.debouncer.touch()

    def _settled(self) -> None:
        task = asyncio.get_running_loop().create_task(self.gate.trigger())
        self._push_tasks.add(task)
        task.add_done_callback(self._push_tasks.discard)

    def start(self) -> None:
        """Start the OS watch and install the SIGINT/SIGTERM hook."""
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._stopped = asyncio.Event()

        handler = _ProjectEventHandler(self.root, loop, self.notify)
        self._observer = self._observer_factory()
        self._observer.schedule(handler, str(self.root), recursive=True)
        self._observer.start()
        logger.info("Watching for changes in %s", self.root)

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
                self._signals.append(sig)
            except (NotImplementedError, RuntimeError):
                # Not available on this platform or outside the main thread
                logger.debug("Cannot install handler for %s", sig)

    def stop(self) -> None:
        """Stop the OS watch and remove the signal hook.  Idempotent."""
        if self._observer is not None:
            logger.info("Stopping watcher")
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self.debouncer.cancel()
        if self._loop is not None:
            for sig in self._signals:
                self._loop.remove_signal_handler(sig)
        self._signals.clear()
        if self._stopped is not None:
            self._stopped.set()

    async def run(self) -> None:
        """Watch until ``stop()`` is called, then let a running push finish."""
        self.start()
        assert self._stopped is not None
        try:
            await self._stopped.wait()
        finally:
            self.stop()
            if self._push_tasks:
                await asyncio.gather(*self._push_tasks, return_exceptions=True)


async def watch(
    engine: Any,
    project_dir: Path,
    name: str | None = None,
    stability_threshold: float = DEFAULT_STABILITY_THRESHOLD,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> ChangeWatcher:
    """Auto-push *project_dir* through *engine* until interrupted.

    Returns the watcher once it has stopped.
    """
    async def push() -> Any:
        return await run_sync(engine.push, project_dir, name)

    watcher = ChangeWatcher(
        project_dir,
        push,
        stability_threshold=stability_threshold,
        poll_interval=poll_interval,
    )
    await watcher.run()
    return watcher
