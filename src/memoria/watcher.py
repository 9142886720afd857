"""File watcher feeding filesystem changes to the synchronizer."""

import asyncio
from pathlib import Path

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .models import FileEvent
from .sync import Synchronizer

logger = structlog.get_logger(__name__)


def _as_path(value: str | bytes) -> Path:
    return Path(value.decode() if isinstance(value, bytes) else value)


class QueueingHandler(FileSystemEventHandler):
    """Translate watchdog events into FileEvents on an asyncio queue.

    Watchdog calls handlers from its observer thread, so events are handed
    to the loop with call_soon_threadsafe, which keeps their arrival order.
    """

    def __init__(self, queue: "asyncio.Queue[FileEvent | None]", loop: asyncio.AbstractEventLoop):
        super().__init__()
        self._queue = queue
        self._loop = loop

    def _put(self, event: FileEvent) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(FileEvent.created(_as_path(event.src_path)))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(FileEvent.modified(_as_path(event.src_path)))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(FileEvent.deleted(_as_path(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(FileEvent.renamed(_as_path(event.src_path), _as_path(event.dest_path)))


class FileWatcher:
    """Watch the index root and apply changes through a Synchronizer.

    The queue is unbounded; events are never dropped.
    """

    def __init__(self, synchronizer: Synchronizer, root: Path | None = None):
        self._synchronizer = synchronizer
        self._root = root or synchronizer.index.root
        self.queue: asyncio.Queue[FileEvent | None] = asyncio.Queue()
        self._observer: Observer | None = None
        self._consumer: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    async def start(self) -> None:
        """Start the observer thread and the consumer task."""
        if self.is_running:
            return

        loop = asyncio.get_running_loop()
        self._observer = Observer()
        self._observer.schedule(QueueingHandler(self.queue, loop), str(self._root), recursive=True)
        self._observer.start()
        self._consumer = asyncio.create_task(self._synchronizer.run(self.queue))
        logger.info("watcher_started", root=str(self._root))

    async def stop(self) -> None:
        """Stop watching, then drain the events already queued."""
        if not self.is_running:
            return

        observer = self._observer
        self._observer = None
        observer.stop()
        await asyncio.to_thread(observer.join, 5.0)

        # scheduled behind any events the observer thread already handed over
        asyncio.get_running_loop().call_soon(self.queue.put_nowait, None)
        if self._consumer is not None:
            await self._consumer
            self._consumer = None
        logger.info("watcher_stopped", root=str(self._root))
