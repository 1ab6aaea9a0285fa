"""Live run folder observer - reports new .run files once they stop changing."""

import os
import queue
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from spirestats.collector.safe_files import PathTraversalError, safe_read_file
from spirestats.config.logging import get_logger
from spirestats.config.settings import DEFAULT_QUIESCENCE_SECONDS
from spirestats.core.models import Run
from spirestats.parser.run_parser import RUN_FILE_EXTENSION, RunParseError, parse_run_file

logger = get_logger(__name__)

RunCallback = Callable[[Run], None]


@dataclass
class _PendingFile:
    size: int
    last_event: float


def _event_path(raw) -> str:
    return os.fsdecode(raw)


def _file_size(path: str) -> int:
    try:
        return os.path.getsize(path)
    except OSError:
        return -1


class _RunFileHandler(FileSystemEventHandler):
    """Forwards watchdog events for .run files to the watcher."""

    def __init__(self, watcher: "RunWatcher") -> None:
        super().__init__()
        self._watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.note_created(_event_path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.note_created(_event_path(event.dest_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.note_modified(_event_path(event.src_path))


class RunWatcher:
    """
    Watches a run folder recursively and reports newly written runs.

    A new file is reported once its size has stayed the same and no event
    has arrived for `quiescence_seconds`. Files present before start() are
    ignored. Parsed runs are queued and handed to the single subscriber on
    a dispatcher thread; nothing is written to the store here.
    """

    def __init__(
        self,
        quiescence_seconds: float = DEFAULT_QUIESCENCE_SECONDS,
        poll_interval: float = 0.25,
        queue_size: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.quiescence_seconds = quiescence_seconds
        self.poll_interval = poll_interval
        self._clock = clock

        self._queue: "queue.Queue[Run]" = queue.Queue(maxsize=queue_size)
        self._callback: Optional[RunCallback] = None

        self._lock = threading.Lock()
        self._pending: dict[str, _PendingFile] = {}
        self._emitted: set[str] = set()

        self._root: Optional[Path] = None
        self._observer: Optional[Observer] = None
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def is_watching(self) -> bool:
        return self._root is not None

    @property
    def watched_path(self) -> Optional[Path]:
        return self._root

    def subscribe(self, callback: Optional[RunCallback]) -> None:
        """Install the consumer of new runs, replacing any previous one."""
        self._callback = callback

    def start(self, root: Path) -> bool:
        """
        Start watching root, stopping any active watch first.

        Returns:
            True if the observer started, False if it failed (logged)

        Raises:
            FileNotFoundError: root is not a directory
        """
        self.stop()

        root = Path(root)
        if not root.is_dir():
            raise FileNotFoundError(f"Watch folder not found: {root}")

        observer = Observer()
        observer.daemon = True
        try:
            observer.schedule(_RunFileHandler(self), str(root), recursive=True)
            observer.start()
        except OSError as e:
            logger.error(f"Could not watch {root}: {e}")
            return False

        self._observer = observer
        self._root = root
        self._stop_event = threading.Event()
        self._threads = [
            threading.Thread(target=self._stabilize_loop, name="run-watcher-stabilizer", daemon=True),
            threading.Thread(target=self._dispatch_loop, name="run-watcher-dispatch", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

        logger.info(f"Watching run folder: {root}")
        return True

    def stop(self) -> None:
        """Stop the observer and worker threads."""
        if self._root is None:
            return

        self._stop_event.set()
        if self._observer is not None:
            try:
                self._observer.stop()
                self._observer.join(timeout=5)
            except RuntimeError as e:
                logger.warning(f"Error stopping observer: {e}")
            self._observer = None

        for thread in self._threads:
            thread.join(timeout=5)
        self._threads = []

        with self._lock:
            self._pending.clear()
            self._emitted.clear()

        logger.info(f"Stopped watching {self._root}")
        self._root = None

    # --- Event intake (observer thread) ---

    def note_created(self, path: str) -> None:
        """Register a new .run file as pending."""
        if not path.endswith(RUN_FILE_EXTENSION):
            return
        with self._lock:
            if path in self._emitted:
                return
            self._pending[path] = _PendingFile(size=_file_size(path), last_event=self._clock())

    def note_modified(self, path: str) -> None:
        """Refresh a pending file; modifications of other files are ignored."""
        with self._lock:
            pending = self._pending.get(path)
            if pending is not None:
                pending.size = _file_size(path)
                pending.last_event = self._clock()

    # --- Stabilizer ---

    def check_pending(self) -> list[Run]:
        """
        Emit every pending file that has been quiet for the window.

        Returns:
            Runs parsed and queued by this call
        """
        now = self._clock()
        ready: list[str] = []

        with self._lock:
            for path, pending in list(self._pending.items()):
                size = _file_size(path)
                if size != pending.size:
                    pending.size = size
                    pending.last_event = now
                    continue
                if now - pending.last_event >= self.quiescence_seconds:
                    del self._pending[path]
                    self._emitted.add(path)
                    ready.append(path)

        runs = []
        for path in ready:
            run = self._read_run(Path(path))
            if run is None:
                continue
            try:
                self._queue.put_nowait(run)
            except queue.Full:
                logger.warning(f"Run queue full, dropping new run {run.id}")
                continue
            runs.append(run)
        return runs

    def _read_run(self, path: Path) -> Optional[Run]:
        root = self._root
        if root is None:
            return None
        try:
            content = safe_read_file(path, [root])
            run = parse_run_file(path, content)
        except PathTraversalError as e:
            logger.error(f"Rejected watched file outside {root}: {e}")
            return None
        except (OSError, UnicodeDecodeError, RunParseError) as e:
            logger.warning(f"Could not read new run file {path}: {e}")
            return None

        logger.info(f"New run detected: {run.id} ({run.character.value})")
        return run

    def _stabilize_loop(self) -> None:
        stop = self._stop_event
        while not stop.wait(self.poll_interval):
            self.check_pending()

    # --- Dispatcher ---

    def _dispatch_loop(self) -> None:
        stop = self._stop_event
        timeout = min(self.poll_interval, 0.5)
        while not stop.is_set():
            try:
                run = self._queue.get(timeout=timeout)
            except queue.Empty:
                continue

            callback = self._callback
            if callback is None:
                logger.debug(f"No subscriber for new run {run.id}")
                continue
            try:
                callback(run)
            except Exception as e:
                logger.error(f"New run callback failed for {run.id}: {e}")
