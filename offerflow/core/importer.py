"""
Directory watcher for incoming offer PDFs.

Polls a directory with watchdog, waits until each new or changed PDF has
stopped growing, parses it into the offer payload and blocks on the
bounded staging queue until there is room for it.
"""
import logging
import os
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers.polling import PollingObserver

from .errors import DocumentError
from .lifecycle import Worker
from .parsers import build_envelope, convert_to_json, extract_pdf_text, parse_offer_text

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSION = ".pdf"
STABILIZE_INTERVAL_SECONDS = 0.3
BYTES_PER_MB = 1024 * 1024


def wait_for_stable_size(
    path: Path,
    interval: float = STABILIZE_INTERVAL_SECONDS,
    size_of: Callable[[Path], int] = os.path.getsize,
    stop_event: Optional[threading.Event] = None,
) -> Optional[int]:
    """
    Poll a file's size until two consecutive reads agree.

    Returns the stable size, or None if stop_event was set while waiting.
    """
    previous = size_of(path)
    while True:
        if stop_event is not None:
            if stop_event.wait(interval):
                return None
        else:
            time.sleep(interval)
        current = size_of(path)
        if current == previous:
            return current
        previous = current


class _OfferFileHandler(FileSystemEventHandler):
    """Forward file events in the watched directory to the watcher."""

    def __init__(self, watcher: "DirectoryWatcher"):
        self.watcher = watcher

    def on_created(self, event):
        if event.is_directory:
            return
        self.watcher.handle_file(Path(event.src_path))

    def on_modified(self, event):
        if event.is_directory:
            return
        self.watcher.handle_file(Path(event.src_path))

    def on_moved(self, event):
        if event.is_directory:
            return
        self.watcher.forget(Path(event.src_path))
        # Files renamed into place (e.g. "upload.part" -> "offer.pdf")
        self.watcher.handle_file(Path(event.dest_path))

    def on_deleted(self, event):
        if event.is_directory:
            return
        self.watcher.forget(Path(event.src_path))


class DirectoryWatcher(Worker):
    """
    Watches one directory for offer PDFs and enqueues their envelopes.

    Args:
        directory: directory to watch (not recursive)
        output: bounded staging queue receiving envelope JSON strings
        max_file_size_mb: files larger than this are skipped
        poll_interval: seconds between directory scans
        extract_text: turns a document path into raw text
        stabilize_interval: seconds between size polls while a file grows
    """

    def __init__(
        self,
        directory: Path,
        output: "queue.Queue[str]",
        max_file_size_mb: int = 10,
        poll_interval: float = 5.0,
        extract_text: Callable[[Path], str] = extract_pdf_text,
        stabilize_interval: float = STABILIZE_INTERVAL_SECONDS,
    ):
        super().__init__("directory-watcher")
        self.directory = Path(directory)
        self.output = output
        self.max_file_size_mb = max_file_size_mb
        self.poll_interval = poll_interval
        self.extract_text = extract_text
        self.stabilize_interval = stabilize_interval

        self._last_modified: Dict[Path, float] = {}
        self.ready = threading.Event()
        self._observer: Optional[PollingObserver] = None
        self._stopper = ThreadPoolExecutor(max_workers=1, thread_name_prefix="watcher-stop")

    def run(self):
        self._observer = PollingObserver(timeout=self.poll_interval)
        self._observer.schedule(_OfferFileHandler(self), str(self.directory), recursive=False)
        self._observer.start()
        self.ready.set()
        logger.info(f"Watching {self.directory} for new offers every {self.poll_interval}s")

        while not self._stop_event.wait(1.0):
            pass

        self._stop_observer_async()

    def stop(self):
        """Flag the watcher to stop. Never blocks on the file monitor."""
        super().stop()
        if self._observer is not None:
            self._stop_observer_async()

    def join(self, timeout: Optional[float] = None):
        super().join(timeout)
        self._stopper.shutdown(wait=True)

    def _stop_observer_async(self):
        try:
            self._stopper.submit(self._stop_observer)
        except RuntimeError as e:
            # Executor already shut down; the observer was stopped before that
            logger.debug(f"Error submitting stop monitor task: {e}")

    def _stop_observer(self):
        observer = self._observer
        if observer is None or not observer.is_alive():
            return
        try:
            observer.stop()
            observer.join(self.poll_interval + 1)
            logger.info("File monitor stopped")
        except Exception as e:
            logger.error(f"Error stopping file monitor: {e}")

    # ------------------------------------------------------------------
    # Per-file handling
    # ------------------------------------------------------------------

    def handle_file(self, path: Path):
        """Process one file notification. Errors are logged, never raised."""
        if self.stopped:
            return
        if path.suffix.lower() != DOCUMENT_EXTENSION:
            logger.info(f"Non PDF-file detected and ignored: {path.name}")
            return

        logger.info(f"Detected new file {path.name}")
        try:
            if wait_for_stable_size(path, self.stabilize_interval, stop_event=self._stop_event) is None:
                return

            modified = path.stat().st_mtime
            if self._last_modified.get(path) == modified:
                logger.debug(f"{path.name} unchanged since last run, ignoring")
                return
            self._last_modified[path] = modified

            size = path.stat().st_size
            if size > self.max_file_size_mb * BYTES_PER_MB:
                logger.warning(
                    f"File {path.name} exceeds max size ({self.max_file_size_mb} MB). Skipping."
                )
                return

            envelope = self.process_document(path)
        except FileNotFoundError:
            self.forget(path)
            logger.warning(f"File {path.name} disappeared before it could be processed")
            return
        except DocumentError as e:
            logger.error(f"Error while processing file {path.name}: {e}")
            return
        except Exception:
            logger.exception(f"Error while processing file {path.name}")
            return

        if self.put(self.output, envelope):
            logger.info(f"Queued offer from {path.name}")

    def forget(self, path: Path):
        """Drop the modification time remembered for a file that is gone."""
        self._last_modified.pop(path, None)

    def process_document(self, path: Path) -> str:
        """Extract, parse and wrap one document into its envelope JSON."""
        payload = convert_to_json(parse_offer_text(self.extract_text(path)))
        logger.debug("Converted to JSON String")
        return build_envelope(payload, path)
