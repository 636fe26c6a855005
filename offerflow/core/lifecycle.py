"""
Thread lifecycle helpers shared by every long-lived pipeline stage.
"""
import getpass
import logging
import platform
import queue
import signal
import sys
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# How long blocking queue operations wait before re-checking the stop flag
QUEUE_POLL_SECONDS = 0.5


class Worker:
    """
    A stage that runs its loop on one dedicated thread.

    Subclasses implement run(). stop() is cooperative: it sets the stop
    event and the loop is expected to notice it within QUEUE_POLL_SECONDS.
    """

    def __init__(self, name: str):
        self.name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            logger.warning(f"{self.name} already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_safely, name=self.name, daemon=True)
        self._thread.start()

    def stop(self):
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def run(self):
        raise NotImplementedError

    def _run_safely(self):
        try:
            self.run()
        except Exception:
            logger.exception(f"{self.name} terminated unexpectedly")
        finally:
            logger.info(f"{self.name} stopped")

    def take(self, source: "queue.Queue[Any]") -> Optional[Any]:
        """Blocking take that gives up as soon as the worker is stopped."""
        while not self.stopped:
            try:
                return source.get(timeout=QUEUE_POLL_SECONDS)
            except queue.Empty:
                continue
        return None

    def put(self, target: "queue.Queue[Any]", item: Any) -> bool:
        """Blocking put that gives up as soon as the worker is stopped."""
        while not self.stopped:
            try:
                target.put(item, timeout=QUEUE_POLL_SECONDS)
                return True
            except queue.Full:
                continue
        return False


def stop_quietly(name: str, action: Callable[[], Any]):
    """Run one shutdown step, logging instead of raising on failure."""
    try:
        action()
    except Exception as e:
        logger.error(f"Error stopping {name}: {e}")


def log_startup(service: str):
    """Log a banner with the runtime environment of a service process."""
    try:
        user = getpass.getuser()
    except Exception:
        user = "unknown"
    logger.info(f"Starting {service}")
    logger.info(f"Python {sys.version.split()[0]} on {platform.system()} {platform.release()} ({platform.machine()})")
    logger.info(f"Running as {user}")


def wait_for_shutdown(stop_event: Optional[threading.Event] = None):
    """Block the main thread until SIGINT/SIGTERM (or stop_event is set)."""
    stop_event = stop_event or threading.Event()

    def _request_stop(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGTERM, _request_stop)
    signal.signal(signal.SIGINT, _request_stop)

    while not stop_event.wait(1.0):
        pass
