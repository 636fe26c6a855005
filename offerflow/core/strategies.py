"""
Offer dispatch strategies and the document processor that drives them.

The importer hands every extracted offer envelope to exactly one
strategy, chosen once at startup from OFFER_STRATEGY.
"""
import logging
import queue
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Optional, Union

from .bus import BusTransport
from .config import OFFER_INPUT_QUEUE, OfferStrategy
from .errors import ConfigurationError, TransportError
from .lifecycle import QUEUE_POLL_SECONDS, Worker

logger = logging.getLogger(__name__)

__all__ = [
    "OfferStrategy",
    "LoggingOfferStrategy",
    "MessageBusOfferStrategy",
    "build_strategy",
    "DocumentProcessor",
]


class LoggingOfferStrategy:
    """Logs each payload instead of sending it anywhere. For local debugging."""

    kind = OfferStrategy.LOGGING

    def __init__(self):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="offer-log")

    def handle(self, payload: str) -> "Future[None]":
        return self._executor.submit(self._log, payload)

    def _log(self, payload: str):
        logger.info(f"Offer payload:\n{payload}")

    def close(self):
        self._executor.shutdown(wait=True)


class MessageBusOfferStrategy:
    """Publishes each payload to the OfferInput queue."""

    kind = OfferStrategy.MESSAGE_BUS

    def __init__(self, bus: BusTransport, queue_name: str = OFFER_INPUT_QUEUE):
        self.bus = bus
        self.queue_name = queue_name
        try:
            self.bus.connect()
            self.bus.declare_queue(queue_name)
        except TransportError as e:
            raise TransportError(f"Failed to initialize message bus strategy: {e}") from e
        # One worker keeps publishes in the order the payloads were taken
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="offer-publish")

    def handle(self, payload: str) -> "Future[None]":
        return self._executor.submit(self.bus.publish, self.queue_name, payload)

    def close(self):
        self._executor.shutdown(wait=True)


DispatchStrategy = Union[LoggingOfferStrategy, MessageBusOfferStrategy]


def build_strategy(kind: OfferStrategy, bus: Optional[BusTransport] = None) -> DispatchStrategy:
    """Create the configured dispatch strategy."""
    if kind is OfferStrategy.LOGGING:
        return LoggingOfferStrategy()
    if kind is OfferStrategy.MESSAGE_BUS:
        if bus is None:
            raise ConfigurationError("MessageBusStrategy requires a bus transport")
        return MessageBusOfferStrategy(bus)
    raise ConfigurationError(f"Unknown offer strategy: {kind}")


class DocumentProcessor(Worker):
    """
    Drains the staging queue into the dispatch strategy.

    One dispatch is in flight at a time: the next payload is only taken
    once the previous one has been handled, so a slow broker fills the
    staging queue and blocks the watcher.
    """

    def __init__(self, source: "queue.Queue[str]", strategy: DispatchStrategy):
        super().__init__("document-processor")
        self.source = source
        self.strategy = strategy

    def run(self):
        logger.info(f"Document processor started ({self.strategy.kind.value})")
        while not self.stopped:
            payload = self.take(self.source)
            if payload is None:
                continue
            try:
                future = self.strategy.handle(payload)
            except Exception:
                logger.exception("Failed to process document")
                continue
            future.add_done_callback(_log_dispatch_failure)
            self._await(future)

    def _await(self, future: Future):
        """Wait for a dispatch to finish, giving up as soon as the worker is stopped."""
        while not self.stopped:
            done, _ = wait([future], timeout=QUEUE_POLL_SECONDS)
            if done:
                return


def _log_dispatch_failure(future: Future):
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"Failed to process document: {error}")
