#!/usr/bin/env python3
"""
Document importer service.

Watches PATH_OFFERS for offer PDFs and dispatches each parsed offer with
the configured strategy (log it, or publish it to OfferInput).
"""
import logging
import queue
import sys
from typing import Optional

from offerflow.core.bus import BusTransport
from offerflow.core.config import BusSettings, ImporterSettings, OfferStrategy, configure_logging
from offerflow.core.errors import ConfigurationError, TransportError
from offerflow.core.importer import DirectoryWatcher
from offerflow.core.lifecycle import log_startup, stop_quietly, wait_for_shutdown
from offerflow.core.strategies import DocumentProcessor, build_strategy

logger = logging.getLogger(__name__)

STOP_TIMEOUT_SECONDS = 10


class DocumentImporter:
    """Watcher, staging queue, document processor and dispatch strategy of one importer."""

    def __init__(self, settings: ImporterSettings, bus: Optional[BusTransport] = None):
        self.settings = settings
        self.bus = bus
        self.staging: "queue.Queue[str]" = queue.Queue(maxsize=settings.queue_capacity)
        self.strategy = build_strategy(settings.offer_strategy, bus)
        self.processor = DocumentProcessor(self.staging, self.strategy)
        self.watcher = DirectoryWatcher(
            settings.path_offers,
            self.staging,
            max_file_size_mb=settings.max_file_size_mb,
            poll_interval=settings.poll_interval,
        )

    def start(self):
        self.processor.start()
        self.watcher.start()

    def stop(self):
        """Stop producers before consumers, and the broker connection last."""
        stop_quietly("file import", self.watcher.stop)
        stop_quietly("document processor", self.processor.stop)
        stop_quietly("file import", lambda: self.watcher.join(STOP_TIMEOUT_SECONDS))
        stop_quietly("document processor", lambda: self.processor.join(STOP_TIMEOUT_SECONDS))
        stop_quietly("offer strategy", self.strategy.close)
        if self.bus is not None:
            stop_quietly("message bus", self.bus.close)


def main() -> int:
    try:
        settings = ImporterSettings.from_env()
        bus_settings = BusSettings.from_env()
    except ConfigurationError as e:
        configure_logging()
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(settings.log_level)
    log_startup("document importer")
    logger.info(
        f"Watching {settings.path_offers.resolve()} (max {settings.max_file_size_mb} MB, "
        f"strategy {settings.offer_strategy.value})"
    )

    bus = BusTransport(bus_settings) if settings.offer_strategy is OfferStrategy.MESSAGE_BUS else None
    try:
        importer = DocumentImporter(settings, bus)
    except (ConfigurationError, TransportError) as e:
        logger.error(f"Failed to start document importer: {e}")
        if bus is not None:
            stop_quietly("message bus", bus.close)
        return 1

    importer.start()
    try:
        wait_for_shutdown()
    finally:
        importer.stop()
    logger.info("Document importer stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
