#!/usr/bin/env python3
"""
Persistence service.

Consumes ProcessedOffers and writes every message to
OFFER_PERSISTENCE_PATH as offer_<uuid>.json.
"""
import logging
import sys

from offerflow.core.bus import BusTransport, QueueConsumer
from offerflow.core.config import PROCESSED_OFFERS_QUEUE, BusSettings, PersistenceSettings, configure_logging
from offerflow.core.errors import ConfigurationError
from offerflow.core.lifecycle import log_startup, stop_quietly, wait_for_shutdown
from offerflow.core.persistence import PersistenceSink

logger = logging.getLogger(__name__)

STOP_TIMEOUT_SECONDS = 10


def start_persistence(bus: BusTransport, sink: PersistenceSink) -> QueueConsumer:
    """Connect, bind to ProcessedOffers and start consuming into the sink."""
    bus.connect()
    handle = bus.get_queue(PROCESSED_OFFERS_QUEUE)
    consumer = handle.consumer(sink.save)
    consumer.start()
    logger.info(f"Persisting {PROCESSED_OFFERS_QUEUE} to {sink.output_dir}")
    return consumer


def main() -> int:
    try:
        settings = PersistenceSettings.from_env()
        bus_settings = BusSettings.from_env()
    except ConfigurationError as e:
        configure_logging()
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(settings.log_level)
    log_startup("persistence service")

    bus = BusTransport(bus_settings)
    try:
        sink = PersistenceSink(settings.output_path)
        consumer = start_persistence(bus, sink)
    except Exception as e:
        logger.error(f"Failed to start persistence service: {e}")
        stop_quietly("message bus", bus.close)
        return 1

    try:
        wait_for_shutdown()
    finally:
        stop_quietly("persistence consumer", consumer.stop)
        stop_quietly("persistence consumer", lambda: consumer.join(STOP_TIMEOUT_SECONDS))
        stop_quietly("message bus", bus.close)
    logger.info("Persistence service stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
