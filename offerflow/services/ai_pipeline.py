#!/usr/bin/env python3
"""
Offer pipeline service.

Runs the REST API together with OfferInput ingestion and the invoice
reconciliation scheduler (both started from the application lifespan).
"""
import logging
import sys

import uvicorn

from offerflow.core.config import BusSettings, configure_logging, get_settings
from offerflow.core.errors import ConfigurationError
from offerflow.core.lifecycle import log_startup

logger = logging.getLogger(__name__)


def main() -> int:
    try:
        settings = get_settings()
        BusSettings.from_env()
    except ConfigurationError as e:
        configure_logging()
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(settings.log_level)
    log_startup("offer pipeline")

    uvicorn.run(
        "offerflow.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
