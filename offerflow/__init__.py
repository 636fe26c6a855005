"""offerflow - offer ingestion and invoice reconciliation pipeline."""

__version__ = "1.0.0"
