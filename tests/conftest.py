"""
Test configuration and fixtures for the offerflow test suite.

Provides:
- In-memory SQLite test database (fresh per test)
- FastAPI TestClient fixture with the lifespan side effects patched out
- In-memory message bus (kombu "memory" transport)
- Sample offer text and factory functions for creating test data
"""
import json
import threading
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from offerflow.core.bus import BusTransport
from offerflow.core.config import BusSettings
from offerflow.core.db import Base, Customer, Invoice, Offer, OfferItem, configure_database, get_db, init_db


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

SAMPLE_OFFER_TEXT = "\n".join([
    "Angebot",
    "GeoBau Solutions GmbH",
    "Bauhofstraße 7",
    "10115 Berlin",
    "Telefon: +49 30 123456789",
    "E-Mail: kontakt@geobau-solutions.de",
    "An:",
    "Tunnelgräber GmbH",
    "Herr Max Mustermann",
    "Bohrweg 12",
    "12345 Tiefstadt",
    "Angebotsnummer: ANG-20250518-8266",
    "Datum: 18.05.2025",
    "Pos. Beschreibung Menge Preis (EUR)",
    "B001 Tunnelbohrung 50m Tiefe 1 4000.00",
    "B002 Stahlbetonverstärkung 3 850.00",
    "B003 Baugrundanalyse vor Ort 2 620.00",
    "B004 Sprengvorbereitung & Absicherung 1 2900.00",
    "Gesamtpreis: 10690.00 EUR",
    "Dieses Angebot ist freibleibend und gültig bis zum 01.06.2025.",
    "Mit freundlichen Grüßen",
    "GeoBau Solutions GmbH",
])


def offer_content(**overrides) -> dict:
    """Structured offer payload as produced by the PDF parser."""
    content = {
        "companyName": "GeoBau Solutions GmbH",
        "addressStreet": "Bauhofstraße",
        "addressHouseNumber": "7",
        "postCode": "10115",
        "city": "Berlin",
        "phone": "+49 30 123456789",
        "mail": "kontakt@geobau-solutions.de",
        "offerNumber": "ANG-20250518-8266",
        "offerDate": "18.05.2025",
        "totalPrice": "10690.00",
        "validTillDate": "01.06.2025",
        "invoiceItems": [
            {"posNumber": 1, "description": "Tunnelbohrung 50m Tiefe", "amount": 1, "price": "4000.00"},
            {"posNumber": 2, "description": "Stahlbetonverstärkung", "amount": 3, "price": "850.00"},
            {"posNumber": 3, "description": "Baugrundanalyse vor Ort", "amount": 2, "price": "620.00"},
            {"posNumber": 4, "description": "Sprengvorbereitung & Absicherung", "amount": 1, "price": "2900.00"},
        ],
    }
    content.update(overrides)
    return content


def offer_envelope(**overrides) -> str:
    """Raw OfferInput message wrapping an offer payload."""
    return json.dumps({
        "content": json.dumps(offer_content(**overrides)),
        "path": "/offers/offer.pdf",
    })


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def test_db():
    """Provide a fresh in-memory SQLite database for each test."""
    engine = configure_database("sqlite://")
    init_db()
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def client(test_db):
    """
    Provide a FastAPI TestClient on the test database.

    The ingestion pipeline and scheduler are patched out so the lifespan
    does not connect to a broker or start APScheduler.
    """
    from offerflow.api.main import app

    with patch("offerflow.api.main.start_ingestion", return_value=None), \
         patch("offerflow.api.main.start_scheduler"), \
         patch("offerflow.api.main.stop_scheduler"):
        with TestClient(app) as c:
            yield c


# ---------------------------------------------------------------------------
# Bus fixtures
# ---------------------------------------------------------------------------

BUS_SETTINGS = BusSettings(host="localhost", port=5672, username="guest", password="guest")


@pytest.fixture()
def memory_bus():
    """A connected BusTransport on kombu's in-process memory transport."""
    bus = BusTransport(BUS_SETTINGS, transport="memory")
    bus.connect()
    yield bus
    bus.close()


@pytest.fixture()
def queue_name():
    """Unique queue name; memory transport queues are shared process-wide."""
    return f"test-{uuid.uuid4().hex[:8]}"


def collect_messages(bus: BusTransport, queue: str, count: int, timeout: float = 10.0) -> list:
    """Consume until `count` messages arrived from `queue` (or timeout)."""
    received = []
    arrived = threading.Event()

    def on_message(body):
        received.append(body)
        if len(received) >= count:
            arrived.set()

    consumer = bus.consumer(queue, on_message)
    consumer.start()
    try:
        arrived.wait(timeout)
    finally:
        consumer.stop()
        consumer.join(5)
    return received


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------

def create_customer(
    company_name: str = "GeoBau Solutions GmbH",
    address_street: str = "Bauhofstraße",
    **fields,
) -> int:
    with get_db() as session:
        customer = Customer(company_name=company_name, address_street=address_street, **fields)
        session.add(customer)
        session.flush()
        return customer.id


def create_offer(
    customer_id: int,
    offer_number: str = "ANG-1",
    offer_value: Decimal = Decimal("10690.00"),
    offer_date: date = date(2025, 5, 18),
    offer_valid_till: date = date(2025, 6, 1),
    items: Optional[list] = None,
) -> str:
    with get_db() as session:
        offer = Offer(
            offer_number=offer_number,
            offer_date=offer_date,
            offer_valid_till=offer_valid_till,
            offer_value=offer_value,
            customer_id=customer_id,
            items=[
                OfferItem(pos_number=pos, description=desc, amount=amount, price=price)
                for pos, desc, amount, price in (items or [(1, "Tunnelbohrung", 1, Decimal("4000.00"))])
            ],
        )
        session.add(offer)
        return offer_number


def create_invoice(
    customer_id: int,
    offer_number: Optional[str] = "ANG-1",
    invoice_number: str = "RE-1",
    invoice_total_sum: Optional[Decimal] = Decimal("10690.00"),
    invoice_date: date = date(2025, 5, 30),
    is_checked: Optional[date] = None,
    is_valid: bool = False,
) -> int:
    with get_db() as session:
        invoice = Invoice(
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            invoice_total_sum=invoice_total_sum,
            is_checked=is_checked,
            is_valid=is_valid,
            customer_id=customer_id,
            offer_number=offer_number,
        )
        session.add(invoice)
        session.flush()
        return invoice.invoice_id


def load_invoice(invoice_id: int) -> Invoice:
    with get_db() as session:
        return session.get(Invoice, invoice_id)
