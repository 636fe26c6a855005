"""
Offer ingestion: turns raw OfferInput envelopes into stored offers.

The broker consumer only copies each delivery into a bounded staging
queue. OfferProcessor drains that queue on its own thread, normalizes the
nested payload, stores Customer/Offer/OfferItems in one unit of work and
republishes the normalized offer to ProcessedOffers.
"""
import json
import logging
import queue
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .bus import BusTransport, QueueConsumer
from .config import OFFER_INPUT_QUEUE, PROCESSED_OFFERS_QUEUE, BusSettings, PipelineSettings
from .db import Offer, OfferItem, add_offer, find_or_create_customer, get_db, get_offer
from .errors import DuplicateOfferError, OfferProcessingError
from .lifecycle import Worker, stop_quietly
from .schemas import CustomerDto, OfferDto, OfferItemDto

logger = logging.getLogger(__name__)

DATE_FORMAT = "%d.%m.%Y"
CUSTOMER_CONFLICT_RETRIES = 1
STOP_TIMEOUT_SECONDS = 5


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------

def parse_envelope(raw: str) -> Dict[str, Any]:
    """Return the nested offer object of a {content, path} envelope."""
    try:
        envelope = json.loads(raw)
    except json.JSONDecodeError as e:
        raise OfferProcessingError(f"Malformed envelope: {e}") from e
    if not isinstance(envelope, dict) or "content" not in envelope:
        raise OfferProcessingError("Envelope has no 'content' field")

    content = envelope["content"]
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except json.JSONDecodeError as e:
            raise OfferProcessingError(f"Malformed offer content: {e}") from e
    if not isinstance(content, dict):
        raise OfferProcessingError("Offer content is not a JSON object")
    return content


def _text(node: Dict[str, Any], key: str) -> str:
    value = node.get(key)
    return "" if value is None else str(value).strip()


def parse_date(value: str, field: str) -> date:
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise OfferProcessingError(f"Invalid {field} '{value}', expected dd.MM.yyyy") from None


def _decimal(value: str, field: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise OfferProcessingError(f"Invalid {field} '{value}'") from None


def build_offer_dto(content: Dict[str, Any]) -> OfferDto:
    """Map the extractor's offer object onto the normalized OfferDto."""
    items = content.get("invoiceItems") or []
    if not isinstance(items, list):
        raise OfferProcessingError("'invoiceItems' is not a list")
    if not all(isinstance(item, dict) for item in items):
        raise OfferProcessingError("'invoiceItems' entries must be objects")

    try:
        return OfferDto(
            offer_number=_text(content, "offerNumber"),
            offer_value=_decimal(_text(content, "totalPrice"), "totalPrice"),
            offer_date=parse_date(_text(content, "offerDate"), "offerDate"),
            offer_valid_till=parse_date(_text(content, "validTillDate"), "validTillDate"),
            customer_dto=CustomerDto(
                company_name=_text(content, "companyName"),
                address_street=_text(content, "addressStreet"),
                address_house_number=_text(content, "addressHouseNumber"),
                post_code=_text(content, "postCode"),
                city=_text(content, "city"),
                phone=_text(content, "phone"),
                mail=_text(content, "mail"),
            ),
            offer_items_dto=[
                OfferItemDto(
                    pos_number=_text(item, "posNumber"),
                    description=_text(item, "description"),
                    amount=_text(item, "amount"),
                    price=_decimal(_text(item, "price"), "price"),
                )
                for item in items
            ],
        )
    except ValidationError as e:
        raise OfferProcessingError(f"Invalid offer payload: {e}") from e


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def process_offer(raw: str, session: Session) -> OfferDto:
    """
    Normalize one raw envelope and store it.

    The customer is found by (companyName, addressStreet) or created;
    the offer and its items are added in the same session, so a failure
    anywhere rolls back the whole message.

    Raises:
        OfferProcessingError: malformed payload or duplicate offer number
        IntegrityError: a concurrent insert of the same customer won the race
    """
    dto = build_offer_dto(parse_envelope(raw))

    customer = find_or_create_customer(session, **dto.customer_dto.model_dump())

    if get_offer(session, dto.offer_number) is not None:
        raise DuplicateOfferError(f"Offer {dto.offer_number} already exists")

    offer = Offer(
        offer_number=dto.offer_number,
        offer_date=dto.offer_date,
        offer_valid_till=dto.offer_valid_till,
        offer_value=dto.offer_value,
        customer=customer,
        items=[
            OfferItem(
                pos_number=item.pos_number,
                description=item.description,
                amount=item.amount,
                price=item.price,
            )
            for item in dto.offer_items_dto
        ],
    )
    add_offer(session, offer)
    logger.info(f"Stored offer {dto.offer_number} with {len(offer.items)} items for customer {customer.id}")
    return dto


def ingest_offer(raw: str) -> str:
    """Process one envelope in its own unit of work and return the normalized JSON."""
    attempt = 0
    while True:
        try:
            with get_db() as session:
                dto = process_offer(raw, session)
            return dto.to_json()
        except IntegrityError as e:
            if attempt >= CUSTOMER_CONFLICT_RETRIES:
                raise OfferProcessingError(f"Could not store offer: {e.orig}") from e
            attempt += 1
            logger.warning("Customer was created concurrently, retrying offer")


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------

class OfferProcessor(Worker):
    """Takes raw envelopes from the staging queue, ingests and republishes them."""

    def __init__(self, source: "queue.Queue[str]", bus: BusTransport, output_queue: str = PROCESSED_OFFERS_QUEUE):
        super().__init__("offer-processor")
        self.source = source
        self.bus = bus
        self.output_queue = output_queue

    def run(self):
        logger.info("Offer processor started")
        while not self.stopped:
            raw = self.take(self.source)
            if raw is None:
                continue
            self.handle(raw)

    def handle(self, raw: str) -> Optional[str]:
        """Process one message. Errors are logged and the message dropped."""
        try:
            normalized = ingest_offer(raw)
            self.bus.publish(self.output_queue, normalized)
            logger.info(f"Published processed offer to {self.output_queue}")
            return normalized
        except Exception:
            logger.exception(f"Failed to process offer, dropping message: {raw}")
            return None


class IngestionPipeline:
    """OfferInput consumer, staging queue and offer processor of the pipeline service."""

    def __init__(self, bus: BusTransport, staging_capacity: int = 100):
        self.bus = bus
        self.staging: "queue.Queue[str]" = queue.Queue(maxsize=staging_capacity)
        self.processor = OfferProcessor(self.staging, bus)
        self.consumer: Optional[QueueConsumer] = None

    def start(self):
        self.bus.connect()
        self.bus.declare_queue(OFFER_INPUT_QUEUE)
        self.bus.declare_queue(PROCESSED_OFFERS_QUEUE)
        self.consumer = self.bus.consumer(OFFER_INPUT_QUEUE, self._enqueue)
        self.processor.start()
        self.consumer.start()

    def _enqueue(self, body: str):
        # Runs on the broker consumer thread: hand off, never process here
        self.consumer.put(self.staging, body)

    def stop(self):
        if self.consumer is not None:
            stop_quietly("offer input consumer", self.consumer.stop)
        stop_quietly("offer processor", self.processor.stop)
        if self.consumer is not None:
            stop_quietly("offer input consumer", lambda: self.consumer.join(STOP_TIMEOUT_SECONDS))
        stop_quietly("offer processor", lambda: self.processor.join(STOP_TIMEOUT_SECONDS))
        stop_quietly("message bus", self.bus.close)


def start_ingestion(settings: PipelineSettings, bus_settings: Optional[BusSettings] = None) -> IngestionPipeline:
    """Connect to the broker and start consuming OfferInput."""
    bus = BusTransport(bus_settings or BusSettings.from_env())
    pipeline = IngestionPipeline(bus, staging_capacity=settings.staging_capacity)
    pipeline.start()
    return pipeline
