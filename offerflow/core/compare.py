"""
Offer/invoice comparison delegated to an LLM.

compare() returns immediately with a Future; the prompt and the LLM call
run on a small thread pool so one slow request never holds up the
scheduler or the other invoices of the same tick.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from . import llm

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = (
    "Compare the given offer with the corresponding Invoice.\n"
    "Check if the {offer_number} = {invoice_offer_number}, {offer_date} = {invoice_date}, "
    "{offer_value} = {invoice_total_sum} & {offer_customer} = {invoice_customer}\n"
    "Only return 'true', when their contents match:\n"
    "\n"
    'please only answer with "true" or "false"'
)


@dataclass(frozen=True)
class OfferFacts:
    """The offer fields a comparison needs, detached from any session."""
    offer_number: Optional[str]
    offer_date: Optional[date]
    offer_value: Optional[Decimal]
    customer_id: Optional[int]

    def is_complete(self) -> bool:
        return self.offer_number is not None and self.offer_value is not None


@dataclass(frozen=True)
class InvoiceFacts:
    invoice_id: int
    invoice_number: Optional[str]
    invoice_date: Optional[date]
    invoice_total_sum: Optional[Decimal]
    offer_number: Optional[str]
    customer_id: Optional[int]

    def is_complete(self) -> bool:
        return self.invoice_number is not None and self.invoice_total_sum is not None


def build_prompt(offer: OfferFacts, invoice: InvoiceFacts) -> str:
    return PROMPT_TEMPLATE.format(
        offer_number=offer.offer_number,
        invoice_offer_number=invoice.offer_number,
        offer_date=offer.offer_date,
        invoice_date=invoice.invoice_date,
        offer_value=offer.offer_value,
        invoice_total_sum=invoice.invoice_total_sum,
        offer_customer=offer.customer_id,
        invoice_customer=invoice.customer_id,
    )


def is_match(response: Optional[str]) -> bool:
    """Only the literal answer "true" counts as a match."""
    return response is not None and response.strip() == "true"


class CompareService:
    """
    Runs offer/invoice comparisons asynchronously.

    Args:
        complete: prompt -> response text (None on failure); defaults to llm.complete
        workers: size of the comparison thread pool
    """

    def __init__(self, complete: Optional[Callable[[str], Optional[str]]] = None, workers: int = 4):
        self._complete = complete
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="compare")

    def compare(self, offer: OfferFacts, invoice: InvoiceFacts) -> "Future[bool]":
        return self._executor.submit(self.compare_now, offer, invoice)

    def compare_now(self, offer: OfferFacts, invoice: InvoiceFacts) -> bool:
        """Blocking comparison. Never raises; any failure is a non-match."""
        logger.info(f"Starting comparison of invoice {invoice.invoice_id} with offer {offer.offer_number}")
        try:
            if not offer.is_complete():
                logger.warning(f"Offer {offer.offer_number} is missing number or value, skipping comparison")
                return False
            if not invoice.is_complete():
                logger.warning(f"Invoice {invoice.invoice_id} is missing number or total, skipping comparison")
                return False

            complete = self._complete or llm.complete
            response = complete(build_prompt(offer, invoice))
            result = is_match(response)
            logger.info(f"Comparison of invoice {invoice.invoice_id}: {result} (response: {response!r})")
            return result
        except Exception as e:
            logger.error(f"Comparison of invoice {invoice.invoice_id} failed: {e}")
            return False

    def shutdown(self, wait: bool = False):
        self._executor.shutdown(wait=wait, cancel_futures=True)
