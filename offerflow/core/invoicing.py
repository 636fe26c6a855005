"""
Invoice submission and lookup.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from .db import Invoice, InvoiceItem, add_invoice, find_or_create_customer, get_invoice_by_offer_number, get_offer
from .schemas import CustomerDto, InvoiceItemDto, InvoiceRequest, InvoiceResponse

logger = logging.getLogger(__name__)


def save_invoice(session: Session, request: InvoiceRequest) -> int:
    """
    Store a submitted invoice as pending reconciliation.

    The customer is found by (companyName, addressStreet) or created. The
    offer is linked only if one with the given number exists.

    Returns:
        The new invoice id
    """
    customer = find_or_create_customer(session, **request.customer.model_dump())

    offer = get_offer(session, request.offer_id)
    if offer is None:
        logger.warning(f"Invoice {request.invoice_number} references unknown offer {request.offer_id}")

    invoice = Invoice(
        invoice_number=request.invoice_number,
        invoice_date=request.invoice_date,
        invoice_total_sum=request.invoice_total_sum,
        is_checked=None,
        is_valid=False,
        customer=customer,
        offer_number=offer.offer_number if offer is not None else None,
        items=[
            InvoiceItem(
                pos_number=item.pos_number,
                description=item.description,
                amount=item.amount,
                price=item.price,
            )
            for item in request.invoice_items
        ],
    )
    add_invoice(session, invoice)
    logger.info(f"Saved invoice {invoice.invoice_id} ({request.invoice_number})")
    return invoice.invoice_id


def to_invoice_response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        invoice_id=invoice.invoice_id,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        invoice_total_sum=invoice.invoice_total_sum,
        is_checked=invoice.is_checked,
        is_valid=invoice.is_valid,
        customer=CustomerDto.model_validate(invoice.customer),
        invoice_items=[InvoiceItemDto.model_validate(item) for item in invoice.items],
        offer_id=invoice.offer_number,
    )


def find_invoice_for_offer(session: Session, offer_number: str) -> Optional[InvoiceResponse]:
    invoice = get_invoice_by_offer_number(session, offer_number)
    if invoice is None:
        return None
    return to_invoice_response(invoice)
