"""
Invoice database operations.
"""
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .models import Invoice


def get_invoice(session: Session, invoice_id: int) -> Optional[Invoice]:
    return session.get(Invoice, invoice_id)


def get_invoice_by_offer_number(session: Session, offer_number: str) -> Optional[Invoice]:
    """Most recently submitted invoice referencing an offer."""
    query = (
        select(Invoice)
        .where(Invoice.offer_number == offer_number)
        .options(selectinload(Invoice.items), selectinload(Invoice.customer))
        .order_by(Invoice.invoice_id.desc())
    )
    return session.scalars(query).first()


def list_unchecked_invoices(session: Session) -> List[Invoice]:
    """Invoices still pending reconciliation (is_checked IS NULL)."""
    query = select(Invoice).where(Invoice.is_checked.is_(None)).order_by(Invoice.invoice_id)
    return list(session.scalars(query))


def add_invoice(session: Session, invoice: Invoice) -> Invoice:
    session.add(invoice)
    session.flush()
    return invoice


def mark_invoice_result(session: Session, invoice_id: int, matched: bool, checked_on: date) -> bool:
    """
    Store a comparison result on a pending invoice.

    is_checked is only set on a match; is_valid always takes the result.
    Invoices that are already checked are left untouched.

    Returns:
        True if the invoice was updated
    """
    invoice = session.get(Invoice, invoice_id)
    if invoice is None or invoice.is_checked is not None:
        return False
    if matched:
        invoice.is_checked = checked_on
    invoice.is_valid = matched
    return True
