"""
Invoices API router.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from offerflow.core.db import get_session
from offerflow.core.invoicing import find_invoice_for_offer, save_invoice
from offerflow.core.matching import get_scheduler_status
from offerflow.core.schemas import InvoiceCreated, InvoiceRequest, InvoiceResponse

router = APIRouter(prefix="/api/v1/invoice", tags=["Invoices"])
scheduler_router = APIRouter(prefix="/api/v1/scheduler", tags=["Scheduler"])


@router.get("/{offer_id}", response_model=InvoiceResponse)
def get_invoice_for_offer(offer_id: str, session: Session = Depends(get_session)):
    """Get the latest invoice submitted for an offer."""
    invoice = find_invoice_for_offer(session, offer_id)
    if invoice is None:
        raise HTTPException(status_code=404, detail=f"No invoice for offer {offer_id}")
    return invoice


@router.post("", response_model=InvoiceCreated, status_code=201)
def create_invoice(request: InvoiceRequest, session: Session = Depends(get_session)):
    """
    Submit an invoice. It is stored as pending and picked up by the
    reconciliation job on its next run.
    """
    invoice_id = save_invoice(session, request)
    return InvoiceCreated(invoice_id=invoice_id)


@scheduler_router.get("")
def scheduler_status():
    """Reconciliation scheduler status."""
    return get_scheduler_status()
