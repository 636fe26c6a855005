"""
Offers API router.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from offerflow.core.db import get_customer, get_session, list_offers, list_offers_by_customer
from offerflow.core.schemas import OfferResponse

router = APIRouter(prefix="/api/v1/offer", tags=["Offers"])


@router.get("", response_model=list[OfferResponse])
def get_all_offers(session: Session = Depends(get_session)):
    """List all offers with their items."""
    return list_offers(session)


@router.get("/{customer_id}", response_model=list[OfferResponse])
def get_offers_for_customer(customer_id: int, session: Session = Depends(get_session)):
    """
    List the offers of one customer.
    Returns 404 if the customer is unknown or has no offers.
    """
    if get_customer(session, customer_id) is None:
        raise HTTPException(status_code=404, detail=f"Customer {customer_id} not found")
    offers = list_offers_by_customer(session, customer_id)
    if not offers:
        raise HTTPException(status_code=404, detail=f"No offers for customer {customer_id}")
    return offers
