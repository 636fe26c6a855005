"""
Offer database operations.
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .models import Offer


def get_offer(session: Session, offer_number: str) -> Optional[Offer]:
    return session.get(Offer, offer_number)


def list_offers(session: Session) -> List[Offer]:
    query = select(Offer).options(selectinload(Offer.items)).order_by(Offer.offer_date, Offer.offer_number)
    return list(session.scalars(query))


def list_offers_by_customer(session: Session, customer_id: int) -> List[Offer]:
    query = (
        select(Offer)
        .where(Offer.customer_id == customer_id)
        .options(selectinload(Offer.items))
        .order_by(Offer.offer_date, Offer.offer_number)
    )
    return list(session.scalars(query))


def add_offer(session: Session, offer: Offer) -> Offer:
    """Add an offer with its items and flush it."""
    session.add(offer)
    session.flush()
    return offer
