"""
Customers API router.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from offerflow.core.db import get_customer, get_session, list_customers
from offerflow.core.schemas import CustomerResponse

router = APIRouter(prefix="/api/v1/customer", tags=["Customers"])


@router.get("", response_model=list[CustomerResponse])
def get_all_customers(session: Session = Depends(get_session)):
    """List all customers."""
    return list_customers(session)


@router.get("/{customer_id}", response_model=CustomerResponse)
def get_customer_by_id(customer_id: int, session: Session = Depends(get_session)):
    customer = get_customer(session, customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail=f"Customer {customer_id} not found")
    return customer
