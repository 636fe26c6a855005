"""
Customer database operations.
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Customer


def get_customer(session: Session, customer_id: int) -> Optional[Customer]:
    return session.get(Customer, customer_id)


def list_customers(session: Session) -> List[Customer]:
    return list(session.scalars(select(Customer).order_by(Customer.id)))


def find_customer(session: Session, company_name: str, address_street: str) -> Optional[Customer]:
    """Look up a customer by its identity key."""
    return session.scalars(
        select(Customer).where(
            Customer.company_name == company_name,
            Customer.address_street == address_street,
        )
    ).first()


def find_or_create_customer(
    session: Session,
    company_name: str,
    address_street: str,
    address_house_number: str = "",
    post_code: str = "",
    city: str = "",
    phone: str = "",
    mail: str = "",
) -> Customer:
    """
    Return the customer with this (company_name, address_street), creating it if absent.

    An existing customer is returned unchanged; its other fields are not
    overwritten. The new row is flushed so a concurrent insert of the same
    identity surfaces here as an IntegrityError from the unique constraint.
    """
    customer = find_customer(session, company_name, address_street)
    if customer is not None:
        return customer

    customer = Customer(
        company_name=company_name,
        address_street=address_street,
        address_house_number=address_house_number,
        post_code=post_code,
        city=city,
        phone=phone,
        mail=mail,
    )
    session.add(customer)
    session.flush()
    return customer
