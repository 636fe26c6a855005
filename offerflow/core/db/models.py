"""SQLAlchemy ORM models for customers, offers and invoices."""

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean, CheckConstraint, Date, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

MONEY = Numeric(12, 2)


class Customer(Base):
    """A customer, identified by company name and street."""
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("company_name", "address_street", name="uq_customer_identity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_name: Mapped[str] = mapped_column(String(255))
    address_street: Mapped[str] = mapped_column(String(255))
    address_house_number: Mapped[str] = mapped_column(String(50), default="")
    post_code: Mapped[str] = mapped_column(String(20), default="")
    city: Mapped[str] = mapped_column(String(255), default="")
    phone: Mapped[str] = mapped_column(String(100), default="")
    mail: Mapped[str] = mapped_column(String(255), default="")

    offers: Mapped[list["Offer"]] = relationship(back_populates="customer")
    invoices: Mapped[list["Invoice"]] = relationship(back_populates="customer")


class Offer(Base):
    """An offer ingested from a PDF quote."""
    __tablename__ = "offers"

    offer_number: Mapped[str] = mapped_column(String(100), primary_key=True)
    offer_date: Mapped[date] = mapped_column(Date)
    offer_valid_till: Mapped[date] = mapped_column(Date)
    offer_value: Mapped[Decimal] = mapped_column(MONEY)
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("customers.id"))

    customer: Mapped["Customer"] = relationship(back_populates="offers")
    items: Mapped[list["OfferItem"]] = relationship(
        back_populates="offer", cascade="all, delete-orphan", order_by="OfferItem.pos_number"
    )


class OfferItem(Base):
    __tablename__ = "offer_items"
    __table_args__ = (
        CheckConstraint("amount >= 1", name="ck_offer_item_amount"),
        CheckConstraint("price >= 0", name="ck_offer_item_price"),
    )

    offer_number: Mapped[str] = mapped_column(
        String(100), ForeignKey("offers.offer_number"), primary_key=True
    )
    pos_number: Mapped[int] = mapped_column(Integer, primary_key=True)
    description: Mapped[str] = mapped_column(Text, default="")
    amount: Mapped[int] = mapped_column(Integer)
    price: Mapped[Decimal] = mapped_column(MONEY)

    offer: Mapped["Offer"] = relationship(back_populates="items")


class Invoice(Base):
    """
    An invoice submitted through the API.

    is_checked stays NULL until the reconciliation job confirms a match;
    is_valid holds the most recent comparison result.
    """
    __tablename__ = "invoices"

    invoice_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(100))
    invoice_date: Mapped[date] = mapped_column(Date)
    invoice_total_sum: Mapped[Decimal] = mapped_column(MONEY)
    is_checked: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    is_valid: Mapped[bool] = mapped_column(Boolean, default=False)
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("customers.id"))
    offer_number: Mapped[Optional[str]] = mapped_column(
        String(100), ForeignKey("offers.offer_number"), nullable=True, index=True
    )

    customer: Mapped["Customer"] = relationship(back_populates="invoices")
    offer: Mapped[Optional["Offer"]] = relationship()
    items: Mapped[list["InvoiceItem"]] = relationship(
        back_populates="invoice", cascade="all, delete-orphan", order_by="InvoiceItem.pos_number"
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"
    __table_args__ = (
        CheckConstraint("amount >= 1", name="ck_invoice_item_amount"),
        CheckConstraint("price >= 0", name="ck_invoice_item_price"),
    )

    invoice_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("invoices.invoice_id"), primary_key=True
    )
    pos_number: Mapped[int] = mapped_column(Integer, primary_key=True)
    description: Mapped[str] = mapped_column(Text, default="")
    amount: Mapped[int] = mapped_column(Integer)
    price: Mapped[Decimal] = mapped_column(MONEY)

    invoice: Mapped["Invoice"] = relationship(back_populates="items")
