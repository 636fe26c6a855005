"""Pydantic v2 models for bus payloads and API request/response validation."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes to camelCase JSON, accepts both camelCase and snake_case input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _unique_positions(items):
    positions = [item.pos_number for item in items]
    if len(positions) != len(set(positions)):
        raise ValueError("position numbers must be unique")
    return items


# === Bus payloads ===

class CustomerDto(CamelModel):
    company_name: str = Field(..., min_length=1)
    address_street: str = Field(..., min_length=1)
    address_house_number: str = ""
    post_code: str = ""
    city: str = ""
    phone: str = ""
    mail: str = ""


class OfferItemDto(CamelModel):
    pos_number: int = Field(..., ge=0)
    description: str = ""
    amount: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0)


class OfferDto(CamelModel):
    """Normalized offer published to the ProcessedOffers queue."""
    offer_number: str = Field(..., min_length=1)
    offer_value: Decimal
    offer_valid_till: date
    offer_date: date
    customer_dto: CustomerDto
    offer_items_dto: list[OfferItemDto] = Field(default_factory=list)

    @field_validator("offer_items_dto")
    @classmethod
    def check_unique_positions(cls, items):
        return _unique_positions(items)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# === API responses ===

class CustomerResponse(CustomerDto):
    id: int


class OfferItemResponse(OfferItemDto):
    pass


class OfferResponse(CamelModel):
    offer_number: str
    offer_date: date
    offer_valid_till: date
    offer_value: Decimal
    customer_id: int
    items: list[OfferItemResponse] = Field(default_factory=list)


class InvoiceItemDto(CamelModel):
    pos_number: int = Field(..., ge=0)
    description: str = ""
    amount: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0)


class InvoiceResponse(CamelModel):
    invoice_id: int
    invoice_number: str
    invoice_date: date
    invoice_total_sum: Decimal
    is_checked: Optional[date] = None
    is_valid: bool = False
    customer: CustomerDto
    invoice_items: list[InvoiceItemDto] = Field(default_factory=list)
    offer_id: Optional[str] = None


# === API requests ===

class InvoiceRequest(CamelModel):
    offer_id: str = Field(..., min_length=1)
    invoice_number: str = Field(..., min_length=1)
    invoice_date: date
    invoice_total_sum: Decimal = Field(..., gt=0)
    customer: CustomerDto
    invoice_items: list[InvoiceItemDto] = Field(..., min_length=1)

    @field_validator("invoice_items")
    @classmethod
    def check_unique_positions(cls, items):
        return _unique_positions(items)


class InvoiceCreated(CamelModel):
    invoice_id: int
