"""
Database package for offerflow.

All functions are re-exported here:

    from offerflow.core.db import get_db, find_or_create_customer
"""

# Base - engine, sessions, initialization
from .base import (
    Base,
    SessionLocal,
    configure_database,
    get_db,
    get_engine,
    get_session,
    init_db,
)

# Models
from .models import (
    Customer,
    Invoice,
    InvoiceItem,
    Offer,
    OfferItem,
)

# Customers
from .customers import (
    find_customer,
    find_or_create_customer,
    get_customer,
    list_customers,
)

# Offers
from .offers import (
    add_offer,
    get_offer,
    list_offers,
    list_offers_by_customer,
)

# Invoices
from .invoices import (
    add_invoice,
    get_invoice,
    get_invoice_by_offer_number,
    list_unchecked_invoices,
    mark_invoice_result,
)
