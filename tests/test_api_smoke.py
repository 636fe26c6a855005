"""
Smoke tests for the REST API.

Runs against the in-memory test database with ingestion and the
scheduler patched out (see conftest.client).
"""
from datetime import date
from decimal import Decimal

from offerflow.core.db import Invoice, get_db
from tests.conftest import create_customer, create_invoice, create_offer


INVOICE_REQUEST = {
    "offerId": "ANG-1",
    "invoiceNumber": "RE-2025-001",
    "invoiceDate": "2025-05-30",
    "invoiceTotalSum": "10690.00",
    "customer": {
        "companyName": "GeoBau Solutions GmbH",
        "addressStreet": "Bauhofstraße",
        "addressHouseNumber": "7",
        "postCode": "10115",
        "city": "Berlin",
        "phone": "+49 30 123456789",
        "mail": "kontakt@geobau-solutions.de",
    },
    "invoiceItems": [
        {"posNumber": 1, "description": "Tunnelbohrung 50m Tiefe", "amount": 1, "price": "4000.00"},
        {"posNumber": 2, "description": "Stahlbetonverstärkung", "amount": 3, "price": "850.00"},
    ],
}


# ============================================================================
# Health
# ============================================================================

class TestHealth:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_scheduler_status(self, client):
        resp = client.get("/api/v1/scheduler")
        assert resp.status_code == 200
        assert "running" in resp.json()


# ============================================================================
# Customers
# ============================================================================

class TestCustomers:
    """Tests for /api/v1/customer."""

    def test_empty_list(self, client):
        resp = client.get("/api/v1/customer")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_list(self, client):
        create_customer()
        create_customer(company_name="Hafenbau AG", address_street="Kaiweg")

        data = client.get("/api/v1/customer").json()

        assert [c["companyName"] for c in data] == ["GeoBau Solutions GmbH", "Hafenbau AG"]
        assert data[0]["addressStreet"] == "Bauhofstraße"
        assert "id" in data[0]

    def test_get_by_id(self, client):
        customer_id = create_customer(city="Berlin")
        resp = client.get(f"/api/v1/customer/{customer_id}")
        assert resp.status_code == 200
        assert resp.json()["city"] == "Berlin"

    def test_not_found(self, client):
        assert client.get("/api/v1/customer/999").status_code == 404


# ============================================================================
# Offers
# ============================================================================

class TestOffers:
    """Tests for /api/v1/offer."""

    def test_list_with_items(self, client):
        customer_id = create_customer()
        create_offer(customer_id, items=[
            (1, "Tunnelbohrung", 1, Decimal("4000.00")),
            (2, "Stahl", 3, Decimal("850.00")),
        ])

        data = client.get("/api/v1/offer").json()

        assert len(data) == 1
        offer = data[0]
        assert offer["offerNumber"] == "ANG-1"
        assert offer["customerId"] == customer_id
        assert offer["offerDate"] == "2025-05-18"
        assert Decimal(offer["offerValue"]) == Decimal("10690.00")
        assert [i["posNumber"] for i in offer["items"]] == [1, 2]

    def test_by_customer(self, client):
        first = create_customer()
        second = create_customer(company_name="Hafenbau AG")
        create_offer(first, offer_number="ANG-1")
        create_offer(second, offer_number="ANG-2")

        data = client.get(f"/api/v1/offer/{second}").json()
        assert [o["offerNumber"] for o in data] == ["ANG-2"]

    def test_unknown_customer(self, client):
        assert client.get("/api/v1/offer/999").status_code == 404

    def test_customer_without_offers(self, client):
        customer_id = create_customer()
        assert client.get(f"/api/v1/offer/{customer_id}").status_code == 404


# ============================================================================
# Invoices
# ============================================================================

class TestInvoices:
    """Tests for /api/v1/invoice."""

    def test_create_pending_invoice(self, client):
        customer_id = create_customer()
        create_offer(customer_id)

        resp = client.post("/api/v1/invoice", json=INVOICE_REQUEST)

        assert resp.status_code == 201
        invoice_id = resp.json()["invoiceId"]
        with get_db() as session:
            invoice = session.get(Invoice, invoice_id)
            assert invoice.is_checked is None
            assert invoice.is_valid is False
            assert invoice.offer_number == "ANG-1"
            assert invoice.customer_id == customer_id
            assert len(invoice.items) == 2

    def test_create_then_get(self, client):
        create_offer(create_customer())
        client.post("/api/v1/invoice", json=INVOICE_REQUEST)

        resp = client.get("/api/v1/invoice/ANG-1")

        assert resp.status_code == 200
        data = resp.json()
        assert data["invoiceNumber"] == "RE-2025-001"
        assert data["invoiceDate"] == "2025-05-30"
        assert data["isChecked"] is None
        assert data["isValid"] is False
        assert data["offerId"] == "ANG-1"
        assert data["customer"]["companyName"] == "GeoBau Solutions GmbH"
        assert len(data["invoiceItems"]) == 2

    def test_new_customer_created(self, client):
        resp = client.post("/api/v1/invoice", json={
            **INVOICE_REQUEST,
            "customer": {"companyName": "Neukunde GmbH", "addressStreet": "Ring"},
        })
        assert resp.status_code == 201
        assert len(client.get("/api/v1/customer").json()) == 1

    def test_unknown_offer_stored_unlinked(self, client):
        resp = client.post("/api/v1/invoice", json={**INVOICE_REQUEST, "offerId": "ANG-404"})

        assert resp.status_code == 201
        with get_db() as session:
            assert session.get(Invoice, resp.json()["invoiceId"]).offer_number is None

    def test_latest_invoice_returned(self, client):
        customer_id = create_customer()
        create_offer(customer_id)
        create_invoice(customer_id, invoice_number="RE-old")
        create_invoice(customer_id, invoice_number="RE-new", is_checked=date(2025, 6, 2), is_valid=True)

        data = client.get("/api/v1/invoice/ANG-1").json()

        assert data["invoiceNumber"] == "RE-new"
        assert data["isChecked"] == "2025-06-02"
        assert data["isValid"] is True

    def test_no_invoice(self, client):
        assert client.get("/api/v1/invoice/ANG-1").status_code == 404

    def test_missing_items_rejected(self, client):
        resp = client.post("/api/v1/invoice", json={**INVOICE_REQUEST, "invoiceItems": []})
        assert resp.status_code == 422

    def test_negative_total_rejected(self, client):
        resp = client.post("/api/v1/invoice", json={**INVOICE_REQUEST, "invoiceTotalSum": "-1"})
        assert resp.status_code == 422

    def test_duplicate_positions_rejected(self, client):
        items = [INVOICE_REQUEST["invoiceItems"][0], INVOICE_REQUEST["invoiceItems"][0]]
        resp = client.post("/api/v1/invoice", json={**INVOICE_REQUEST, "invoiceItems": items})
        assert resp.status_code == 422

    def test_bad_date_rejected(self, client):
        resp = client.post("/api/v1/invoice", json={**INVOICE_REQUEST, "invoiceDate": "30.05.2025"})
        assert resp.status_code == 422
