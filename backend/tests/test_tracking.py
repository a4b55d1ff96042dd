import uuid

import pytest

from conftest import USER_ID
from crm.config import settings
from crm.models.email_open import EmailOpen
from crm.models.invoice import Invoice
from crm.services.tracking_service import TRACKING_PIXEL, tracking_service


@pytest.fixture
def invoice(db, customer):
    invoice = Invoice(
        user_id=USER_ID,
        customer_id=customer.id,
        invoice_number="INV-1000",
        items=[],
    )
    db.add(invoice)
    db.commit()
    db.refresh(invoice)
    return invoice


def assert_pixel(response):
    assert response.status_code == 200
    assert response.content == TRACKING_PIXEL
    assert response.headers["content-type"] == "image/gif"
    assert "no-store" in response.headers["cache-control"]
    assert response.headers["pragma"] == "no-cache"
    assert response.headers["expires"] == "0"


class TestPixel:

    def test_is_a_43_byte_gif(self):
        assert len(TRACKING_PIXEL) == 43
        assert TRACKING_PIXEL.startswith(b"GIF89a")


class TestBeaconEndpoint:

    def test_records_open(self, client, db, invoice, customer):
        response = client.get(
            "/track-email-open",
            params={"invoice_id": str(invoice.id), "customer_id": str(customer.id), "t": "1700000000000"},
            headers={"User-Agent": "Mail/1.0", "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
        )
        assert_pixel(response)

        open_event = db.query(EmailOpen).one()
        assert open_event.invoice_id == invoice.id
        assert open_event.customer_id == customer.id
        assert open_event.ip_address == "203.0.113.9"
        assert open_event.user_agent == "Mail/1.0"

    def test_every_fetch_counts(self, client, db, invoice, customer):
        params = {"invoice_id": str(invoice.id), "customer_id": str(customer.id)}
        for _ in range(3):
            assert_pixel(client.get("/track-email-open", params=params))
        assert tracking_service.open_counts(db, [invoice.id]) == {invoice.id: 3}

    def test_missing_parameters_still_get_pixel(self, client, db):
        assert_pixel(client.get("/track-email-open"))
        assert_pixel(client.get("/track-email-open", params={"invoice_id": str(uuid.uuid4())}))
        assert db.query(EmailOpen).count() == 0

    def test_invalid_ids_still_get_pixel(self, client, db):
        assert_pixel(client.get("/track-email-open", params={"invoice_id": "abc", "customer_id": "def"}))
        assert db.query(EmailOpen).count() == 0

    def test_storage_failure_still_gets_pixel(self, client, invoice, customer, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("storage offline")

        monkeypatch.setattr(tracking_service, "record_open", broken)
        params = {"invoice_id": str(invoice.id), "customer_id": str(customer.id)}
        assert_pixel(client.get("/track-email-open", params=params))


class TestBeaconMarkup:

    def test_hidden_cache_busted_image(self, monkeypatch):
        monkeypatch.setattr(settings, "public_base_url", "https://crm.example.com/")
        html = tracking_service.beacon_html("inv-1", "cus-1")
        assert html.startswith('<img src="https://crm.example.com/track-email-open?invoice_id=inv-1&amp;customer_id=cus-1&amp;t=')
        assert 'width="0" height="0"' in html
        assert "display:none" in html

    def test_tracking_url_without_cache_buster(self, monkeypatch):
        monkeypatch.setattr(settings, "public_base_url", "https://crm.example.com")
        assert tracking_service.tracking_url("a", "b") == "https://crm.example.com/track-email-open?invoice_id=a&customer_id=b"


class TestDebugEndpoint:

    def test_hidden_unless_enabled(self, client, monkeypatch):
        monkeypatch.setattr(settings, "debug_tools_enabled", False)
        assert client.get("/debug-email-tracking", params={"action": "check_tracking"}).status_code == 404

    def test_check_tracking(self, client, invoice, customer, monkeypatch):
        monkeypatch.setattr(settings, "debug_tools_enabled", True)
        client.get("/track-email-open", params={"invoice_id": str(invoice.id), "customer_id": str(customer.id)})

        response = client.get("/debug-email-tracking", params={"action": "check_tracking", "invoice_id": str(invoice.id)})
        assert response.status_code == 200
        body = response.json()
        assert body["invoice_exists"] is True
        assert body["total_opens"] == 1
        assert len(body["opens_details"]) == 1
        assert str(customer.id) in body["tracking_url"]

    def test_test_tracking_writes_synthetic_open(self, client, db, invoice, customer, monkeypatch):
        monkeypatch.setattr(settings, "debug_tools_enabled", True)
        response = client.get(
            "/debug-email-tracking",
            params={"action": "test_tracking", "invoice_id": str(invoice.id), "customer_id": str(customer.id)},
        )
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert db.query(EmailOpen).one().user_agent == "Debug Test"

    def test_test_tracking_requires_ids(self, client, monkeypatch):
        monkeypatch.setattr(settings, "debug_tools_enabled", True)
        response = client.get("/debug-email-tracking", params={"action": "test_tracking"})
        assert response.status_code == 400

    def test_fix_policies(self, client, monkeypatch):
        monkeypatch.setattr(settings, "debug_tools_enabled", True)
        response = client.get("/debug-email-tracking", params={"action": "fix_policies"})
        assert response.status_code == 200
        assert response.json()["details"] == {"table": "email_opens"}

    def test_unknown_action(self, client, monkeypatch):
        monkeypatch.setattr(settings, "debug_tools_enabled", True)
        assert client.get("/debug-email-tracking", params={"action": "drop_everything"}).status_code == 400
