import json
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from conftest import OTHER_USER_ID
from crm.models.email_log import EmailLog
from crm.models.invoice import Invoice
from crm.models.message import Message
from crm.models.profile import Profile
from crm.services.profile_service import profile_service
from crm.utils.retry import RetryPolicy

ITEMS = [
    {"description": "Design", "quantity": 2, "rate": "5.00"},
    {"description": "Hosting", "quantity": 1, "rate": "3.00"},
]


def disable_tax(client, auth_headers):
    response = client.put(
        "/api/settings/invoice",
        json={"tax": {"enabled": False, "rate": "0", "label": "Tax"}, "currency": "USD", "terms": ""},
        headers=auth_headers,
    )
    assert response.status_code == 200


def create_invoice(client, auth_headers, customer, **overrides):
    body = {"customer_id": str(customer.id), "items": ITEMS, **overrides}
    response = client.post("/api/invoices", json=body, headers=auth_headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateInvoice:

    def test_requires_user_header(self, client, customer):
        response = client.post("/api/invoices", json={"customer_id": str(customer.id), "items": ITEMS})
        assert response.status_code == 401

    def test_with_default_tax(self, client, auth_headers, customer):
        invoice = create_invoice(client, auth_headers, customer)
        assert Decimal(invoice["subtotal"]) == Decimal("13.00")
        assert Decimal(invoice["tax_amount"]) == Decimal("1.30")
        assert Decimal(invoice["total"]) == Decimal("14.30")
        assert invoice["status"] == "draft"
        assert invoice["can_mark_paid"] is True

    def test_with_tax_disabled(self, client, auth_headers, customer):
        disable_tax(client, auth_headers)
        invoice = create_invoice(client, auth_headers, customer)
        assert Decimal(invoice["tax_amount"]) == Decimal("0")
        assert Decimal(invoice["total"]) == Decimal("13.00")
        assert invoice["tax_rate"] is None

    def test_client_amounts_are_ignored(self, client, auth_headers, customer):
        disable_tax(client, auth_headers)
        items = [{"description": "Design", "quantity": 3, "rate": "10", "amount": "999"}]
        invoice = create_invoice(client, auth_headers, customer, items=items)
        assert Decimal(invoice["items"][0]["amount"]) == Decimal("30.00")
        assert Decimal(invoice["total"]) == Decimal("30.00")

    def test_missing_customer(self, client, auth_headers):
        body = {"customer_id": "99999999-9999-9999-9999-999999999999", "items": ITEMS}
        response = client.post("/api/invoices", json=body, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Please select a customer"

    def test_zero_quantity_items(self, client, auth_headers, customer):
        body = {"customer_id": str(customer.id), "items": [{"description": "x", "quantity": 0, "rate": "5"}]}
        response = client.post("/api/invoices", json=body, headers=auth_headers)
        assert response.status_code == 400

    def test_rate_longer_than_decimal_precision_is_treated_as_zero(self, client, auth_headers, customer):
        items = [{"description": "Typo", "quantity": 1, "rate": "9" * 30}]
        invoice = create_invoice(client, auth_headers, customer, items=items)
        assert Decimal(invoice["items"][0]["rate"]) == Decimal("0")
        assert Decimal(invoice["total"]) == Decimal("0")

    def test_total_beyond_money_columns_is_rejected(self, client, db, auth_headers, customer):
        body = {"customer_id": str(customer.id), "items": [{"description": "Fleet", "quantity": 10_000_000, "rate": "100"}]}
        response = client.post("/api/invoices", json=body, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Invoice total cannot exceed 99999999.99"
        assert db.query(Invoice).count() == 0


class TestInvoiceLifecycle:

    def test_edit_recomputes_totals(self, client, auth_headers, customer):
        invoice = create_invoice(client, auth_headers, customer)
        response = client.put(
            f"/api/invoices/{invoice['id']}",
            json={"items": [{"description": "Design", "quantity": 1, "rate": "20"}]},
            headers=auth_headers,
        )
        assert response.status_code == 200
        edited = response.json()
        assert Decimal(edited["subtotal"]) == Decimal("20.00")
        assert Decimal(edited["tax_amount"]) == Decimal("2.00")
        assert Decimal(edited["total"]) == Decimal("22.00")

    def test_mark_paid_once(self, client, auth_headers, customer):
        invoice = create_invoice(client, auth_headers, customer)
        response = client.post(f"/api/invoices/{invoice['id']}/mark-paid", headers=auth_headers)
        assert response.status_code == 200
        paid = response.json()
        assert paid["status"] == "paid"
        assert paid["paid_date"] is not None
        assert paid["can_mark_paid"] is False

        response = client.post(f"/api/invoices/{invoice['id']}/mark-paid", headers=auth_headers)
        assert response.status_code == 409

    def test_delete_requires_confirmation(self, client, auth_headers, customer):
        invoice = create_invoice(client, auth_headers, customer)
        response = client.delete(f"/api/invoices/{invoice['id']}", headers=auth_headers)
        assert response.status_code == 400
        assert client.get(f"/api/invoices/{invoice['id']}", headers=auth_headers).status_code == 200

    def test_confirmed_delete(self, client, auth_headers, customer):
        invoice = create_invoice(client, auth_headers, customer)
        response = client.delete(f"/api/invoices/{invoice['id']}?confirm=true", headers=auth_headers)
        assert response.status_code == 204
        assert client.get(f"/api/invoices/{invoice['id']}", headers=auth_headers).status_code == 404

    def test_invoices_are_scoped_to_user(self, client, auth_headers, customer):
        invoice = create_invoice(client, auth_headers, customer)
        other = {"X-User-Id": str(OTHER_USER_ID)}
        assert client.get(f"/api/invoices/{invoice['id']}", headers=other).status_code == 404
        assert client.get("/api/invoices", headers=other).json() == []


class TestListAndStats:

    def test_list_filters_by_type(self, client, auth_headers, customer):
        create_invoice(client, auth_headers, customer)
        create_invoice(client, auth_headers, customer, type="estimate")

        everything = client.get("/api/invoices", headers=auth_headers).json()
        assert len(everything) == 2
        assert everything[0]["customer_name"] == "Jane Doe"

        estimates = client.get("/api/invoices?type=estimate", headers=auth_headers).json()
        assert [inv["status"] for inv in estimates] == ["estimate"]

    def test_stats_count_unpaid_totals(self, client, auth_headers, customer):
        disable_tax(client, auth_headers)
        create_invoice(client, auth_headers, customer)
        paid = create_invoice(client, auth_headers, customer)
        client.post(f"/api/invoices/{paid['id']}/mark-paid", headers=auth_headers)

        stats = client.get("/api/invoices/stats", headers=auth_headers).json()
        assert Decimal(stats["total_outstanding"]) == Decimal("13.00")
        assert Decimal(stats["paid_this_month"]) == Decimal("13.00")


class TestSendInvoice:

    def test_send_relays_email_and_records_it(self, client, db, auth_headers, customer, mail_provider):
        invoice = create_invoice(client, auth_headers, customer)
        response = client.post(f"/api/invoices/{invoice['id']}/send", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Invoice sent successfully to jane@example.com"}

        assert len(mail_provider.requests) == 1
        sent = mail_provider.requests[0]
        assert sent.headers["Authorization"] == "Bearer test-key"
        payload = json.loads(sent.content)
        assert payload["to"] == [{"email": "jane@example.com", "name": "Jane Doe"}]
        assert payload["subject"] == f"Invoice #{invoice['invoice_number']} from Your Business"
        assert payload["html"].count("/track-email-open?") == 1

        log = db.query(EmailLog).one()
        assert log.invoice_number == invoice["invoice_number"]
        assert log.provider_message_id == "msg-123"
        assert log.invoice_status == "draft"
        assert db.query(Message).filter(Message.type == "email").count() == 1

    def test_send_does_not_change_status(self, client, auth_headers, customer):
        invoice = create_invoice(client, auth_headers, customer)
        client.post(f"/api/invoices/{invoice['id']}/send", headers=auth_headers)
        assert client.get(f"/api/invoices/{invoice['id']}", headers=auth_headers).json()["status"] == "draft"

    def test_customer_without_email_is_rejected_before_sending(self, client, db, auth_headers, customer, mail_provider):
        customer.email = None
        db.commit()
        invoice = create_invoice(client, auth_headers, customer)

        response = client.post(f"/api/invoices/{invoice['id']}/send", headers=auth_headers)
        assert response.status_code == 400
        assert "to_email" in response.json()["detail"]
        assert mail_provider.requests == []

    def test_provider_failure(self, client, auth_headers, customer, mail_provider):
        mail_provider.status_code = 422
        mail_provider.error_body = "The from.email domain must be verified"
        invoice = create_invoice(client, auth_headers, customer)

        response = client.post(f"/api/invoices/{invoice['id']}/send", headers=auth_headers)
        assert response.status_code == 502
        assert "domain must be verified" in response.json()["detail"]

    def test_transient_profile_read_backs_off_without_blocking_sleep(self, client, db, auth_headers, customer, monkeypatch):
        invoice = create_invoice(client, auth_headers, customer)

        def blocking_sleep(seconds):
            raise AssertionError(f"time.sleep({seconds}) called while sending")

        monkeypatch.setattr(profile_service, "retry_policy", RetryPolicy(max_attempts=3, base_delay=0.01, sleep=blocking_sleep))

        real_query = db.query
        failures = []

        def flaky_query(*entities):
            if entities and entities[0] is Profile and not failures:
                failures.append(entities)
                raise OperationalError("SELECT", {}, Exception("connection reset"))
            return real_query(*entities)

        monkeypatch.setattr(db, "query", flaky_query)
        response = client.post(f"/api/invoices/{invoice['id']}/send", headers=auth_headers)

        assert response.status_code == 200, response.text
        assert len(failures) == 1
        assert db.query(EmailLog).count() == 1


class TestInvoicePdf:

    def test_download(self, client, auth_headers, customer):
        invoice = create_invoice(client, auth_headers, customer)
        response = client.get(f"/api/invoices/{invoice['id']}/pdf", headers=auth_headers)
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")
        assert invoice["invoice_number"] in response.headers["content-disposition"]
