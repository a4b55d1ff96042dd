import pytest

from conftest import USER_ID
from crm.models.email_open import EmailOpen
from crm.models.invoice import Invoice
from crm.models.message import Message


@pytest.fixture
def inbox(db, customer):
    invoice = Invoice(user_id=USER_ID, customer_id=customer.id, invoice_number="INV-42", items=[])
    db.add(invoice)
    db.flush()
    sent = Message(user_id=USER_ID, type="email", subject="Invoice INV-42 sent", content="Sent", invoice_id=invoice.id)
    welcome = Message(user_id=USER_ID, type="system", subject="Welcome", content="Hello", read=True)
    db.add_all([sent, welcome])
    db.add_all([EmailOpen(invoice_id=invoice.id, customer_id=customer.id) for _ in range(2)])
    db.commit()
    return {"invoice": invoice, "sent": sent, "welcome": welcome}


class TestMessages:

    def test_list_with_open_counts(self, client, auth_headers, inbox):
        body = client.get("/api/messages", headers=auth_headers).json()
        assert body["unread_count"] == 1
        by_subject = {m["subject"]: m for m in body["messages"]}
        assert by_subject["Invoice INV-42 sent"]["open_count"] == 2
        assert by_subject["Welcome"]["open_count"] == 0

    def test_filters(self, client, auth_headers, inbox):
        unread = client.get("/api/messages?filter=unread", headers=auth_headers).json()["messages"]
        read = client.get("/api/messages?filter=read", headers=auth_headers).json()["messages"]
        assert [m["subject"] for m in unread] == ["Invoice INV-42 sent"]
        assert [m["subject"] for m in read] == ["Welcome"]

    def test_mark_read(self, client, auth_headers, inbox):
        response = client.post(f"/api/messages/{inbox['sent'].id}/read", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["read"] is True
        assert client.get("/api/messages/unread-count", headers=auth_headers).json() == {"unread_count": 0}

    def test_delete(self, client, db, auth_headers, inbox):
        assert client.delete(f"/api/messages/{inbox['welcome'].id}", headers=auth_headers).status_code == 204
        assert db.query(Message).count() == 1

    def test_unknown_message(self, client, auth_headers):
        response = client.post("/api/messages/00000000-0000-0000-0000-000000000000/read", headers=auth_headers)
        assert response.status_code == 404
