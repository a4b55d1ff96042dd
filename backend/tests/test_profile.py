import asyncio
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from conftest import USER_ID
from crm.config import settings
from crm.exceptions import ValidationError
from crm.models.setting import Setting
from crm.services.profile_service import ProfileService
from crm.services.storage_service import storage_service
from crm.utils.retry import RetryPolicy


@pytest.fixture
def local_storage(tmp_path, monkeypatch):
    monkeypatch.setattr(storage_service, "s3_client", None)
    monkeypatch.setattr(storage_service, "local_storage_dir", str(tmp_path))
    monkeypatch.setattr(settings, "public_base_url", "http://testserver")
    return tmp_path


class TestSessionContext:

    def test_business_name_falls_back(self, client, auth_headers):
        context = client.get("/api/session", headers=auth_headers).json()
        assert context["business_name"] == "Your Business"
        assert context["profile"] is None
        assert context["invoice_settings"]["tax"]["enabled"] is True

    def test_business_name_from_profile(self, client, auth_headers):
        client.put("/api/profile", json={"business_name": "Acme Plumbing", "business_type": "services"}, headers=auth_headers)
        context = client.get("/api/session", headers=auth_headers).json()
        assert context["business_name"] == "Acme Plumbing"
        assert context["profile"]["business_type"] == "services"

    def test_requires_user_header(self, client):
        assert client.get("/api/session").status_code == 401
        assert client.get("/api/session", headers={"X-User-Id": "nobody"}).status_code == 401


class TestProfile:

    def test_missing_profile(self, client, auth_headers):
        assert client.get("/api/profile", headers=auth_headers).status_code == 404

    def test_partial_update_keeps_other_fields(self, client, auth_headers):
        client.put("/api/profile", json={"business_name": "Acme", "website": "https://acme.test"}, headers=auth_headers)
        client.put("/api/profile", json={"address": "1 Main St"}, headers=auth_headers)
        profile = client.get("/api/profile", headers=auth_headers).json()
        assert profile["business_name"] == "Acme"
        assert profile["website"] == "https://acme.test"
        assert profile["address"] == "1 Main St"


class TestInvoiceSettings:

    def test_defaults_are_written_on_first_read(self, client, db, auth_headers):
        body = client.get("/api/settings/invoice", headers=auth_headers).json()
        assert Decimal(body["tax"]["rate"]) == Decimal("10")
        assert body["currency"] == "USD"
        assert db.query(Setting).filter(Setting.user_id == USER_ID).count() == 1

    def test_update(self, client, auth_headers):
        new_settings = {"tax": {"enabled": True, "rate": "8.25", "label": "VAT"}, "currency": "EUR", "terms": "Net 15"}
        assert client.put("/api/settings/invoice", json=new_settings, headers=auth_headers).status_code == 200
        body = client.get("/api/settings/invoice", headers=auth_headers).json()
        assert body["tax"]["label"] == "VAT"
        assert Decimal(body["tax"]["rate"]) == Decimal("8.25")

    def test_reads_are_retried(self, db, no_sleep_retry, monkeypatch):
        service = ProfileService(retry_policy=no_sleep_retry)
        real_query = db.query
        calls = []

        def flaky_query(*args):
            calls.append(args)
            if len(calls) == 1:
                raise OperationalError("SELECT", {}, Exception("connection reset"))
            return real_query(*args)

        monkeypatch.setattr(db, "query", flaky_query)
        assert service.get_profile(db, USER_ID) is None
        assert no_sleep_retry.delays == [1.0]

    def test_async_reads_are_retried_without_blocking_sleep(self, db, monkeypatch):
        def blocking_sleep(seconds):
            raise AssertionError(f"time.sleep({seconds}) called on the async path")

        service = ProfileService(retry_policy=RetryPolicy(max_attempts=3, base_delay=0.01, sleep=blocking_sleep))
        real_query = db.query
        calls = []

        def flaky_query(*args):
            calls.append(args)
            if len(calls) == 1:
                raise OperationalError("SELECT", {}, Exception("connection reset"))
            return real_query(*args)

        monkeypatch.setattr(db, "query", flaky_query)
        assert asyncio.run(service.get_profile_async(db, USER_ID)) is None
        assert len(calls) == 2

    def test_tax_rate_above_100_is_rejected(self, client, auth_headers):
        new_settings = {"tax": {"enabled": True, "rate": "150", "label": "Tax"}, "currency": "USD", "terms": ""}
        assert client.put("/api/settings/invoice", json=new_settings, headers=auth_headers).status_code == 422


class TestLogoUpload:

    def test_upload_and_serve(self, client, auth_headers, local_storage):
        response = client.post(
            "/api/profile/logo",
            files={"file": ("logo.png", b"\x89PNG fake image", "image/png")},
            headers=auth_headers,
        )
        assert response.status_code == 200
        logo_url = response.json()["logo_url"]
        assert logo_url.startswith(f"http://testserver/storage/logos/{USER_ID}-")
        assert logo_url.endswith(".png")

        served = client.get(logo_url.replace("http://testserver", ""))
        assert served.status_code == 200
        assert served.content == b"\x89PNG fake image"
        assert served.headers["content-type"] == "image/png"

    def test_wrong_type(self, client, auth_headers, local_storage):
        response = client.post(
            "/api/profile/logo",
            files={"file": ("logo.gif", b"GIF89a", "image/gif")},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Please upload a JPEG, PNG, or PDF file"

    def test_too_large(self, db, local_storage, monkeypatch):
        monkeypatch.setattr(settings, "logo_max_bytes", 10)
        with pytest.raises(ValidationError) as exc:
            ProfileService().upload_logo(db, USER_ID, "logo.png", "image/png", b"x" * 11)
        assert exc.value.message == "File size must be less than 5MB"

    def test_path_traversal_is_not_served(self, client, local_storage):
        assert client.get("/storage/../../etc/passwd").status_code == 404


class TestDashboard:

    def test_empty_account(self, client, auth_headers):
        stats = client.get("/api/dashboard/stats", headers=auth_headers).json()
        assert stats["total_customers"] == 0
        assert stats["total_invoices"] == 0
        assert Decimal(stats["revenue"]) == Decimal("0")
        assert stats["growth"] == 0.0
