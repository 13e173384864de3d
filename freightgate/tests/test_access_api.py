"""
Tests for the HTTP surface (check-access, record-contact-view, plans).
"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt
from fastapi.testclient import TestClient

from freightgate.core.config import Settings, settings
from freightgate.core.errors import LookupFailed
from freightgate.main import app
from freightgate.tests.helpers import create_company, create_driver, create_freight, create_plan, create_subscription


pytestmark = pytest.mark.usefixtures("seeded")


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def jwt_secret(monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", "test-secret")
    return "test-secret"


def _token(secret: str, sub: str, expires_in: timedelta = timedelta(minutes=5)) -> str:
    exp = datetime.now(timezone.utc) + expires_in
    return jwt.encode({"sub": sub, "exp": exp}, secret, algorithm="HS256")


class TestCheckAccess:
    def test_anonymous_caller_gets_no_auth(self, client):
        resp = client.post("/functions/check-access", json={"action": "view_contact", "userRole": "driver"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["canAccess"] is False
        assert body["reason"] == "no_auth"
        assert body["subscription"] is None
        assert body["remainingLimit"] is None

    def test_driver_with_views_left(self, client):
        user_id, _ = create_driver()

        resp = client.post(
            "/functions/check-access",
            headers={"X-User-Id": user_id},
            json={"action": "view_contact", "userRole": "driver"},
        )

        body = resp.json()
        assert resp.status_code == 200
        assert body["canAccess"] is True
        assert body["reason"] == "granted"
        assert body["remainingLimit"] == 5

    def test_legacy_action_name_is_accepted(self, client):
        user_id, _ = create_driver()
        create_subscription(user_id, "driver-premium")

        resp = client.post(
            "/functions/check-access",
            headers={"X-User-Id": user_id},
            json={"action": "view_contacts", "userRole": "driver"},
        )

        body = resp.json()
        assert body["canAccess"] is True
        assert body["remainingLimit"] == "unlimited"
        assert body["subscription"] == {"plan": "driver-premium", "status": "active"}

    def test_company_with_expired_trial(self, client):
        user_id, _ = create_company()
        create_subscription(
            user_id,
            "company-trial",
            status="trialing",
            trial_ends_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )

        resp = client.post(
            "/functions/check-access",
            headers={"X-User-Id": user_id},
            json={"action": "create_freight", "userRole": "company"},
        )

        body = resp.json()
        assert body["canAccess"] is False
        assert body["reason"] == "trial_expired"
        assert body["subscription"] == {"plan": "company-trial", "status": "trialing"}

    def test_claimed_role_does_not_override_profile(self, client):
        user_id, _ = create_driver()

        resp = client.post(
            "/functions/check-access",
            headers={"X-User-Id": user_id},
            json={"action": "create_freight", "userRole": "company"},
        )

        assert resp.json()["reason"] == "unsupported_action"

    def test_bearer_token(self, client, jwt_secret):
        user_id, _ = create_company()
        create_subscription(user_id, "company-enterprise")

        resp = client.post(
            "/functions/check-access",
            headers={"Authorization": f"Bearer {_token(jwt_secret, user_id)}"},
            json={"action": "create_freight"},
        )

        assert resp.json()["canAccess"] is True

    def test_expired_token_is_no_auth(self, client, jwt_secret):
        user_id, _ = create_company()
        token = _token(jwt_secret, user_id, expires_in=timedelta(minutes=-5))

        resp = client.post(
            "/functions/check-access",
            headers={"Authorization": f"Bearer {token}"},
            json={"action": "create_freight"},
        )

        assert resp.status_code == 200
        assert resp.json()["reason"] == "no_auth"

    def test_profile_lookup_failure_denies_without_leaking(self, client):
        with patch("freightgate.core.auth.get_role", side_effect=LookupFailed("password authentication failed")):
            resp = client.post(
                "/functions/check-access",
                headers={"X-User-Id": "someone"},
                json={"action": "create_freight"},
            )

        body = resp.json()
        assert resp.status_code == 200
        assert body["canAccess"] is False
        assert body["reason"] == "lookup_failed"
        assert "password" not in resp.text

    def test_unexpected_failure_is_500(self, client):
        user_id, _ = create_driver()
        error_client = TestClient(app, raise_server_exceptions=False)
        with patch("freightgate.api.access.evaluate_access", side_effect=RuntimeError("boom")):
            resp = error_client.post(
                "/functions/check-access",
                headers={"X-User-Id": user_id},
                json={"action": "view_contact"},
            )

        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "internal_error"
        assert "boom" not in resp.text


class TestRecordContactView:
    def test_records_then_reports_already_viewed(self, client):
        user_id, _ = create_driver()
        _, company_id = create_company()
        freight_id = create_freight(company_id)

        first = client.post("/functions/record-contact-view", headers={"X-User-Id": user_id}, json={"freightId": freight_id})
        second = client.post("/functions/record-contact-view", headers={"X-User-Id": user_id}, json={"freightId": freight_id})

        assert first.status_code == 200
        assert first.json() == {"success": True, "alreadyViewed": False}
        assert second.json() == {"success": True, "alreadyViewed": True}

    def test_limit_exceeded_is_500_with_error(self, client):
        plan = create_plan("driver-one", target_role="driver", contact_view_limit=1)
        user_id, _ = create_driver()
        create_subscription(user_id, plan)
        _, company_id = create_company()
        client.post("/functions/record-contact-view", headers={"X-User-Id": user_id}, json={"freightId": create_freight(company_id)})

        resp = client.post(
            "/functions/record-contact-view",
            headers={"X-User-Id": user_id},
            json={"freightId": create_freight(company_id)},
        )

        assert resp.status_code == 500
        assert resp.json() == {"error": "Contact view limit exceeded", "code": "limit_exceeded"}

    def test_unknown_freight_is_500_with_error(self, client):
        user_id, _ = create_driver()

        resp = client.post("/functions/record-contact-view", headers={"X-User-Id": user_id}, json={"freightId": "frt-missing"})

        assert resp.status_code == 500
        assert resp.json()["error"] == "Freight not found"

    def test_requires_authentication(self, client):
        resp = client.post("/functions/record-contact-view", json={"freightId": "frt-1"})

        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_companies_cannot_record(self, client):
        user_id, _ = create_company()

        resp = client.post("/functions/record-contact-view", headers={"X-User-Id": user_id}, json={"freightId": "frt-1"})

        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_usage_endpoint(self, client):
        user_id, _ = create_driver()
        _, company_id = create_company()
        client.post("/functions/record-contact-view", headers={"X-User-Id": user_id}, json={"freightId": create_freight(company_id)})

        resp = client.get("/contact-views/usage", headers={"X-User-Id": user_id})

        body = resp.json()
        assert body["used"] == 1
        assert body["limit"] == 5
        assert body["remaining"] == 4


class TestPlansApi:
    def test_list_plans_for_role(self, client):
        resp = client.get("/plans", params={"role": "driver"})

        assert resp.status_code == 200
        assert [plan["slug"] for plan in resp.json()["plans"]] == ["driver-free", "driver-premium"]

    def test_start_trial_and_read_back(self, client):
        user_id, _ = create_company()

        created = client.post("/subscriptions", headers={"X-User-Id": user_id}, json={"planSlug": "company-trial"})
        current = client.get("/subscriptions/me", headers={"X-User-Id": user_id})

        assert created.status_code == 201
        assert created.json()["subscription"]["status"] == "trialing"
        assert current.json()["plan"]["slug"] == "company-trial"

    def test_paid_plan_requires_checkout(self, client):
        user_id, _ = create_company()

        resp = client.post("/subscriptions", headers={"X-User-Id": user_id}, json={"planSlug": "company-business"})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_trial_cannot_be_started_twice(self, client):
        user_id, _ = create_company()
        client.post("/subscriptions", headers={"X-User-Id": user_id}, json={"planSlug": "company-trial"})

        resp = client.post("/subscriptions", headers={"X-User-Id": user_id}, json={"planSlug": "company-trial"})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"


class TestOperational:
    def test_request_id_is_echoed(self, client):
        resp = client.get("/healthz", headers={"x-request-id": "rid-123"})

        assert resp.json() == {"status": "ok"}
        assert resp.headers["x-request-id"] == "rid-123"

    def test_readyz_with_schema(self, client):
        assert client.get("/readyz").json() == {"status": "ready"}


class TestUserIdHeaderDisabled:
    @pytest.fixture(autouse=True)
    def default_auth_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "AUTH_ALLOW_USER_ID_HEADER", Settings.model_fields["AUTH_ALLOW_USER_ID_HEADER"].default)

    def test_header_alone_is_anonymous(self, client):
        user_id, _ = create_company()
        create_subscription(user_id, "company-enterprise")

        resp = client.post(
            "/functions/check-access",
            headers={"X-User-Id": user_id},
            json={"action": "create_freight"},
        )

        assert resp.status_code == 200
        assert resp.json()["canAccess"] is False
        assert resp.json()["reason"] == "no_auth"

    def test_record_contact_view_requires_token(self, client):
        user_id, _ = create_driver()
        _, company_id = create_company()

        resp = client.post(
            "/functions/record-contact-view",
            headers={"X-User-Id": user_id},
            json={"freightId": create_freight(company_id)},
        )

        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_bearer_token_still_works(self, client, jwt_secret):
        user_id, _ = create_company()
        create_subscription(user_id, "company-enterprise")

        resp = client.post(
            "/functions/check-access",
            headers={"Authorization": f"Bearer {_token(jwt_secret, user_id)}"},
            json={"action": "create_freight"},
        )

        assert resp.json()["canAccess"] is True
