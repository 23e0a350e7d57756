"""HTTP surface tests: webhook endpoint, admin API, health and metrics"""
import pytest
from unittest.mock import patch

from billing.core.config import settings
from billing.models.webhook_event import WebhookEventStatus
from billing.services.credit_service import increment_credits_with_log
from conftest import TEST_ADMIN_KEY, TEST_WEBHOOK_SECRET
from stripe_payloads import encode, invoice_object, make_event, sign

ADMIN_HEADERS = {"X-Admin-Key": TEST_ADMIN_KEY}


def _post_event(client, event, secret=TEST_WEBHOOK_SECRET):
    payload = encode(event)
    return client.post(
        "/webhooks/payments",
        content=payload,
        headers={"stripe-signature": sign(payload, secret), "content-type": "application/json"},
    )


@pytest.mark.critical
class TestWebhookEndpoint:
    """Test POST /webhooks/payments"""

    def test_signed_event_is_processed(self, client, test_profile, db_session, mock_stripe):
        response = _post_event(client, make_event("invoice.payment_succeeded", invoice_object(), event_id="evt_http"))

        assert response.status_code == 200
        assert response.json() == {"received": True}
        db_session.refresh(test_profile)
        assert test_profile.subscription_credits_balance == 1000

    def test_redelivery_is_acknowledged_and_skipped(self, client, test_profile, db_session, mock_stripe):
        event = make_event("invoice.payment_succeeded", invoice_object(), event_id="evt_http_dup")
        _post_event(client, event)

        response = _post_event(client, event)

        assert response.status_code == 200
        assert response.json()["skipped"] is True
        db_session.refresh(test_profile)
        assert test_profile.subscription_credits_balance == 1000

    def test_missing_signature_header(self, client):
        response = client.post("/webhooks/payments", content=encode(make_event("customer.created", {"id": "cus_x"})))

        assert response.status_code == 400
        assert response.json() == {"error": "Missing stripe-signature header"}

    def test_bad_signature(self, client):
        response = _post_event(client, make_event("customer.created", {"id": "cus_x"}), secret="whsec_wrong")

        assert response.status_code == 400
        assert "signature verification failed" in response.json()["error"]

    def test_unknown_event_type_is_acknowledged(self, client):
        response = _post_event(client, make_event("payout.paid", {"id": "po_1"}, event_id="evt_payout"))

        assert response.status_code == 200
        assert response.json()["warning"] == "Unhandled event type: payout.paid"


@pytest.mark.high
class TestAdminApi:
    """Test admin endpoints and their key check"""

    def test_missing_key_is_unauthorized(self, client):
        response = client.get("/api/admin/webhooks/events")

        assert response.status_code == 401

    def test_wrong_key_is_unauthorized(self, client):
        response = client.get("/api/admin/webhooks/events", headers={"X-Admin-Key": "nope"})

        assert response.status_code == 401

    def test_disabled_without_configured_key(self, client):
        with patch.object(settings, "ADMIN_API_KEY", ""):
            response = client.get("/api/admin/webhooks/events", headers=ADMIN_HEADERS)

        assert response.status_code == 503

    def test_list_and_filter_events(self, client, test_profile, mock_stripe):
        _post_event(client, make_event("invoice.payment_succeeded", invoice_object(), event_id="evt_list_1"))
        _post_event(client, make_event("payout.paid", {"id": "po_1"}, event_id="evt_list_2"))

        response = client.get("/api/admin/webhooks/events", headers=ADMIN_HEADERS)
        assert response.status_code == 200
        assert response.json()["total"] == 2

        response = client.get(
            "/api/admin/webhooks/events",
            params={"status": WebhookEventStatus.UNRECOVERABLE.value},
            headers=ADMIN_HEADERS,
        )
        events = response.json()["events"]
        assert [e["event_id"] for e in events] == ["evt_list_2"]
        assert "payload" not in events[0]

    def test_event_detail_includes_payload(self, client, test_profile, mock_stripe):
        _post_event(client, make_event("invoice.payment_succeeded", invoice_object(), event_id="evt_detail"))

        response = client.get("/api/admin/webhooks/events/evt_detail", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["payload"]["data"]["object"]["id"] == "in_123"

    def test_event_detail_not_found(self, client):
        response = client.get("/api/admin/webhooks/events/evt_missing", headers=ADMIN_HEADERS)

        assert response.status_code == 404

    def test_user_transactions(self, client, test_profile, db_session):
        increment_credits_with_log(test_profile.id, 1000, 'subscription', 'invoice_in_1', 'Renewal', db_session)

        response = client.get(f"/api/admin/users/{test_profile.id}/transactions", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["subscription_credits_balance"] == 1000
        assert body["transactions"][0]["reference_id"] == "invoice_in_1"

    def test_user_transactions_unknown_user(self, client):
        response = client.get("/api/admin/users/999/transactions", headers=ADMIN_HEADERS)

        assert response.status_code == 404


@pytest.mark.medium
class TestOperationalEndpoints:
    """Test health and metrics"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_metrics_exposes_webhook_counters(self, client, test_profile, mock_stripe):
        _post_event(client, make_event("invoice.payment_succeeded", invoice_object(), event_id="evt_metrics"))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "billing_webhook_events_total" in response.text
