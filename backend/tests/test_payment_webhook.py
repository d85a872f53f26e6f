"""
Stripe payment webhook: checkout.session.completed grants unlimited credits
to the payer email exactly once, malformed bodies are rejected, and
subscriber bookkeeping never blocks the grant.
"""
import hashlib
import hmac
import json
import time
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from solvenote.services.credit_service import CreditStoreError
from solvenote.services.webhook_service import PaymentWebhookService

WEBHOOK_URL = "/api/solvenote/webhook/stripe"


def _checkout_event(event_id="evt_1", email="Payer@Example.com", customer="cus_123", **session):
    data = {"id": "cs_test_1", "customer": customer, **session}
    if email:
        data["customer_details"] = {"email": email}
    return {"id": event_id, "type": "checkout.session.completed", "data": {"object": data}}


def _sign(payload: bytes, secret: str) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture(autouse=True)
def no_webhook_secret(monkeypatch):
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)


def test_unparsable_body_returns_400_without_mutation(client: TestClient, fake_db):
    resp = client.post(WEBHOOK_URL, content=b"{not json")

    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Webhook error")
    assert fake_db.credit_accounts.docs == []
    assert fake_db.subscribers.docs == []


def test_body_without_event_type_returns_400(client: TestClient, fake_db):
    assert client.post(WEBHOOK_URL, json=[1, 2, 3]).status_code == 400
    assert client.post(WEBHOOK_URL, json={"id": "evt_x"}).status_code == 400
    assert fake_db.credit_accounts.docs == []


@pytest.mark.parametrize(
    "event",
    [
        {"id": "evt_bad", "type": "checkout.session.completed", "data": "oops"},
        {"id": "evt_bad", "type": "checkout.session.completed", "data": {"object": ["x"]}},
        {"id": "evt_bad", "type": "invoice.paid", "data": {"object": 7}},
        _checkout_event(event_id="evt_bad", email=None, customer_details="payer@example.com"),
        _checkout_event(event_id="evt_bad", email=42),
        _checkout_event(event_id="evt_bad", email=None, customer_email=["payer@example.com"]),
    ],
    ids=["data-string", "object-list", "object-int", "details-string", "email-int", "customer-email-list"],
)
def test_wrongly_shaped_event_returns_400_without_mutation(client: TestClient, fake_db, event):
    resp = client.post(WEBHOOK_URL, json=event)

    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Webhook error")
    assert fake_db.stripe_events.docs == []
    assert fake_db.credit_accounts.docs == []
    assert fake_db.subscribers.docs == []


def test_checkout_without_email_is_acknowledged_without_grant(client: TestClient, fake_db):
    resp = client.post(WEBHOOK_URL, json=_checkout_event(email=None))

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert fake_db.credit_accounts.docs == []
    assert fake_db.subscribers.docs == []
    assert fake_db.stripe_events.docs == []


def test_checkout_grants_unlimited_and_marks_premium(client: TestClient, fake_db):
    resp = client.post(WEBHOOK_URL, json=_checkout_event())

    assert resp.status_code == 200
    accounts = fake_db.credit_accounts.docs
    assert len(accounts) == 1
    assert accounts[0]["email"] == "payer@example.com"
    assert accounts[0]["is_unlimited"] is True

    subscribers = fake_db.subscribers.docs
    assert len(subscribers) == 1
    assert subscribers[0]["email"] == "payer@example.com"
    assert subscribers[0]["subscribed"] is True
    assert subscribers[0]["subscription_tier"] == "premium"
    assert subscribers[0]["stripe_customer_id"] == "cus_123"

    assert fake_db.stripe_events.docs[0]["status"] == "PROCESSED"


def test_customer_email_field_is_accepted(client: TestClient, fake_db):
    event = _checkout_event(email=None, customer_email="other@example.com")

    assert client.post(WEBHOOK_URL, json=event).status_code == 200
    assert fake_db.credit_accounts.docs[0]["email"] == "other@example.com"


def test_payment_for_signed_in_user_unlocks_their_account(client: TestClient, fake_db, make_token):
    headers = {"Authorization": f"Bearer {make_token('user-7', 'payer@example.com')}"}
    for _ in range(4):
        client.post("/api/solvenote/use-credit", headers=headers)

    client.post(WEBHOOK_URL, json=_checkout_event())

    resp = client.post("/api/solvenote/use-credit", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["is_unlimited"] is True
    assert len(fake_db.credit_accounts.docs) == 1


def test_other_event_types_are_ignored(client: TestClient, fake_db):
    event = {"id": "evt_2", "type": "invoice.paid", "data": {"object": {"customer_email": "a@example.com"}}}

    assert client.post(WEBHOOK_URL, json=event).status_code == 200
    assert fake_db.credit_accounts.docs == []
    assert fake_db.stripe_events.docs == []


def test_redelivered_event_is_processed_once(client: TestClient, fake_db):
    event = _checkout_event()
    with patch(
        "solvenote.services.webhook_service.credit_service.grant_unlimited",
        new_callable=AsyncMock,
    ) as grant:
        assert client.post(WEBHOOK_URL, json=event).status_code == 200
        assert client.post(WEBHOOK_URL, json=event).status_code == 200

    grant.assert_awaited_once_with("payer@example.com")
    assert len(fake_db.stripe_events.docs) == 1


def test_alias_route_handles_same_event(client: TestClient, fake_db):
    resp = client.post("/api/solvenote/payment-webhook", json=_checkout_event())

    assert resp.status_code == 200
    assert fake_db.credit_accounts.docs[0]["is_unlimited"] is True


def test_subscriber_failure_still_grants(client: TestClient, fake_db):
    with patch(
        "solvenote.services.webhook_service.subscription_service.mark_premium",
        new_callable=AsyncMock,
        side_effect=Exception("subscribers unavailable"),
    ):
        resp = client.post(WEBHOOK_URL, json=_checkout_event())

    assert resp.status_code == 200
    assert fake_db.credit_accounts.docs[0]["is_unlimited"] is True
    assert fake_db.subscribers.docs == []


def test_grant_failure_returns_500_and_allows_retry(client: TestClient, fake_db):
    event = _checkout_event()
    with patch(
        "solvenote.services.webhook_service.credit_service.grant_unlimited",
        new_callable=AsyncMock,
        side_effect=CreditStoreError("down"),
    ):
        resp = client.post(WEBHOOK_URL, json=event)

    assert resp.status_code == 500
    assert fake_db.stripe_events.docs[0]["status"] == "FAILED"

    # Stripe redelivers; the failed event is processed this time
    assert client.post(WEBHOOK_URL, json=event).status_code == 200
    assert fake_db.credit_accounts.docs[0]["is_unlimited"] is True
    assert fake_db.stripe_events.docs[0]["status"] == "PROCESSED"


def test_bad_signature_rejected_when_secret_set(client: TestClient, fake_db, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
    payload = json.dumps(_checkout_event()).encode("utf-8")

    resp = client.post(
        WEBHOOK_URL,
        content=payload,
        headers={"Stripe-Signature": _sign(payload, "whsec_wrong")},
    )

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid signature"
    assert fake_db.credit_accounts.docs == []

    assert client.post(WEBHOOK_URL, content=payload).status_code == 400


def test_valid_signature_accepted(client: TestClient, fake_db, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
    payload = json.dumps(_checkout_event()).encode("utf-8")

    resp = client.post(
        WEBHOOK_URL,
        content=payload,
        headers={"Stripe-Signature": _sign(payload, "whsec_test")},
    )

    assert resp.status_code == 200
    assert fake_db.credit_accounts.docs[0]["is_unlimited"] is True


@pytest.mark.asyncio
async def test_service_reports_duplicate(fake_db):
    service = PaymentWebhookService()
    payload = json.dumps(_checkout_event()).encode("utf-8")

    first = await service.process_webhook(payload, None)
    second = await service.process_webhook(payload, None)

    assert first["handled"] is True
    assert first["subscription_updated"] is True
    assert second["duplicate"] is True
