"""API tests for the create-order endpoint.

These tests exercise the payments HTTP API for the main scenarios:
successful creation, business validation errors, payload errors and
provider failures. The in-process provider stub is enabled by the
autouse fixture in ``conftest.py``.
"""

import pytest
from rest_framework.throttling import ScopedRateThrottle

from apps.payments import adapters
from apps.payments.errors import GatewayError

CREATE_URL = "/api/payment/create-order"


def test_create_order_returns_normalized_order(client):
    r = client.post(CREATE_URL, data={"amount": 500, "currency": "inr", "planId": "pro"},
                    content_type="application/json")
    assert r.status_code == 201
    body = r.json()
    assert set(body) == {"id", "amount", "currency", "status", "receipt"}
    assert body["id"].startswith("order_")
    assert body["amount"] == 50000
    assert body["currency"] == "INR"
    assert body["status"] == "created"
    assert body["receipt"].startswith("order_")
    assert r.headers.get("X-Request-ID")


def test_create_order_echoes_request_id(client):
    r = client.post(CREATE_URL, data={"amount": 1, "currency": "INR"}, content_type="application/json",
                    HTTP_X_REQUEST_ID="req-123")
    assert r.headers["X-Request-ID"] == "req-123"


@pytest.mark.parametrize("amount", [0, -10])
def test_create_order_non_positive_amount(client, monkeypatch, amount):
    calls = []
    monkeypatch.setattr(adapters.OrdersProviderStub, "create",
                        lambda self, payload, idempotency_key=None: calls.append(payload))
    r = client.post(CREATE_URL, data={"amount": amount, "currency": "INR"}, content_type="application/json")
    assert r.status_code == 400
    assert r.json() == {"detail": "INVALID_AMOUNT", "error": "amount must be positive"}
    assert calls == []


def test_create_order_unsupported_currency(client):
    r = client.post(CREATE_URL, data={"amount": 500, "currency": "USD"}, content_type="application/json")
    assert r.status_code == 400
    assert r.json() == {"detail": "UNSUPPORTED_CURRENCY", "error": "unsupported currency"}


@pytest.mark.parametrize(
    "payload",
    [
        {"currency": "INR"},
        {"amount": "500", "currency": "INR"},
        {"amount": 5.5, "currency": "INR"},
        {"amount": 500},
    ],
)
def test_create_order_invalid_payload(client, payload):
    r = client.post(CREATE_URL, data=payload, content_type="application/json")
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_PAYLOAD"


def test_create_order_provider_rejection_maps_to_502(client, monkeypatch):
    def reject(self, payload, idempotency_key=None):
        raise GatewayError("Authentication failed", code="GATEWAY_REJECTED")

    monkeypatch.setattr(adapters.OrdersProviderStub, "create", reject)
    r = client.post(CREATE_URL, data={"amount": 500, "currency": "INR"}, content_type="application/json")
    assert r.status_code == 502
    assert r.json() == {"detail": "GATEWAY_REJECTED", "error": "Authentication failed"}


def test_create_order_provider_unavailable_maps_to_503(client, monkeypatch):
    def down(self, payload, idempotency_key=None):
        raise GatewayError("payment provider unavailable", code="UPSTREAM_UNAVAILABLE")

    monkeypatch.setattr(adapters.OrdersProviderStub, "create", down)
    r = client.post(CREATE_URL, data={"amount": 500, "currency": "INR"}, content_type="application/json")
    assert r.status_code == 503
    assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"


def test_create_order_missing_credentials_is_structured_500(client, settings):
    settings.PAYMENT_GATEWAY_KEY_SECRET = ""
    r = client.post(CREATE_URL, data={"amount": 500, "currency": "INR"}, content_type="application/json")
    assert r.status_code == 500
    assert r.json() == {"detail": "INTERNAL_ERROR", "error": "internal server error"}


def test_create_order_rejects_get(client):
    r = client.get(CREATE_URL)
    assert r.status_code == 405
    assert r.json()["detail"] == "METHOD_NOT_ALLOWED"


def test_create_order_oversized_body(client, settings):
    settings.API_MAX_BYTES = 10
    r = client.post(CREATE_URL, data={"amount": 500, "currency": "INR", "planId": "x" * 50},
                    content_type="application/json")
    assert r.status_code == 413
    assert r.json()["detail"] == "PAYLOAD_TOO_LARGE"


def test_create_order_is_throttled(client, monkeypatch):
    rates = {**ScopedRateThrottle.THROTTLE_RATES, "payments_create_order": "2/min"}
    monkeypatch.setattr(ScopedRateThrottle, "THROTTLE_RATES", rates)
    codes = [
        client.post(CREATE_URL, data={"amount": 1, "currency": "INR"}, content_type="application/json").status_code
        for _ in range(3)
    ]
    assert codes == [201, 201, 429]
