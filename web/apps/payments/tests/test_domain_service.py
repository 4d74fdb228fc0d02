"""Unit tests for the OrderGatewayClient and PaymentService.

A recording provider stub stands in for the payment provider so tests can
assert both the outgoing payload and whether a call was made at all.
"""

import threading

import pytest

from apps.payments.domain import (
    Credentials,
    Order,
    OrderGatewayClient,
    PaymentService,
    ReceiptSequence,
)
from apps.payments.errors import GatewayError, ValidationError


class RecordingProvider:
    """Provider stub that records payloads and answers with ``response``."""

    def __init__(self, response=None, error=None):
        self.calls = []
        self.response = response
        self.error = error

    def create(self, payload, idempotency_key=None):
        self.calls.append((payload, idempotency_key))
        if self.error:
            raise self.error
        if self.response is not None:
            return self.response
        return {"id": "order_1", "amount": payload["amount"], "currency": payload["currency"],
                "status": "created", "receipt": payload["receipt"]}


CREDS = Credentials(key_id="rzp_test_key", key_secret="s3cr3t")


@pytest.mark.parametrize("amount", [0, -1, -500])
def test_non_positive_amount_is_rejected_without_outbound_call(amount):
    provider = RecordingProvider()
    client = OrderGatewayClient(provider)
    with pytest.raises(ValidationError) as e:
        client.create_order(amount, "INR")
    assert e.value.message == "amount must be positive"
    assert e.value.code == "INVALID_AMOUNT"
    assert provider.calls == []


@pytest.mark.parametrize("amount", [True, 1.5, "500", None])
def test_non_integer_amount_is_rejected(amount):
    provider = RecordingProvider()
    with pytest.raises(ValidationError):
        OrderGatewayClient(provider).create_order(amount, "INR")
    assert provider.calls == []


@pytest.mark.parametrize("currency", ["USD", "EUR", "", "INRR", "IN", None, 356])
def test_unsupported_currency_is_rejected(currency):
    provider = RecordingProvider()
    with pytest.raises(ValidationError) as e:
        OrderGatewayClient(provider).create_order(500, currency)
    assert e.value.message == "unsupported currency"
    assert e.value.code == "UNSUPPORTED_CURRENCY"
    assert provider.calls == []


@pytest.mark.parametrize("currency", ["INR", "inr", "Inr"])
def test_payload_uses_minor_units_and_uppercase_currency(currency):
    provider = RecordingProvider()
    OrderGatewayClient(provider).create_order(500, currency)
    payload, key = provider.calls[0]
    assert payload["amount"] == 50000
    assert payload["currency"] == "INR"
    assert payload["receipt"].startswith("order_")
    assert key is None


def test_idempotency_key_is_forwarded():
    provider = RecordingProvider()
    OrderGatewayClient(provider).create_order(10, "INR", idempotency_key="idem-1")
    assert provider.calls[0][1] == "idem-1"


def test_missing_provider_fields_map_to_none():
    provider = RecordingProvider(response={"id": "order_2", "status": "created"})
    order = OrderGatewayClient(provider).create_order(10, "INR")
    assert order == Order(id="order_2", amount=None, currency=None, status="created", receipt=None)


@pytest.mark.parametrize(
    "response",
    [
        ["not", "an", "object"],
        {"id": 123, "amount": 1000},
        {"id": "order_3", "amount": "1000"},
    ],
)
def test_malformed_provider_response_is_gateway_error(response):
    provider = RecordingProvider(response=response)
    with pytest.raises(GatewayError) as e:
        OrderGatewayClient(provider).create_order(10, "INR")
    assert e.value.code == "GATEWAY_BAD_RESPONSE"


def test_provider_error_propagates_and_is_not_retried():
    provider = RecordingProvider(error=GatewayError("The amount must be atleast INR 1.00", code="GATEWAY_REJECTED"))
    with pytest.raises(GatewayError) as e:
        OrderGatewayClient(provider).create_order(10, "INR")
    assert e.value.message == "The amount must be atleast INR 1.00"
    assert len(provider.calls) == 1


def test_receipts_are_unique_within_the_same_millisecond():
    seq = ReceiptSequence(clock=lambda: 1714000000.5)
    receipts = [seq.next() for _ in range(5)]
    assert receipts[0] == "order_1714000000500"
    assert len(set(receipts)) == 5
    assert receipts == sorted(receipts)


def test_receipts_are_unique_across_threads():
    seq = ReceiptSequence(clock=lambda: 1.0)
    out = []

    def worker():
        for _ in range(200):
            out.append(seq.next())

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(set(out)) == 800


def test_facade_end_to_end_returns_provider_record():
    """create_order(500, "INR") returns the provider's order unchanged."""
    provider = RecordingProvider(response={
        "id": "order_1", "entity": "order", "amount": 50000, "currency": "INR",
        "status": "created", "receipt": "order_1714000000123", "attempts": 0,
    })
    service = PaymentService(OrderGatewayClient(provider), CREDS)
    out = service.create_order(500, "INR")
    assert out == {
        "id": "order_1",
        "amount": 50000,
        "currency": "INR",
        "status": "created",
        "receipt": "order_1714000000123",
    }
    assert provider.calls[0][0]["amount"] == 50000


def test_facade_keeps_absent_fields_as_null():
    provider = RecordingProvider(response={"id": "order_9"})
    out = PaymentService(OrderGatewayClient(provider), CREDS).create_order(1, "INR")
    assert out == {"id": "order_9", "amount": None, "currency": None, "status": None, "receipt": None}


def test_facade_verify_payment_uses_credentials_secret():
    service = PaymentService(OrderGatewayClient(RecordingProvider()), CREDS)
    good = "ee21698235c31aef5bb049b86d1c00014db7de75dbe78cb4ed9ffa8e90855655"
    assert service.verify_payment("order_abc", "pay_xyz", good) is True
    assert service.verify_payment("order_abc", "pay_xyz", good[:-1] + "4") is False
    assert service.verify_payment("", "", "") is False


def test_credentials_repr_hides_values():
    assert "s3cr3t" not in repr(CREDS)
    assert "rzp_test_key" not in str(CREDS)
