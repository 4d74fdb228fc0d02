import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from apps.payments.signature import verify

from main import app
from repo import IdempotencyKey, SandboxOrder, get_session

AUTH = ("rzp_test_sandbox", "sandbox_secret")


@pytest.fixture()
def api():
    with TestClient(app) as c:
        yield c


def _create(api, **overrides):
    body = {"amount": 49900, "currency": "INR", "receipt": "order_1714000000500"}
    body.update(overrides)
    return api.post("/v1/orders", json=body, auth=AUTH)


def test_health(api):
    r = api.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_create_order_returns_provider_shape(api):
    r = _create(api)
    assert r.status_code == 200
    body = r.json()
    assert body["id"].startswith("order_")
    assert body["entity"] == "order"
    assert body["amount"] == 49900
    assert body["amount_paid"] == 0
    assert body["amount_due"] == 49900
    assert body["currency"] == "INR"
    assert body["receipt"] == "order_1714000000500"
    assert body["status"] == "created"
    assert r.headers["X-Request-ID"]


@pytest.mark.parametrize("auth", [None, ("rzp_test_sandbox", "wrong"), ("someone_else", "sandbox_secret")])
def test_create_order_requires_valid_keys(api, auth):
    r = api.post("/v1/orders", json={"amount": 100, "currency": "INR"}, auth=auth)
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "BAD_REQUEST_ERROR"


@pytest.mark.parametrize(
    "overrides, field",
    [({"amount": 0}, "amount"), ({"currency": "inr"}, "currency"), ({"receipt": "r" * 41}, "receipt")],
)
def test_create_order_rejects_bad_fields(api, overrides, field):
    r = _create(api, **overrides)
    assert r.status_code == 400
    error = r.json()["error"]
    assert error["code"] == "BAD_REQUEST_ERROR"
    assert field in error["description"]


def test_idempotency_key_replays_same_order(api):
    key = f"idem-{uuid.uuid4()}"
    first = api.post("/v1/orders", json={"amount": 100, "currency": "INR"}, auth=AUTH,
                     headers={"Idempotency-Key": key})
    second = api.post("/v1/orders", json={"amount": 100, "currency": "INR"}, auth=AUTH,
                      headers={"Idempotency-Key": key})
    assert first.status_code == second.status_code == 200
    assert first.json()["id"] == second.json()["id"]


def test_idempotency_key_conflict_on_different_payload(api):
    key = f"idem-{uuid.uuid4()}"
    api.post("/v1/orders", json={"amount": 100, "currency": "INR"}, auth=AUTH, headers={"Idempotency-Key": key})
    r = api.post("/v1/orders", json={"amount": 200, "currency": "INR"}, auth=AUTH, headers={"Idempotency-Key": key})
    assert r.status_code == 409


def test_orders_without_key_are_distinct(api):
    assert _create(api).json()["id"] != _create(api).json()["id"]


def test_get_order(api):
    order_id = _create(api).json()["id"]
    r = api.get(f"/v1/orders/{order_id}", auth=AUTH)
    assert r.status_code == 200
    assert r.json()["id"] == order_id


def test_get_unknown_order(api):
    r = api.get("/v1/orders/order_doesnotexist", auth=AUTH)
    assert r.status_code == 404
    assert r.json()["error"]["description"] == "The id provided does not exist"


def test_pay_returns_signature_the_gateway_accepts(api):
    order_id = _create(api).json()["id"]
    r = api.post(f"/v1/orders/{order_id}/pay", auth=AUTH)
    assert r.status_code == 200
    triple = r.json()
    assert triple["razorpay_order_id"] == order_id
    assert triple["razorpay_payment_id"].startswith("pay_")
    assert verify(triple["razorpay_order_id"], triple["razorpay_payment_id"],
                  triple["razorpay_signature"], b"sandbox_secret")
    assert not verify(triple["razorpay_order_id"], triple["razorpay_payment_id"],
                      triple["razorpay_signature"], b"other_secret")

    settled = api.get(f"/v1/orders/{order_id}", auth=AUTH).json()
    assert settled["status"] == "paid"
    assert settled["amount_due"] == 0
    assert settled["attempts"] == 1


def test_pay_twice_is_rejected(api):
    order_id = _create(api).json()["id"]
    assert api.post(f"/v1/orders/{order_id}/pay", auth=AUTH).status_code == 200
    r = api.post(f"/v1/orders/{order_id}/pay", auth=AUTH)
    assert r.status_code == 400
    assert r.json()["error"]["description"] == "Order is already paid"


def test_idempotency_key_stores_one_linked_order(api):
    key = f"idem-{uuid.uuid4()}"
    receipt = f"r-{uuid.uuid4().hex[:12]}"
    body = {"amount": 300, "currency": "INR", "receipt": receipt}
    ids = {api.post("/v1/orders", json=body, auth=AUTH, headers={"Idempotency-Key": key}).json()["id"]
           for _ in range(3)}
    assert len(ids) == 1

    with get_session() as s:
        linked = s.get(IdempotencyKey, key).order_id
        stored = s.execute(
            select(func.count()).select_from(SandboxOrder).where(SandboxOrder.receipt == receipt)
        ).scalar_one()
    assert linked == ids.pop()
    assert stored == 1
