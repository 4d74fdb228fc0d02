"""Provider sandbox built with FastAPI.

A local stand-in for the payment provider's Orders API, used when the
checkout gateway runs with ``PAYMENT_GATEWAY_BASE_URL`` pointing here.
It authenticates with HTTP basic auth, honors ``Idempotency-Key`` on order
creation and can settle an order, returning the same signed callback
triple the provider's checkout hands to the browser.

Errors use the provider's shape: ``{"error": {"code": ..., "description": ...}}``.
"""

import hashlib
import hmac
import logging
import os
import secrets
import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field, constr
from pythonjsonlogger import jsonlogger
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError

from repo import IdempotencyKey, OrdersRepo, canonical_hash, engine, get_session, init_db

SANDBOX_KEY_ID = os.getenv("SANDBOX_KEY_ID", "rzp_test_sandbox")
SANDBOX_KEY_SECRET = os.getenv("SANDBOX_KEY_SECRET", "sandbox_secret")

logger = logging.getLogger("provider_sandbox")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # short active wait until the DB accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()
    yield


app = FastAPI(title="Payment Provider Sandbox", lifespan=lifespan)
basic = HTTPBasic(auto_error=False)

Currency = constr(pattern=r"^[A-Z]{3}$")


class ProviderError(Exception):
    """Raised by handlers; rendered in the provider's error shape."""

    def __init__(self, status_code: int, description: str, code: str = "BAD_REQUEST_ERROR"):
        super().__init__(description)
        self.status_code = status_code
        self.description = description
        self.code = code


@app.exception_handler(ProviderError)
async def _provider_error(_request: Request, exc: ProviderError):
    return JSONResponse(status_code=exc.status_code,
                        content={"error": {"code": exc.code, "description": exc.description}})


@app.exception_handler(RequestValidationError)
async def _validation_error(_request: Request, exc: RequestValidationError):
    fields = sorted({".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()})
    return JSONResponse(
        status_code=400,
        content={"error": {"code": "BAD_REQUEST_ERROR", "description": "invalid fields: " + ", ".join(fields)}},
    )


def require_auth(creds: Annotated[Optional[HTTPBasicCredentials], Depends(basic)]) -> str:
    """Check the merchant key pair and return the key id."""
    if creds is None:
        raise ProviderError(401, "The api key provided is invalid")
    id_ok = secrets.compare_digest(creds.username.encode(), SANDBOX_KEY_ID.encode())
    secret_ok = secrets.compare_digest(creds.password.encode(), SANDBOX_KEY_SECRET.encode())
    if not (id_ok and secret_ok):
        raise ProviderError(401, "Authentication failed")
    return creds.username


class OrderCreate(BaseModel):
    """Request body for order creation.

    Attributes:
        amount: Positive amount in minor currency units.
        currency: Three-letter uppercase ISO currency code.
        receipt: Optional merchant reference, at most 40 characters.
    """

    amount: int = Field(gt=0)
    currency: Currency
    receipt: Optional[str] = Field(default=None, max_length=40)


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/v1/orders")
def create_order(
    req: OrderCreate,
    _key_id: Annotated[str, Depends(require_auth)],
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
):
    """Create an order, at most once per ``Idempotency-Key``.

    A retry with the same key and payload returns the original order; the
    same key with a different payload is answered with 409.
    """
    repo = OrdersRepo()
    with get_session() as s:
        if not idempotency_key:
            order = repo.create_order(s, req.amount, req.currency, req.receipt)
            s.commit()
            return order.as_dict()

        # order and key commit together; a concurrent duplicate loses on the key
        payload_hash = canonical_hash(req.model_dump())
        try:
            order = repo.create_order(s, req.amount, req.currency, req.receipt)
            s.add(IdempotencyKey(key=idempotency_key, request_hash=payload_hash, order_id=order.id))
            s.commit()
            return order.as_dict()
        except IntegrityError:
            s.rollback()

        rec = s.execute(
            select(IdempotencyKey).where(IdempotencyKey.key == idempotency_key)
        ).scalars().first()
        if rec is None:
            raise ProviderError(500, "idempotency lookup failed", code="SERVER_ERROR")
        if rec.request_hash != payload_hash:
            raise ProviderError(409, "idempotency key reused with a different request")
        existing = repo.get_order(s, rec.order_id)
        if existing is None:
            raise ProviderError(500, "idempotent order is missing", code="SERVER_ERROR")
        logger.info("idempotent replay", extra={"order_id": existing.id})
        return existing.as_dict()


@app.get("/v1/orders/{order_id}")
def get_order(order_id: str, _key_id: Annotated[str, Depends(require_auth)]):
    with get_session() as s:
        order = OrdersRepo().get_order(s, order_id)
        if order is None:
            raise ProviderError(404, "The id provided does not exist")
        return order.as_dict()


@app.post("/v1/orders/{order_id}/pay")
def pay_order(order_id: str, _key_id: Annotated[str, Depends(require_auth)]):
    """Settle an order and return the checkout callback fields.

    The signature is the lowercase hex HMAC-SHA256 of
    ``"<order_id>|<payment_id>"`` keyed with the sandbox secret.
    """
    repo = OrdersRepo()
    with get_session() as s:
        order = repo.get_order(s, order_id)
        if order is None:
            raise ProviderError(404, "The id provided does not exist")
        if order.status == "paid":
            raise ProviderError(400, "Order is already paid")
        payment_id = repo.mark_paid(s, order)
        s.commit()

    message = f"{order_id}|{payment_id}".encode("utf-8")
    signature = hmac.new(SANDBOX_KEY_SECRET.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return {
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature,
    }


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
