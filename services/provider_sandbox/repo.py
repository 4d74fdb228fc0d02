"""SQLAlchemy repository for sandbox provider orders.

This module stores the orders created through the sandbox Orders API and
the idempotency keys sent with them. Orders keep an internal, monotonic
numeric sequence (``internal_id``) next to their public ``order_`` id.

Database connection parameters are read from the ``SANDBOX_DATABASE_URL``
environment variable, defaulting to a local SQLite file.
"""

import hashlib
import json
import os
import time
import uuid
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import BigInteger, Integer, String, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

DATABASE_URL = os.getenv("SANDBOX_DATABASE_URL", "sqlite:///./provider_sandbox.db")
engine = create_engine(DATABASE_URL, pool_pre_ping=True)


class Base(DeclarativeBase):
    pass


class SandboxOrder(Base):
    """An order as the provider would store it.

    Attributes:
        id: Public id (``order_`` + 14 hex chars).
        internal_id: Internal monotonically increasing identifier.
        amount: Amount in minor units.
        amount_paid: Minor units captured so far.
        currency: Three-letter ISO currency code.
        receipt: Merchant receipt sent on creation.
        status: ``created`` | ``attempted`` | ``paid``.
        attempts: Number of payment attempts.
        payment_id: Id of the capturing payment once paid.
        created_at: Unix timestamp.
    """

    __tablename__ = "sandbox_orders"

    id = mapped_column(String(32), primary_key=True)
    internal_id = mapped_column(BigInteger, unique=True, nullable=True)
    amount = mapped_column(Integer, nullable=False)
    amount_paid = mapped_column(Integer, nullable=False, default=0)
    currency = mapped_column(String(3), nullable=False)
    receipt = mapped_column(String(40), nullable=True)
    status = mapped_column(String(16), nullable=False, default="created")
    attempts = mapped_column(Integer, nullable=False, default=0)
    payment_id = mapped_column(String(32), nullable=True)
    created_at = mapped_column(BigInteger, nullable=False)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "entity": "order",
            "amount": self.amount,
            "amount_paid": self.amount_paid,
            "amount_due": self.amount - self.amount_paid,
            "currency": self.currency,
            "receipt": self.receipt,
            "status": self.status,
            "attempts": self.attempts,
            "created_at": self.created_at,
        }


class IdempotencyKey(Base):
    """Idempotency records used to deduplicate order creation.

    Attributes:
        key: Unique idempotency key provided by the merchant.
        request_hash: Canonical SHA-256 hex digest of the original request.
        order_id: Order created for the key; committed together with the key.
    """

    __tablename__ = "sandbox_idempotency_keys"

    key = mapped_column(String(200), primary_key=True)
    request_hash = mapped_column(String(64), nullable=False)
    order_id = mapped_column(String(32), nullable=True)


def canonical_hash(payload: dict) -> str:
    """Compute a deterministic SHA-256 hash of a request payload."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def init_db() -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    """Yield a SQLAlchemy session bound to the configured engine."""
    with Session(engine) as s:
        yield s


def _next_internal_id(session: Session) -> int:
    """Compute the next internal_id under a lock on the current max."""
    last = (
        session.execute(
            select(SandboxOrder)
            .order_by(SandboxOrder.internal_id.desc())
            .with_for_update()
            .limit(1)
        )
        .scalars()
        .first()
    )
    return 1 if not last or last.internal_id is None else last.internal_id + 1


class OrdersRepo:
    """Repository for creating and settling sandbox orders."""

    def create_order(self, session: Session, amount: int, currency: str, receipt: Optional[str]) -> SandboxOrder:
        """Create and flush a new order in ``session``; the caller commits."""
        order = SandboxOrder(
            id=f"order_{uuid.uuid4().hex[:14]}",
            internal_id=_next_internal_id(session),
            amount=amount,
            amount_paid=0,
            currency=currency,
            receipt=receipt,
            status="created",
            attempts=0,
            created_at=int(time.time()),
        )
        session.add(order)
        session.flush()
        return order

    def get_order(self, session: Session, order_id: str) -> Optional[SandboxOrder]:
        return session.get(SandboxOrder, order_id)

    def mark_paid(self, session: Session, order: SandboxOrder) -> str:
        """Capture the full amount and return the new payment id."""
        order.attempts += 1
        order.amount_paid = order.amount
        order.status = "paid"
        order.payment_id = f"pay_{uuid.uuid4().hex[:14]}"
        session.add(order)
        return order.payment_id
