"""Idempotency-Key handling for ``create-order``.

A client retrying ``create-order`` with the same ``Idempotency-Key`` gets the
original answer back instead of a second provider order. A record moves
through two states:

- in flight (``response_status == IN_FLIGHT``): claimed by a request that
  has not answered yet;
- settled: the stored status and body are replayed, and for a created order
  ``order_id`` links the key to the provider order.

A record whose request failed upstream is released instead of settled, so
the key can be used again.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from .models import IdempotencyKey

IDEMPOTENCY_CONFLICT = "IDEMPOTENCY_CONFLICT"
IN_FLIGHT = 0


class IdempotencyConflict(Exception):
    """The key was already used with a different payload."""

    code = IDEMPOTENCY_CONFLICT


def _hash(payload: dict) -> str:
    """SHA-256 hex digest of ``payload`` serialized with sorted keys."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def claim(key: str, payload: dict) -> tuple[IdempotencyKey, bool]:
    """Claim ``key`` for ``payload``.

    Returns:
        tuple[IdempotencyKey, bool]: The record and whether this call created
        it. An existing record is returned locked; it may still be in flight.

    Raises:
        IdempotencyConflict: If the key exists with a different payload hash.
    """
    h = _hash(payload)
    try:
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h, response_status=IN_FLIGHT)
            return rec, True
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise IdempotencyConflict(key)
        return rec, False


def is_in_flight(rec: IdempotencyKey) -> bool:
    return rec.response_status == IN_FLIGHT


def settle(rec: IdempotencyKey, status_code: int, body: dict) -> None:
    """Store the answer for replay.

    A successful answer carries the provider order, whose ``id`` is kept in
    ``order_id``; an error answer leaves ``order_id`` empty.
    """
    rec.response_status = status_code
    rec.response_body = body
    rec.order_id = body.get("id") if status_code < 300 else None
    rec.save(update_fields=["response_status", "response_body", "order_id"])


def release(rec: IdempotencyKey) -> None:
    """Drop a record whose request failed without a stored answer.

    The provider call may already have created an order (a timeout or a
    malformed 2xx, for instance). Retrying with the same key is still safe
    because the key is forwarded to the provider, which returns that order
    instead of creating another.
    """
    rec.delete()
