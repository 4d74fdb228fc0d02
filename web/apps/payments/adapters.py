"""In-process stub adapters for the payments domain ports.

These stubs implement ``OrdersProviderPort`` and ``CreditLedgerPort``
without any network calls. They are intended for unit tests and local
development where deterministic behavior is useful and the payment
provider is not reachable.
"""

import logging
import time
import uuid
from typing import Optional

from .domain import CreditLedgerPort, OrdersProviderPort

logger = logging.getLogger("payments")


class OrdersProviderStub(OrdersProviderPort):
    """Stub implementation of ``OrdersProviderPort``.

    Echoes the request back as a freshly ``created`` provider order with a
    random ``order_`` id, the way the real API answers.
    """

    def create(self, payload: dict, idempotency_key: Optional[str] = None) -> dict:
        """Create a mock provider order.

        Args:
            payload: Provider payload with ``amount`` (minor units),
                ``currency`` and ``receipt``.
            idempotency_key: Ignored by the stub.

        Returns:
            dict: A provider-shaped order object.
        """
        return {
            "id": f"order_{uuid.uuid4().hex[:14]}",
            "entity": "order",
            "amount": payload["amount"],
            "amount_paid": 0,
            "amount_due": payload["amount"],
            "currency": payload["currency"],
            "receipt": payload.get("receipt"),
            "status": "created",
            "attempts": 0,
            "created_at": int(time.time()),
        }


class CreditLedgerStub(CreditLedgerPort):
    """Stub implementation of ``CreditLedgerPort``.

    User balances are owned by another service; this stub only records
    the request in the log.
    """

    def add_credits(self, user_id: str, credits: int, plan_id: Optional[str] = None,
                    payment_id: Optional[str] = None) -> None:
        logger.info(
            "credit grant requested",
            extra={"user_id": user_id, "credits": credits, "plan_id": plan_id, "payment_id": payment_id},
        )
