"""Domain models, ports and services for payments.

This module contains the order record returned by the payment provider,
protocol definitions (ports) for the outbound provider and the credit
ledger, and the two services used by the views:

- ``OrderGatewayClient`` validates an order request, converts it into the
  provider's payload and maps the provider's answer back to an ``Order``.
- ``PaymentService`` is the facade exposing ``create_order`` and
  ``verify_payment``. It owns the credentials and never touches credit
  balances itself.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, Sequence

from . import signature
from .errors import GatewayError, ValidationError
from .schemas import OrderOut

logger = logging.getLogger("payments")

SUPPORTED_CURRENCIES = ("INR",)
MINOR_UNITS_PER_MAJOR = 100  # two-decimal currencies only


# ---- Enums ----
class OrderStatus(str, Enum):
    """Order statuses known to the provider.

    ``Order.status`` is kept as a plain string because the provider may
    report values outside this list.
    """

    CREATED = "created"
    ATTEMPTED = "attempted"
    PAID = "paid"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class Order:
    """Normalized provider order.

    Attributes:
        id: Provider order id (e.g. ``order_EKwxwAgItmmXdp``).
        amount: Amount in minor currency units (paise for INR).
        currency: Uppercase ISO currency code.
        status: Provider status string, see ``OrderStatus``.
        receipt: Our bookkeeping reference sent with the request.

    Any field the provider omitted is ``None``.
    """

    id: Optional[str]
    amount: Optional[int]
    currency: Optional[str]
    status: Optional[str]
    receipt: Optional[str]

    @classmethod
    def from_provider(cls, data: dict) -> "Order":
        return cls(
            id=data.get("id"),
            amount=data.get("amount"),
            currency=data.get("currency"),
            status=data.get("status"),
            receipt=data.get("receipt"),
        )


@dataclass(frozen=True)
class Credentials:
    """Provider API key pair, loaded once at startup."""

    key_id: str
    key_secret: str

    def __repr__(self) -> str:
        return "Credentials(key_id='***', key_secret='***')"

    __str__ = __repr__


# ---- Ports (DIP) ----
class OrdersProviderPort(Protocol):
    """Port describing the provider's order-creation API."""

    def create(self, payload: dict, idempotency_key: Optional[str] = None) -> dict:
        """Create an order at the provider.

        Args:
            payload: ``{"amount": <minor units>, "currency": ..., "receipt": ...}``.
            idempotency_key: Optional key forwarded so the provider can
                reuse the order on a duplicate request.

        Returns:
            dict: The provider's order object.

        Raises:
            GatewayError: When the provider cannot be reached, rejects the
                request or answers with something that is not an order.
        """
        raise NotImplementedError()


class CreditLedgerPort(Protocol):
    """Port for the service that owns user credit balances."""

    def add_credits(self, user_id: str, credits: int, plan_id: Optional[str] = None,
                    payment_id: Optional[str] = None) -> None:
        raise NotImplementedError()


# ---- Receipts ----
class ReceiptSequence:
    """Issue ``order_<epoch millis>`` receipts that never repeat in-process.

    Two calls in the same millisecond get consecutive values instead of
    the same one.
    """

    def __init__(self, prefix: str = "order_", clock=time.time):
        self.prefix = prefix
        self._clock = clock
        self._lock = threading.Lock()
        self._last = 0

    def next(self) -> str:
        with self._lock:
            now = int(self._clock() * 1000)
            self._last = max(now, self._last + 1)
            return f"{self.prefix}{self._last}"


_receipts = ReceiptSequence()


# ---- Domain services ----
class OrderGatewayClient:
    """Build provider orders from client requests.

    The client does not retry: order creation at the provider is not safe
    to repeat without an idempotency key.
    """

    def __init__(
        self,
        provider: OrdersProviderPort,
        supported_currencies: Sequence[str] = SUPPORTED_CURRENCIES,
        receipts: ReceiptSequence | None = None,
    ):
        """Initialize the client.

        Args:
            provider: Port used to reach the provider's order API.
            supported_currencies: Accepted currency codes (matched
                case-insensitively).
            receipts: Receipt generator; the process-wide sequence by default.
        """
        self.provider = provider
        self.supported_currencies = {c.upper() for c in supported_currencies}
        self.receipts = receipts or _receipts

    def validate(self, amount: Any, currency: Any) -> str:
        """Check the request and return the normalized currency code.

        Raises:
            ValidationError: ``INVALID_AMOUNT`` or ``UNSUPPORTED_CURRENCY``.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("amount must be positive", code="INVALID_AMOUNT")
        if not isinstance(currency, str) or currency.upper() not in self.supported_currencies:
            raise ValidationError("unsupported currency", code="UNSUPPORTED_CURRENCY")
        return currency.upper()

    def create_order(self, amount: int, currency: str, idempotency_key: Optional[str] = None) -> Order:
        """Create a provider order for ``amount`` major units of ``currency``.

        Args:
            amount: Positive amount in major units (rupees).
            currency: Currency code, any case.
            idempotency_key: Optional client key forwarded to the provider.

        Returns:
            Order: The provider's order mapped to our record.

        Raises:
            ValidationError: When the input is rejected; no call is made.
            GatewayError: When the provider call fails.
        """
        code = self.validate(amount, currency)
        payload = {
            "amount": amount * MINOR_UNITS_PER_MAJOR,
            "currency": code,
            "receipt": self.receipts.next(),
        }
        logger.info(
            "creating provider order",
            extra={"amount_minor": payload["amount"], "currency": code, "receipt": payload["receipt"]},
        )

        data = self.provider.create(payload, idempotency_key=idempotency_key)
        if not isinstance(data, dict):
            raise GatewayError("malformed provider response", code="GATEWAY_BAD_RESPONSE")

        order = Order.from_provider(data)
        if order.amount is not None and (isinstance(order.amount, bool) or not isinstance(order.amount, int)):
            raise GatewayError("malformed provider response", code="GATEWAY_BAD_RESPONSE")
        if any(v is not None and not isinstance(v, str) for v in (order.id, order.currency, order.status, order.receipt)):
            raise GatewayError("malformed provider response", code="GATEWAY_BAD_RESPONSE")
        logger.info("provider order created", extra={"order_id": order.id, "status": order.status})
        return order


class PaymentService:
    """Facade used by the transport layer.

    Each call is independent; the only shared state is the read-only
    ``Credentials``. Crediting the user after a verified payment is left to
    the caller.
    """

    def __init__(self, gateway: OrderGatewayClient, credentials: Credentials):
        self.gateway = gateway
        self.credentials = credentials

    def create_order(self, amount: int, currency: str, idempotency_key: Optional[str] = None) -> dict:
        """Create an order and serialize it for the response.

        Returns:
            dict: ``{id, amount, currency, status, receipt}``; absent fields
            are ``None``.
        """
        order = self.gateway.create_order(amount, currency, idempotency_key=idempotency_key)
        return OrderOut.from_order(order).model_dump()

    def verify_payment(self, order_id: str, payment_id: str, signature_value: str) -> bool:
        """Return True iff the checkout signature is authentic. Never raises."""
        try:
            secret = self.credentials.key_secret.encode("utf-8")
        except Exception:
            logger.exception("unusable key material")
            return False
        return signature.verify(order_id, payment_id, signature_value, secret)
