"""Service provider helpers for wiring PaymentService with ports.

This module exposes small factory functions that return configured
domain objects. ``get_payment_service`` uses the HTTP provider adapter
when ``settings.USE_HTTP_ADAPTERS`` is truthy and the in-process stub
otherwise, which suits tests and local development.
"""

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .adapters import CreditLedgerStub, OrdersProviderStub
from .domain import CreditLedgerPort, Credentials, OrderGatewayClient, PaymentService
from .http_adapters import HttpOrdersProvider


def load_credentials() -> Credentials:
    """Read the provider key pair from settings.

    Raises:
        ImproperlyConfigured: If either value is missing.
    """
    key_id = getattr(settings, "PAYMENT_GATEWAY_KEY_ID", "")
    key_secret = getattr(settings, "PAYMENT_GATEWAY_KEY_SECRET", "")
    if not key_id or not key_secret:
        raise ImproperlyConfigured("PAYMENT_GATEWAY_KEY_ID and PAYMENT_GATEWAY_KEY_SECRET must be set")
    return Credentials(key_id=key_id, key_secret=key_secret)


def get_payment_service() -> PaymentService:
    """Return a configured PaymentService instance.

    Returns:
        PaymentService: A facade whose gateway client talks to the real
        provider over HTTP, or to ``OrdersProviderStub`` when HTTP adapters
        are disabled.
    """
    credentials = load_credentials()
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        provider = HttpOrdersProvider(credentials)
    else:
        provider = OrdersProviderStub()

    gateway = OrderGatewayClient(
        provider,
        supported_currencies=getattr(settings, "PAYMENT_SUPPORTED_CURRENCIES", ("INR",)),
    )
    return PaymentService(gateway=gateway, credentials=credentials)


def get_credit_ledger() -> CreditLedgerPort:
    """Return the credit ledger used after a verified payment."""
    return CreditLedgerStub()
