import pytest
from django.core.cache import cache


@pytest.fixture(autouse=True)
def payment_settings(settings):
    """Run every test against the in-process provider stub with known keys."""
    settings.USE_HTTP_ADAPTERS = False
    settings.PAYMENT_GATEWAY_KEY_ID = "rzp_test_key"
    settings.PAYMENT_GATEWAY_KEY_SECRET = "s3cr3t"
    settings.BACKGROUND_REMOVAL_API_KEY = "test-api-key"
    cache.clear()
    yield settings


@pytest.fixture(autouse=True)
def closed_provider_circuit():
    """Tests must not inherit a breaker opened by an earlier test."""
    from apps.payments.http_adapters import _provider_cb

    _provider_cb.on_success()
    yield _provider_cb
    _provider_cb.on_success()
