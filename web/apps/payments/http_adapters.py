"""HTTP adapter for the payment provider's Orders API.

This module implements the concrete ``OrdersProviderPort`` using ``httpx``.
It adds:

- Request correlation: propagates ``X-Request-ID`` from a ContextVar set by
    the gateway middleware.
- A circuit breaker in front of the provider so an unhealthy provider is
    not hammered, with HALF_OPEN probing after a timeout.
- An outbound timeout; expiry is reported as ``GatewayError``.
- Idempotency: an ``Idempotency-Key`` given by the caller is forwarded so
    the provider can reuse the order on a duplicate request.

Order creation is never retried here: without a stable key a blind retry
may create two orders.
"""

import logging
import threading
import time
from typing import Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import Credentials, OrdersProviderPort
from .errors import GatewayError

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

logger = logging.getLogger("payments")


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; stays HALF_OPEN while a
      single probe is in flight; transitions back to OPEN on failure.

    This implementation is thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        """Current breaker state with time-based transition handling."""
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            RuntimeError: If the circuit is OPEN or a HALF_OPEN probe is busy.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise RuntimeError("CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._half_open_probe_in_flight:
                    raise RuntimeError("CIRCUIT_HALF_OPEN_BUSY")
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        """Record a successful call and close/reset the breaker."""
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_probe_in_flight = False

    def on_failure(self):
        """Record a failed call and open the breaker if threshold exceeded."""
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_probe_in_flight = False

    def on_finish(self):
        """Release any HALF_OPEN probe flag after a call finishes."""
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_probe_in_flight = False


_provider_cb = CircuitBreaker(
    "payment-provider",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras.

    Args:
        extra: Optional dict of additional headers to include.

    Returns:
        dict: Final headers dictionary for the outgoing request.
    """
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _provider_message(resp) -> str:
    """Extract the provider's error description from a failed response.

    The provider answers errors as ``{"error": {"code": ..., "description": ...}}``.
    """
    try:
        body = resp.json()
    except Exception:
        body = None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("description"):
            return str(err["description"])
        if isinstance(err, str) and err:
            return err
    return f"payment provider returned HTTP {resp.status_code}"


# ---------------- Orders Adapter ---------------- #

class HttpOrdersProvider(OrdersProviderPort):
    """HTTP client for the provider's Orders API with a circuit breaker.

    Authenticates with HTTP basic auth using the key id and secret.
    """

    def __init__(self, credentials: Credentials, base_url: str | None = None, timeout: float | None = None):
        self.credentials = credentials
        self.base_url = (base_url or settings.PAYMENT_GATEWAY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT_SECS

    def create(self, payload: dict, idempotency_key: Optional[str] = None) -> dict:
        """Create an order at the provider.

        Business mappings:
        - 2xx with a JSON object → returned as is.
        - 4xx → ``GatewayError`` (``GATEWAY_REJECTED``) with the provider's
          description; not counted as a circuit failure.
        - 5xx, transport errors, timeouts → ``GatewayError`` and a circuit
          failure.

        Args:
            payload: ``{"amount", "currency", "receipt"}`` in provider units.
            idempotency_key: Optional key sent as ``Idempotency-Key``.

        Returns:
            dict: The provider's order object.

        Raises:
            GatewayError: On any failure described above, or when the
                circuit is open (``UPSTREAM_UNAVAILABLE``).
        """
        extras = {}
        if idempotency_key:
            extras["Idempotency-Key"] = idempotency_key

        try:
            state = _provider_cb.before_call()
        except RuntimeError:
            logger.warning("provider circuit open", extra={"circuit": _provider_cb.name})
            raise GatewayError("payment provider unavailable", code="UPSTREAM_UNAVAILABLE")
        extras["X-Circuit-State"] = state
        headers = _request_headers(extras)

        auth = (self.credentials.key_id, self.credentials.key_secret)
        try:
            with httpx.Client(timeout=self.timeout, auth=auth) as client:
                try:
                    resp = client.post(f"{self.base_url}/v1/orders", json=payload, headers=headers)
                except httpx.TimeoutException:
                    _provider_cb.on_failure()
                    logger.warning("provider call timed out", extra={"timeout_s": self.timeout})
                    raise GatewayError("payment provider timed out", code="GATEWAY_TIMEOUT")
                except httpx.RequestError as e:
                    _provider_cb.on_failure()
                    logger.warning("provider unreachable", extra={"error_type": type(e).__name__})
                    raise GatewayError(f"payment provider unreachable: {type(e).__name__}", code="GATEWAY_ERROR")

                if 200 <= resp.status_code < 300:
                    _provider_cb.on_success()
                    try:
                        data = resp.json()
                    except ValueError:
                        raise GatewayError("malformed provider response", code="GATEWAY_BAD_RESPONSE")
                    if not isinstance(data, dict):
                        raise GatewayError("malformed provider response", code="GATEWAY_BAD_RESPONSE")
                    return data

                message = _provider_message(resp)
                if 400 <= resp.status_code < 500:
                    _provider_cb.on_success()  # business rejection, not a circuit failure
                    logger.warning("provider rejected order", extra={"http_status": resp.status_code})
                    raise GatewayError(message, code="GATEWAY_REJECTED")

                _provider_cb.on_failure()
                logger.error("provider error", extra={"http_status": resp.status_code})
                raise GatewayError(message, code="GATEWAY_ERROR")
        finally:
            _provider_cb.on_finish()
