"""Error taxonomy for the payments app.

Every error carries a short machine-readable ``code`` and a human-readable
``message``; views render both as ``{"detail": code, "error": message}``.
A failed signature check is not an error: ``verify_payment`` returns False.
"""


class PaymentError(Exception):
    """Base class for payment errors surfaced to API clients.

    Attributes:
        code: Machine-readable reason (e.g. ``UNSUPPORTED_CURRENCY``).
        message: Human-readable message, safe to return to the client.
        http_status: Status code the transport layer should use.
    """

    http_status = 500
    default_code = "PAYMENT_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def as_body(self) -> dict:
        return {"detail": self.code, "error": self.message}


class ValidationError(PaymentError):
    """Caller input violates a precondition. Never retried."""

    http_status = 400
    default_code = "VALIDATION_ERROR"


class GatewayError(PaymentError):
    """The payment provider is unreachable, rejected the request, or
    returned something we cannot map. Never retried automatically.
    """

    default_code = "GATEWAY_ERROR"
    STATUS_BY_CODE = {
        "UPSTREAM_UNAVAILABLE": 503,
        "GATEWAY_TIMEOUT": 504,
    }

    @property
    def http_status(self) -> int:  # type: ignore[override]
        return self.STATUS_BY_CODE.get(self.code, 502)
