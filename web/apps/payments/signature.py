"""Checkout signature verification.

After a checkout completes, the payment provider hands the client a triple
``(order_id, payment_id, signature)`` where ``signature`` is the lowercase
hex HMAC-SHA256 of ``"<order_id>|<payment_id>"`` keyed with the account's
API secret. The server recomputes it before trusting the payment.

The check fails closed: any failure, including bad input or unusable key
material, is reported as ``False``. The distinct reason is only logged.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass

logger = logging.getLogger("payments")

DELIMITER = "|"


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a signature check.

    Attributes:
        ok: True only when the supplied signature matches.
        reason: Short tag describing why the check failed ("" on success).
    """

    ok: bool
    reason: str = ""


def canonical_message(order_id: str, payment_id: str) -> bytes:
    """Build the signed message: order id, ``|``, payment id (UTF-8)."""
    return f"{order_id}{DELIMITER}{payment_id}".encode("utf-8")


def compute_signature(order_id: str, payment_id: str, secret: bytes) -> str:
    """Return the lowercase hex HMAC-SHA256 the provider would have issued."""
    return hmac.new(secret, canonical_message(order_id, payment_id), hashlib.sha256).hexdigest()


def _check(order_id, payment_id, signature, secret) -> VerificationResult:
    if not isinstance(secret, (bytes, bytearray)) or not secret:
        return VerificationResult(False, "missing_secret")
    if not all(isinstance(v, str) for v in (order_id, payment_id, signature)):
        return VerificationResult(False, "malformed_input")
    if not order_id or not payment_id or not signature:
        return VerificationResult(False, "malformed_input")
    if not signature.isascii():
        return VerificationResult(False, "malformed_input")

    expected = compute_signature(order_id, payment_id, bytes(secret))
    # Case-sensitive: an uppercase hex signature does not match.
    if not hmac.compare_digest(expected, signature):
        return VerificationResult(False, "mismatch")
    return VerificationResult(True)


def verify(order_id: str, payment_id: str, signature: str, secret: bytes) -> bool:
    """Verify a checkout signature.

    Args:
        order_id: Provider order id the payment belongs to.
        payment_id: Provider payment id.
        signature: Hex signature supplied by the client.
        secret: API secret used as the HMAC key.

    Returns:
        bool: True iff ``signature`` equals the expected lowercase hex digest.
        Never raises.
    """
    try:
        result = _check(order_id, payment_id, signature, secret)
    except Exception:
        logger.exception("signature check errored", extra={"reason": "internal_error"})
        return False

    if not result.ok:
        logger.warning("signature rejected", extra={"reason": result.reason, "order_id": str(order_id)})
    return result.ok
