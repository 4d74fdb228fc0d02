"""HTTP views for the payments app.

Views are kept intentionally small: they validate requests (via Pydantic),
delegate to the ``PaymentService`` facade obtained from
``get_payment_service()`` and map results and errors to HTTP responses.
Error bodies always look like ``{"detail": <CODE>, "error": <message>}``.

Idempotency: when an ``Idempotency-Key`` header is sent to create-order,
the first request is processed and its response stored; retries with the
same payload get the stored response back with ``Idempotent-Replay: true``.
Reusing the key with a different payload returns HTTP 409. The key is also
forwarded to the provider.
"""

import logging

from pydantic import ValidationError as PayloadError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from .errors import GatewayError, PaymentError
from .idempotency import IdempotencyConflict, claim, is_in_flight, release, settle
from .providers import get_credit_ledger, get_payment_service
from .schemas import CreateOrderDTO, VerifyPaymentDTO

logger = logging.getLogger("payments")


def _error(code: str, message: str, status_code: int) -> Response:
    return Response({"detail": code, "error": message}, status=status_code)


def _payload_error(e: PayloadError) -> Response:
    fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
    return _error("INVALID_PAYLOAD", "invalid or missing fields: " + ", ".join(fields), status.HTTP_400_BAD_REQUEST)


class PaymentsPingView(APIView):
    """Simple health-check endpoint for the payments module."""

    def get(self, request):
        return Response({"ok": True})


class CreateOrderView(APIView):
    """Create a provider order for the requested amount and currency.

    Responses:
        - 201 with ``{id, amount, currency, status, receipt}``.
        - The stored status and body on an idempotent replay.
        - 400 ``INVALID_PAYLOAD`` / ``INVALID_AMOUNT`` / ``UNSUPPORTED_CURRENCY``.
        - 409 ``IDEMPOTENCY_CONFLICT`` or ``IDEMPOTENCY_IN_PROGRESS``.
        - 502/503/504 when the provider fails.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "payments_create_order"

    def post(self, request):
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except PayloadError as e:
            return _payload_error(e)

        # 2) Claim the idempotency key
        rec = None
        if idem_key:
            try:
                rec, fresh = claim(idem_key, dto.model_dump(mode="json"))
            except IdempotencyConflict as e:
                return _error(e.code, "idempotency key reused with a different payload",
                              status.HTTP_409_CONFLICT)
            if not fresh:
                if is_in_flight(rec):
                    return _error("IDEMPOTENCY_IN_PROGRESS", "a request with this key is still being processed",
                                  status.HTTP_409_CONFLICT)
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        try:
            service = get_payment_service()
            body = service.create_order(dto.amount, dto.currency, idempotency_key=idem_key)
        except GatewayError as e:
            # the provider dedupes on the forwarded key, so a retry is safe
            if rec:
                release(rec)
            logger.warning("create order failed", extra={"code": e.code, "plan_id": dto.plan_id})
            return _error(e.code, e.message, e.http_status)
        except PaymentError as e:
            if rec:
                settle(rec, e.http_status, e.as_body())
            return _error(e.code, e.message, e.http_status)
        except Exception:
            # unexpected failures must not leave the key in flight
            if rec:
                release(rec)
            raise

        if rec:
            settle(rec, status.HTTP_201_CREATED, body)
        logger.info("order created", extra={"order_id": body.get("id"), "plan_id": dto.plan_id})
        return Response(body, status=status.HTTP_201_CREATED)


class VerifyPaymentView(APIView):
    """Verify a checkout signature and, when valid, notify the credit ledger.

    Responses:
        - 200 ``{"success": true, "message": "Payment verified successfully"}``.
        - 400 ``INVALID_SIGNATURE`` when the signature does not match.
        - 400 ``INVALID_PAYLOAD`` for malformed bodies.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "payments_verify"

    def post(self, request):
        try:
            dto = VerifyPaymentDTO.model_validate(request.data)
        except PayloadError as e:
            return _payload_error(e)

        service = get_payment_service()
        if not service.verify_payment(dto.order_id, dto.payment_id, dto.signature):
            logger.warning("payment verification failed", extra={"order_id": dto.order_id})
            return _error("INVALID_SIGNATURE", "Invalid payment signature", status.HTTP_400_BAD_REQUEST)

        logger.info("payment verified", extra={"order_id": dto.order_id, "payment_id": dto.payment_id})
        if dto.user_id and dto.credits:
            try:
                get_credit_ledger().add_credits(
                    dto.user_id, dto.credits, plan_id=dto.plan_id, payment_id=dto.payment_id
                )
            except Exception:
                # the payment is verified either way; crediting is reconciled elsewhere
                logger.exception("credit grant failed", extra={"order_id": dto.order_id})

        return Response({"success": True, "message": "Payment verified successfully"}, status=status.HTTP_200_OK)
