"""Request plumbing shared by every API endpoint.

``RequestIdMiddleware`` gives each request an identifier, reusing the
client's ``X-Request-ID`` header when present and generating a UUIDv4
otherwise. The id is stored on the request, in ``REQUEST_ID_CTX`` (read by
the log filter and by outbound HTTP adapters) and echoed on the response.

``ApiSizeLimitMiddleware`` rejects oversized bodies under ``/api/`` before
they reach a view. Image uploads get their own, larger limit.
"""

import contextvars
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")


class RequestIdMiddleware(MiddlewareMixin):
    """Set and return a per-request identifier.

    Attributes:
        HEADER (str): Incoming header in ``request.META`` casing.
        RESPONSE_HEADER (str): Header added to outgoing responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Add the request id header, falling back to the ContextVar when
        the request object carries none (e.g. some error handlers)."""
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Return 413 ``PAYLOAD_TOO_LARGE`` for bodies above the configured limit."""

    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        limit = settings.API_MAX_BYTES
        if request.path.startswith("/api/image/"):
            limit = settings.IMAGE_MAX_BYTES
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > limit:
            return JsonResponse(
                {"detail": "PAYLOAD_TOO_LARGE", "error": f"request body exceeds {limit} bytes"},
                status=413,
            )
        return None
