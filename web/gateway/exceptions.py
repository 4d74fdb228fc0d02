"""DRF exception handler producing ``{"detail": CODE, "error": message}`` bodies.

Exceptions DRF knows about (throttling, parse errors, 405, ...) keep their
status code. Anything else is logged with its traceback and answered with a
generic 500 so no internal detail reaches the client.
"""

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger("gateway")


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is not None:
        code = getattr(exc, "default_code", "error")
        detail = getattr(exc, "detail", None)
        message = str(detail) if detail is not None else str(exc)
        response.data = {"detail": str(code).upper(), "error": message}
        return response

    view = context.get("view")
    logger.exception("unhandled error", extra={"view": type(view).__name__ if view else "-"})
    return Response({"detail": "INTERNAL_ERROR", "error": "internal server error"}, status=500)
