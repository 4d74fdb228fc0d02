"""HTTP client for the background-removal provider.

The provider takes a multipart upload (field ``image_file``) authenticated
with an ``x-api-key`` header and answers with the processed image bytes.
"""

import logging

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

logger = logging.getLogger("imaging")


class BackgroundRemovalError(Exception):
    """The provider failed; ``code`` and ``http_status`` drive the response."""

    def __init__(self, message: str, code: str = "UPSTREAM_ERROR", http_status: int = 502):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status


class HttpBackgroundRemovalClient:
    """Forward an uploaded image to the background-removal provider."""

    def __init__(self, url: str | None = None, api_key: str | None = None, timeout: float | None = None):
        self.url = url or settings.BACKGROUND_REMOVAL_URL
        self.api_key = api_key or settings.BACKGROUND_REMOVAL_API_KEY
        self.timeout = timeout or settings.BACKGROUND_REMOVAL_TIMEOUT_SECS

    def remove(self, filename: str, content: bytes, content_type: str | None = None) -> bytes:
        """Send the image and return the provider's output bytes.

        Args:
            filename: Original file name, passed through to the provider.
            content: Raw image bytes.
            content_type: Upload content type, if known.

        Returns:
            bytes: The processed image.

        Raises:
            BackgroundRemovalError: ``UPSTREAM_UNAVAILABLE`` (503) for
                transport errors and timeouts, ``UPSTREAM_ERROR`` (502) for
                non-2xx answers.
        """
        if not self.api_key:
            raise BackgroundRemovalError("background removal is not configured", code="UPSTREAM_UNAVAILABLE",
                                         http_status=503)

        headers = {"x-api-key": self.api_key}
        rid = REQUEST_ID_CTX.get()
        if rid and rid != "-":
            headers["X-Request-ID"] = rid
        files = {"image_file": (filename, content, content_type or "application/octet-stream")}

        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(self.url, files=files, headers=headers)
        except httpx.RequestError as e:
            logger.warning("background removal unreachable", extra={"error_type": type(e).__name__})
            raise BackgroundRemovalError("background removal provider unavailable", code="UPSTREAM_UNAVAILABLE",
                                         http_status=503)

        if resp.status_code != 200:
            logger.warning("background removal failed", extra={"http_status": resp.status_code})
            raise BackgroundRemovalError(f"background removal provider returned HTTP {resp.status_code}")
        return resp.content
