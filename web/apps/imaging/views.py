"""HTTP views for the imaging app.

``RemoveBackgroundView`` proxies an uploaded image to the background-removal
provider and streams the PNG it returns back to the client. No image is
stored or modified here.
"""

from django.http import HttpResponse
from rest_framework import status
from rest_framework.parsers import MultiPartParser
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from .http_adapters import BackgroundRemovalError, HttpBackgroundRemovalClient


class RemoveBackgroundView(APIView):
    """Remove the background of the uploaded ``file``.

    Responses:
        - 200 ``image/png`` with the processed image.
        - 400 ``MISSING_FILE`` when no file was uploaded.
        - 502 ``UPSTREAM_ERROR`` / 503 ``UPSTREAM_UNAVAILABLE`` on provider failure.
    """

    parser_classes = [MultiPartParser]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "image_remove"

    def post(self, request):
        upload = request.FILES.get("file")
        if upload is None:
            return Response({"detail": "MISSING_FILE", "error": "multipart field 'file' is required"},
                            status=status.HTTP_400_BAD_REQUEST)

        client = HttpBackgroundRemovalClient()
        try:
            image = client.remove(upload.name, upload.read(), upload.content_type)
        except BackgroundRemovalError as e:
            return Response({"detail": e.code, "error": e.message}, status=e.http_status)

        return HttpResponse(image, content_type="image/png")
