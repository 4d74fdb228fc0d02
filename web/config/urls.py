from django.urls import include, path

urlpatterns = [
    path("api/payment/", include("apps.payments.urls")),
    path("api/image/", include("apps.imaging.urls")),
    path("", include("apps.monitoring.urls")),
]
