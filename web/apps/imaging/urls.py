from django.urls import path
from .views import RemoveBackgroundView
app_name = "imaging"

urlpatterns = [
    path("remove", RemoveBackgroundView.as_view(), name="remove"),
]
