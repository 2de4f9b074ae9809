
from django.contrib import admin
from django.urls import path, include

from .views import DatabaseHealthView, HealthView


urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/health", HealthView.as_view(), name="health"),
    path("api/health/db", DatabaseHealthView.as_view(), name="health-db"),
    path("api/", include("payment.urls")),
    path("api/", include("courier.urls")),
]
