# config/urls.py

from __future__ import annotations

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("orders/", include("orders.urls")),

    # Ops query surface and CSV exports (shared-secret auth)
    path("ops/", include("dashboards.urls")),
]
