"""
URL configuration for HydroBill Platform
"""

from django.contrib import admin
from django.urls import include, path

# ===============================================================================
# MAIN URL PATTERNS
# ===============================================================================

urlpatterns = [
    path("admin/", admin.site.urls),
    # Centralized API endpoints
    path("api/", include("apps.api.urls")),
]
