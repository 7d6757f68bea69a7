# ===============================================================================
# HYDROBILL API MAIN URLS 🚀
# ===============================================================================
#
# URL Structure:
#   /api/billing/  → Bill calculation and billing-cycle closure APIs
#

from django.urls import include, path

from .billing import urls as billing_urls

app_name = "api"

urlpatterns = [
    path("billing/", include((billing_urls, "billing"))),
]
