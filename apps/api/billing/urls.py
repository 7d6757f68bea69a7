# ===============================================================================
# BILLING API URLS 💧
# ===============================================================================

from django.urls import path

from . import views

app_name = "api_billing"

urlpatterns = [
    path("calculate/", views.calculate_bill_api, name="calculate"),
    path("bulk-meters/<str:meter_id>/close-cycle/", views.close_cycle_api, name="close_cycle"),
    path("bulk-meters/<str:meter_id>/bills/", views.bulk_meter_bills_api, name="bulk_meter_bills"),
    path("cycles/run/", views.run_billing_cycles_api, name="run_cycles"),
]
