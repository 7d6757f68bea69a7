# ===============================================================================
# HYDROBILL API APP CONFIGURATION 🛠️
# ===============================================================================

from django.apps import AppConfig


class ApiConfig(AppConfig):
    """
    Configuration for HydroBill's REST API app.

    Exposes bill calculation and billing-cycle closure to operators and
    back-office tools.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.api"
    label = "hydrobill_api"
    verbose_name = "HydroBill API"
