from django.apps import AppConfig


class MeteringConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.metering"
    verbose_name = "Metering"

    def ready(self) -> None:
        """Connect figure-refresh signals."""
        from . import signals  # noqa: F401, PLC0415
