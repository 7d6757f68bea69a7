from __future__ import annotations

from typing import TYPE_CHECKING

from django.apps import AppConfig, apps

if TYPE_CHECKING:
    from .repository import TariffScheduleRepository


class TariffsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.tariffs"
    verbose_name = "Tariffs"

    repository: TariffScheduleRepository

    def ready(self) -> None:
        """Create the shared schedule repository and connect its invalidation signals."""
        from . import signals  # noqa: F401, PLC0415
        from .repository import TariffScheduleRepository  # noqa: PLC0415

        self.repository = TariffScheduleRepository()


def tariff_repository() -> TariffScheduleRepository:
    """The schedule repository shared by request handlers, signals and tasks."""
    config = apps.get_app_config("tariffs")
    return config.repository
