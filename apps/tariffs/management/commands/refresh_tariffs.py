from typing import Any

from django.core.management.base import BaseCommand

from apps.metering.services import BulkMeterFiguresService
from apps.tariffs.apps import tariff_repository
from apps.tariffs.services import BillCalculator


class Command(BaseCommand):
    """Reload tariff schedules and recompute the figures shown on every bulk meter."""

    help = "💧 Reload tariffs and refresh bulk meter figures"

    def handle(self, *args: Any, **options: Any) -> None:
        repository = tariff_repository()
        figures = BulkMeterFiguresService(calculator=BillCalculator(repository))
        unsubscribe = figures.follow(repository)
        try:
            schedules = repository.refresh()
        finally:
            unsubscribe()

        for customer_type, year in sorted(schedules):
            self.stdout.write(f"  💧 {customer_type} / {year}")
        self.stdout.write(self.style.SUCCESS(f"✅ Loaded {len(schedules)} tariff schedule(s)"))
