"""
Metering signals for HydroBill Platform
Keep bulk meter figures current as meters and readings change.
"""

import logging
from typing import Any

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from apps.tariffs.apps import tariff_repository
from apps.tariffs.services import BillCalculator

from .models import BulkMeter, IndividualCustomer
from .services import BulkMeterFiguresService

logger = logging.getLogger(__name__)

# Saves that only touch these fields cannot change the figures
_FIGURE_NEUTRAL_FIELDS = frozenset({"name", "meter_number", "status", "location", "updated_at"})


def _figures_enabled() -> bool:
    return getattr(settings, "METERING_REFRESH_FIGURES_ON_SAVE", True)


def _affects_figures(update_fields: Any) -> bool:
    return update_fields is None or not set(update_fields) <= _FIGURE_NEUTRAL_FIELDS


def _figures_service() -> BulkMeterFiguresService:
    return BulkMeterFiguresService(calculator=BillCalculator(tariff_repository()))


@receiver(post_save, sender=BulkMeter)
def refresh_bulk_meter_figures(sender: type[BulkMeter], instance: BulkMeter, created: bool, **kwargs: Any) -> None:
    if not _figures_enabled() or not _affects_figures(kwargs.get("update_fields")):
        return
    _figures_service().refresh(BulkMeter.objects.get(pk=instance.pk))


@receiver(post_save, sender=IndividualCustomer)
def refresh_assigned_bulk_meter_figures(
    sender: type[IndividualCustomer], instance: IndividualCustomer, created: bool, **kwargs: Any
) -> None:
    if not _figures_enabled() or not _affects_figures(kwargs.get("update_fields")):
        return
    bulk_meter_id = instance.assigned_bulk_meter_id
    if bulk_meter_id is None:
        return
    bulk_meter = BulkMeter.objects.filter(pk=bulk_meter_id).first()
    if bulk_meter is None:
        logger.warning(f"⚠️ [Metering] Customer {instance.pk} assigned to missing bulk meter {bulk_meter_id}")
        return
    _figures_service().refresh(bulk_meter)
