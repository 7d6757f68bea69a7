"""
Metering services for HydroBill Platform
Reading submission and the derived figures shown on bulk meters.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from django.db import transaction
from django.db.models import F, Sum

from apps.audit.services import AuditService
from apps.billing.reconciliation import DifferenceUsagePolicy
from apps.common.validators import parse_billing_month
from apps.tariffs.apps import tariff_repository
from apps.tariffs.repository import ScheduleSet, TariffScheduleRepository
from apps.tariffs.schedule import to_decimal
from apps.tariffs.services import BillCalculator

from .models import BulkMeter, IndividualCustomer, MeterAccount

logger = logging.getLogger(__name__)


class ReadingRegression(ValueError):
    """A submitted reading is lower than the meter's current reading."""

    def __init__(self, meter_id: str, current: Decimal, submitted: Decimal) -> None:
        super().__init__(f"Reading {submitted} for meter {meter_id} is below the current reading {current}")
        self.meter_id = meter_id
        self.current = current
        self.submitted = submitted


# ===============================================================================
# READING SUBMISSION
# ===============================================================================


class ReadingService:
    """📟 Accepts new meter readings; readings only ever move forward."""

    @staticmethod
    def submit_reading(
        meter: MeterAccount,
        reading: Decimal | int | float | str,
        *,
        billing_month: str | None = None,
        user: Any | None = None,
    ) -> MeterAccount:
        """
        Advance ``meter``'s current reading.

        Raises:
            ReadingRegression: the new reading is below the current one.
            ValidationError: ``billing_month`` is not a valid ``YYYY-MM`` month.
        """
        new_reading = to_decimal(reading, default=Decimal("NaN"))
        if new_reading.is_nan() or new_reading < 0:
            raise ValueError(f"Invalid meter reading {reading!r}")
        if billing_month is not None:
            billing_month = parse_billing_month(billing_month).label

        model = type(meter)
        with transaction.atomic():
            locked = model.objects.select_for_update().get(pk=meter.pk)
            if new_reading < locked.current_reading:
                logger.warning(
                    f"⚠️ [Metering] Rejected regressing reading {new_reading} for {locked.pk} "
                    f"(current {locked.current_reading})"
                )
                raise ReadingRegression(locked.pk, locked.current_reading, new_reading)

            old_values = {"current_reading": locked.current_reading, "billing_month": locked.billing_month}
            locked.current_reading = new_reading
            update_fields = ["current_reading", "version", "updated_at"]
            if billing_month is not None:
                locked.billing_month = billing_month
                update_fields.append("billing_month")
            locked.version = F("version") + 1
            locked.save(update_fields=update_fields)
            locked.refresh_from_db()

            AuditService.log_simple_event(
                "meter_reading_submitted",
                user=user,
                content_object=locked,
                description=f"Reading {new_reading} submitted for {locked.pk}",
                old_values=old_values,
                new_values={"current_reading": locked.current_reading, "billing_month": locked.billing_month},
                actor_type="user" if user else "system",
            )

        logger.info(f"📟 [Metering] Reading {new_reading} recorded for {locked.pk}")
        return locked


# ===============================================================================
# BULK METER FIGURES
# ===============================================================================


def individual_usage_total(bulk_meter_id: str) -> Decimal:
    """Sum of (current - previous) over customers assigned to a bulk meter."""
    total = IndividualCustomer.objects.filter(assigned_bulk_meter_id=bulk_meter_id).aggregate(
        total=Sum(F("current_reading") - F("previous_reading"))
    )["total"]
    return to_decimal(total)


@dataclass(frozen=True)
class BulkMeterFigures:
    bulk_meter_id: str
    bulk_usage: Decimal
    individual_usage: Decimal
    total_bulk_bill: Decimal
    difference_usage: Decimal
    difference_bill: Decimal


class BulkMeterFiguresService:
    """
    Recomputes the usage and bill figures displayed on a bulk meter.

    Figures are priced at the meter's own billing month with the same
    reconciliation policy the billing cycle uses.
    """

    def __init__(
        self,
        calculator: BillCalculator | None = None,
        policy: DifferenceUsagePolicy | None = None,
    ) -> None:
        self.calculator = calculator or BillCalculator(tariff_repository())
        self.policy = policy or DifferenceUsagePolicy()

    def compute(self, bulk_meter: BulkMeter) -> BulkMeterFigures:
        bulk_usage = max(bulk_meter.usage, Decimal("0"))
        individual = individual_usage_total(bulk_meter.pk)
        difference = self.policy.reconcile(bulk_usage, individual)

        def price(usage: Decimal) -> Decimal:
            return self.calculator.calculate(
                usage,
                bulk_meter.customer_type,
                bulk_meter.sewerage_connection,
                bulk_meter.meter_size,
                bulk_meter.billing_month,
            ).total_bill

        return BulkMeterFigures(
            bulk_meter_id=bulk_meter.pk,
            bulk_usage=bulk_usage,
            individual_usage=individual,
            total_bulk_bill=price(bulk_usage),
            difference_usage=difference,
            difference_bill=price(difference),
        )

    def refresh(self, bulk_meter: BulkMeter) -> BulkMeterFigures:
        """Compute and store the derived figures without touching readings or version."""
        figures = self.compute(bulk_meter)
        BulkMeter.objects.filter(pk=bulk_meter.pk).update(
            bulk_usage=figures.bulk_usage,
            total_bulk_bill=figures.total_bulk_bill,
            difference_usage=figures.difference_usage,
            difference_bill=figures.difference_bill,
        )
        bulk_meter.bulk_usage = figures.bulk_usage
        bulk_meter.total_bulk_bill = figures.total_bulk_bill
        bulk_meter.difference_usage = figures.difference_usage
        bulk_meter.difference_bill = figures.difference_bill

        logger.debug(
            f"📊 [Metering] {bulk_meter.pk}: bulk {figures.bulk_usage} m3, "
            f"difference {figures.difference_usage} m3 -> {figures.difference_bill}"
        )
        return figures

    def refresh_all(self, year: int | None = None) -> int:
        """Refresh every bulk meter (optionally only those billed in ``year``); returns the count."""
        meters = BulkMeter.objects.all()
        if year is not None:
            meters = meters.filter(billing_month__startswith=f"{year:04d}-")

        count = 0
        for bulk_meter in meters.iterator():
            self.refresh(bulk_meter)
            count += 1

        logger.info(f"📊 [Metering] Refreshed figures for {count} bulk meters")
        return count

    def follow(self, repository: TariffScheduleRepository) -> Callable[[], None]:
        """
        Refresh all figures whenever ``repository`` reloads its schedules.

        Returns the unsubscribe callable.
        """

        def on_tariffs_refreshed(schedules: ScheduleSet) -> None:
            count = self.refresh_all()
            AuditService.log_simple_event(
                "tariff_schedule_refreshed",
                description=f"Tariffs reloaded ({len(schedules)} schedules), {count} bulk meters refreshed",
                metadata={"schedules": sorted(f"{kind}/{year}" for kind, year in schedules), "bulk_meters": count},
            )

        return repository.subscribe(on_tariffs_refreshed)
