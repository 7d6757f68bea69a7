"""
Bill calculation service for HydroBill Platform.

Composes the banded, surcharge and VAT calculators into one priced result
for a usage figure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from django.core.exceptions import ValidationError

from apps.common.validators import parse_billing_month

from . import calculators
from .calculators import BandCharge
from .repository import TariffScheduleRepository
from .schedule import TariffSchedule, to_decimal

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize_money(amount: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


class TariffNotFound(LookupError):
    """No tariff schedule exists for a customer type and year."""

    def __init__(self, customer_type: str, year: int) -> None:
        super().__init__(f"No tariff for {customer_type}/{year}")
        self.customer_type = customer_type
        self.year = year


# ===============================================================================
# RESULT
# ===============================================================================


@dataclass(frozen=True)
class BillCalculationResult:
    """Priced bill for one usage figure. Every amount is rounded to cents."""

    base_water_charge: Decimal = ZERO
    maintenance_fee: Decimal = ZERO
    sanitation_fee: Decimal = ZERO
    sewerage_charge: Decimal = ZERO
    meter_rent: Decimal = ZERO
    vat_amount: Decimal = ZERO
    total_bill: Decimal = ZERO
    water_tier_breakdown: tuple[BandCharge, ...] = ()
    sewerage_tier_breakdown: tuple[BandCharge, ...] = ()
    tariff_found: bool = True

    @classmethod
    def zero(cls) -> BillCalculationResult:
        return cls(tariff_found=False)

    def as_dict(self) -> dict[str, Any]:
        return {
            "base_water_charge": str(self.base_water_charge),
            "maintenance_fee": str(self.maintenance_fee),
            "sanitation_fee": str(self.sanitation_fee),
            "sewerage_charge": str(self.sewerage_charge),
            "meter_rent": str(self.meter_rent),
            "vat_amount": str(self.vat_amount),
            "total_bill": str(self.total_bill),
            "water_tier_breakdown": [band.as_dict() for band in self.water_tier_breakdown],
            "sewerage_tier_breakdown": [band.as_dict() for band in self.sewerage_tier_breakdown],
            "tariff_found": self.tariff_found,
        }

    def charge_breakdown(self) -> dict[str, str]:
        """Flat component map stored on persisted bills."""
        return {
            key: value
            for key, value in self.as_dict().items()
            if key not in ("water_tier_breakdown", "sewerage_tier_breakdown", "tariff_found")
        }


# ===============================================================================
# CALCULATION
# ===============================================================================


def calculate_from_schedule(
    schedule: TariffSchedule,
    usage_m3: Decimal | int | float | str,
    customer_type: str,
    sewerage_connection: str | bool | None,
    meter_size: Decimal | int | float | str,
) -> BillCalculationResult:
    """
    Price ``usage_m3`` against an already resolved schedule.

    Negative usage is clamped to zero. Each component is rounded to cents and
    ``total_bill`` is the sum of the rounded components, so printed lines
    always add up to the printed total.
    """
    usage = max(to_decimal(usage_m3), Decimal("0"))

    water_bands = calculators.compute_banded_breakdown(usage, schedule.tiers)
    base = sum((band.charge for band in water_bands), Decimal("0"))

    sewerage_bands: list[BandCharge] = []
    if calculators.has_sewerage(sewerage_connection):
        sewerage_bands = calculators.compute_banded_breakdown(usage, schedule.sewerage_tiers)
    sewerage = sum((band.charge for band in sewerage_bands), Decimal("0"))

    maintenance = calculators.maintenance_fee(base, schedule)
    sanitation = calculators.sanitation_fee(base, schedule)
    vat = calculators.vat_amount(
        usage,
        customer_type,
        schedule,
        base_water_charge=base,
        maintenance=maintenance,
        sanitation=sanitation,
        sewerage=sewerage,
    )
    rent = calculators.meter_rent(meter_size, schedule)

    components = {
        "base_water_charge": quantize_money(base),
        "maintenance_fee": quantize_money(maintenance),
        "sanitation_fee": quantize_money(sanitation),
        "sewerage_charge": quantize_money(sewerage),
        "meter_rent": quantize_money(rent),
        "vat_amount": quantize_money(vat),
    }
    return BillCalculationResult(
        **components,
        total_bill=sum(components.values(), ZERO),
        water_tier_breakdown=tuple(water_bands),
        sewerage_tier_breakdown=tuple(sewerage_bands),
    )


class BillCalculator:
    """
    💰 Resolves the tariff for a billing month and prices a usage figure.

    Missing tariffs degrade to an all-zero result with a logged warning so
    billing screens keep working while tariff data is being fixed.
    """

    def __init__(self, repository: TariffScheduleRepository) -> None:
        self.repository = repository

    def resolve_schedule(self, customer_type: str, billing_month: str) -> TariffSchedule:
        """
        Raises:
            ValidationError: billing month is not a valid ``YYYY-MM`` month.
            TariffNotFound: no schedule stored for the type and year.
        """
        period = parse_billing_month(billing_month)
        schedule = self.repository.get(customer_type, period.year)
        if schedule is None:
            raise TariffNotFound(customer_type, period.year)
        return schedule

    def calculate(
        self,
        usage: Decimal | int | float | str,
        customer_type: str,
        sewerage_connection: str | bool | None,
        meter_size: Decimal | int | float | str,
        billing_month: str,
    ) -> BillCalculationResult:
        try:
            schedule = self.resolve_schedule(customer_type, billing_month)
        except ValidationError as e:
            logger.warning(
                f"⚠️ [BillCalculator] Invalid billing month {billing_month!r}: {e.messages[0]}. Bill will be 0."
            )
            return BillCalculationResult.zero()
        except TariffNotFound as e:
            logger.warning(f"⚠️ [BillCalculator] {e}. Bill will be 0.")
            return BillCalculationResult.zero()

        return calculate_from_schedule(schedule, usage, customer_type, sewerage_connection, meter_size)
