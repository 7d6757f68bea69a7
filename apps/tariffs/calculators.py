"""
Pure tariff calculators: banded (tiered) charges, surcharges and VAT.

All functions are side-effect free and work on Decimal values, so they are
safe to call concurrently over a shared TariffSchedule.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from .models import DOMESTIC_CUSTOMER_TYPES, SewerageConnection
from .schedule import TariffSchedule, TariffTier, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
SIZE_MATCH_TOLERANCE = Decimal("0.000001")

# Labels such as 3/4, 3/4", 1 1/2, 0.75, 1
_MIXED_FRACTION = re.compile(r"^(\d+)\s+(\d+)/(\d+)$")
_FRACTION = re.compile(r"^(\d+)/(\d+)$")
_NON_SIZE_CHARS = re.compile(r"[^0-9./ ]")


# ===============================================================================
# TIERED CHARGE CALCULATOR
# ===============================================================================


@dataclass(frozen=True)
class BandCharge:
    """Usage priced inside one band. ``end`` is None for the open-ended band."""

    start: Decimal
    end: Decimal | None
    usage: Decimal
    rate: Decimal
    charge: Decimal

    def as_dict(self) -> dict[str, str | None]:
        return {
            "start": str(self.start),
            "end": None if self.end is None else str(self.end),
            "usage": str(self.usage),
            "rate": str(self.rate),
            "charge": str(self.charge),
        }


def compute_banded_breakdown(usage_m3: Decimal | int | float | str, tiers: Sequence[TariffTier]) -> list[BandCharge]:
    """
    Split ``usage_m3`` across ``tiers`` in order and price each slice.

    Each band takes ``min(remaining, upper_bound - previous_bound)``; the last
    band absorbs whatever remains. Only bands that receive usage are listed.

    Raises:
        ValueError: if usage is negative. Callers clamp usage first.
    """
    usage = to_decimal(usage_m3, default=Decimal("NaN"))
    if usage.is_nan():
        raise ValueError(f"Usage {usage_m3!r} is not a number")
    if usage < 0:
        raise ValueError(f"Usage must be >= 0 for banded pricing, got {usage}")

    bands: list[BandCharge] = []
    remaining = usage
    previous_bound = ZERO
    last_index = len(tiers) - 1

    for index, tier in enumerate(tiers):
        if remaining <= 0:
            break

        open_ended = tier.upper_bound is None or index == last_index
        if open_ended:
            quantity = remaining
        else:
            quantity = min(remaining, tier.upper_bound - previous_bound)

        bands.append(
            BandCharge(
                start=previous_bound,
                end=None if open_ended else tier.upper_bound,
                usage=quantity,
                rate=tier.rate,
                charge=quantity * tier.rate,
            )
        )
        remaining -= quantity
        if not open_ended:
            previous_bound = tier.upper_bound

    return bands


def compute_banded(usage_m3: Decimal | int | float | str, tiers: Sequence[TariffTier]) -> Decimal:
    """Progressive marginal charge for ``usage_m3`` over ``tiers`` (unrounded)."""
    return sum((band.charge for band in compute_banded_breakdown(usage_m3, tiers)), ZERO)


# ===============================================================================
# SURCHARGE CALCULATOR
# ===============================================================================


def maintenance_fee(base_water_charge: Decimal, schedule: TariffSchedule) -> Decimal:
    return base_water_charge * schedule.maintenance_percentage


def sanitation_fee(base_water_charge: Decimal, schedule: TariffSchedule) -> Decimal:
    return base_water_charge * schedule.sanitation_percentage


def has_sewerage(sewerage_connection: str | bool | None) -> bool:
    if isinstance(sewerage_connection, bool):
        return sewerage_connection
    return str(sewerage_connection or "").strip().lower() == SewerageConnection.YES.value.lower()


def sewerage_charge(usage_m3: Decimal, schedule: TariffSchedule, sewerage_connection: str | bool | None) -> Decimal:
    """Banded sewerage charge; zero without an active connection."""
    if not has_sewerage(sewerage_connection):
        return ZERO
    return compute_banded(usage_m3, schedule.sewerage_tiers)


def parse_meter_size_label(label: str) -> Decimal | None:
    """
    Numeric size of a meter-rent bracket label.

    >>> parse_meter_size_label('3/4"')
    Decimal('0.75')
    >>> parse_meter_size_label("1 1/2")
    Decimal('1.5')
    """
    cleaned = " ".join(_NON_SIZE_CHARS.sub("", str(label)).split())
    if not cleaned:
        return None

    mixed = _MIXED_FRACTION.match(cleaned)
    if mixed:
        whole, numerator, denominator = (Decimal(part) for part in mixed.groups())
        return whole + numerator / denominator if denominator else None

    fraction = _FRACTION.match(cleaned)
    if fraction:
        numerator, denominator = (Decimal(part) for part in fraction.groups())
        return numerator / denominator if denominator else None

    size = to_decimal(cleaned, default=Decimal("NaN"))
    return None if size.is_nan() else size


def bracket_of(meter_size: Decimal | int | float | str, brackets: Mapping[str, Decimal]) -> str | None:
    """
    Pick the rent bracket for a meter size.

    Order of preference: a label equal to the size as written, a label with
    the same numeric size, the smallest bracket larger than the size, and
    finally the largest bracket for oversize meters. Returns None when the
    size is not positive or no label is numeric.
    """
    size = to_decimal(meter_size)
    if size <= 0 or not brackets:
        return None

    if str(meter_size).strip() in brackets:
        return str(meter_size).strip()

    sized = sorted(
        ((parsed, label) for label in brackets if (parsed := parse_meter_size_label(label)) is not None),
        key=lambda item: item[0],
    )
    if not sized:
        return None

    for parsed, label in sized:
        if abs(parsed - size) <= SIZE_MATCH_TOLERANCE:
            return label
    for parsed, label in sized:
        if parsed > size:
            return label
    return sized[-1][1]


def meter_rent(meter_size: Decimal | int | float | str, schedule: TariffSchedule) -> Decimal:
    """Flat rent for the meter's size bracket; zero when no bracket applies."""
    label = bracket_of(meter_size, schedule.meter_rent_by_bracket)
    if label is None:
        if schedule.meter_rent_by_bracket:
            logger.warning(
                f"⚠️ [Tariffs] No meter rent bracket for size {meter_size!r} "
                f"({schedule.customer_type}/{schedule.year})"
            )
        return ZERO
    return schedule.meter_rent_by_bracket[label]


# ===============================================================================
# VAT CALCULATOR
# ===============================================================================


def is_domestic(customer_type: str) -> bool:
    return customer_type in DOMESTIC_CUSTOMER_TYPES


def is_vat_exempt(usage_m3: Decimal, customer_type: str, schedule: TariffSchedule) -> bool:
    """Domestic usage at or below the threshold is exempt (the threshold itself is exempt)."""
    return is_domestic(customer_type) and usage_m3 <= schedule.domestic_vat_threshold_m3


def vat_amount(  # noqa: PLR0913
    usage_m3: Decimal,
    customer_type: str,
    schedule: TariffSchedule,
    *,
    base_water_charge: Decimal,
    maintenance: Decimal,
    sanitation: Decimal,
    sewerage: Decimal,
) -> Decimal:
    """VAT on water, maintenance, sanitation and sewerage charges; meter rent is not taxed."""
    if is_vat_exempt(usage_m3, customer_type, schedule):
        return ZERO
    return (base_water_charge + maintenance + sanitation + sewerage) * schedule.vat_rate
