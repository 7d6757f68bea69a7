"""
Immutable tariff schedule types and normalization of stored tariff rows.

Stored rows may carry tier and rent tables as structured JSON or as JSON text.
Anything that cannot be read is replaced by an empty table and logged, so a
bad row degrades to a zero charge instead of breaking bill calculation.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any

from .config import get_default_domestic_vat_threshold

logger = logging.getLogger(__name__)

OPEN_ENDED_LIMITS = frozenset({"infinity", "inf", "+infinity", "unlimited", ""})


class MalformedTariffData(ValueError):
    """A tier or rent table could not be normalized."""


# ===============================================================================
# VALUE OBJECTS
# ===============================================================================


@dataclass(frozen=True)
class TariffTier:
    """One usage band; ``upper_bound`` of None means open-ended."""

    upper_bound: Decimal | None
    rate: Decimal


@dataclass(frozen=True)
class TariffSchedule:
    """Rate table for one (customer type, year). Never mutated once built."""

    customer_type: str
    year: int
    tiers: tuple[TariffTier, ...] = ()
    sewerage_tiers: tuple[TariffTier, ...] = ()
    maintenance_percentage: Decimal = Decimal("0")
    sanitation_percentage: Decimal = Decimal("0")
    meter_rent_by_bracket: Mapping[str, Decimal] = field(default_factory=lambda: MappingProxyType({}))
    vat_rate: Decimal = Decimal("0")
    domestic_vat_threshold_m3: Decimal = Decimal("15")

    @property
    def key(self) -> tuple[str, int]:
        return (self.customer_type, self.year)


# ===============================================================================
# PARSING HELPERS
# ===============================================================================


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Convert numbers and numeric strings to Decimal; anything else yields ``default``."""
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return default
    return result if result.is_finite() else default


def safe_parse_json_field(value: Any, field_name: str, expected_type: type[list] | type[dict]) -> Any:
    """
    Return ``value`` as a list or dict, decoding JSON text when needed.

    Falls back to an empty container (with a log entry) for null, undecodable
    or wrongly-shaped input.
    """
    fallback = expected_type()
    if value is None:
        logger.warning(f"⚠️ [Tariffs] Field '{field_name}' is empty, using {fallback!r}")
        return fallback

    if isinstance(value, str | bytes):
        try:
            value = json.loads(value)
        except (TypeError, ValueError) as e:
            logger.error(f"🔥 [Tariffs] Failed to parse JSON for '{field_name}': {e}")
            return fallback

    if not isinstance(value, expected_type):
        logger.error(
            f"🔥 [Tariffs] Field '{field_name}' expected {expected_type.__name__}, got {type(value).__name__}"
        )
        return fallback

    return value


def _parse_limit(raw: Any) -> Decimal | None:
    if raw is None or (isinstance(raw, str) and raw.strip().lower() in OPEN_ENDED_LIMITS):
        return None
    if isinstance(raw, float) and raw == float("inf"):
        return None
    limit = to_decimal(raw, default=Decimal("NaN"))
    if limit.is_nan() or limit <= 0:
        raise MalformedTariffData(f"invalid tier limit {raw!r}")
    return limit


def normalize_tiers(raw_tiers: Any, field_name: str = "tiers") -> tuple[TariffTier, ...]:
    """
    Build an ordered, validated tier tuple from stored tier data.

    Accepts ``{"limit", "rate"}`` entries (``upper_bound``/``rate_per_m3`` are
    also understood). Tiers are sorted by limit; duplicate limits, more than
    one open-ended tier or negative rates make the whole table malformed, in
    which case an empty tuple is returned and the problem logged.
    """
    entries = safe_parse_json_field(raw_tiers, field_name, list)
    try:
        tiers = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise MalformedTariffData(f"tier entry {entry!r} is not an object")
            raw_limit = entry.get("limit", entry.get("upper_bound"))
            raw_rate = entry.get("rate", entry.get("rate_per_m3"))
            rate = to_decimal(raw_rate, default=Decimal("NaN"))
            if rate.is_nan() or rate < 0:
                raise MalformedTariffData(f"invalid tier rate {raw_rate!r}")
            tiers.append(TariffTier(upper_bound=_parse_limit(raw_limit), rate=rate))

        tiers.sort(key=lambda tier: (tier.upper_bound is None, tier.upper_bound or Decimal("0")))

        bounds = [tier.upper_bound for tier in tiers]
        if bounds.count(None) > 1:
            raise MalformedTariffData("more than one open-ended tier")
        finite = [bound for bound in bounds if bound is not None]
        if len(finite) != len(set(finite)):
            raise MalformedTariffData("tier limits are not strictly increasing")
    except MalformedTariffData as e:
        logger.error(f"🔥 [Tariffs] Malformed '{field_name}' table ({e}), using empty tiers")
        return ()

    return tuple(tiers)


def normalize_meter_rent(raw_prices: Any) -> Mapping[str, Decimal]:
    """Read-only ``{bracket label: rent}`` map; entries with unreadable rents are dropped."""
    prices = safe_parse_json_field(raw_prices, "meter_rent_prices", dict)
    normalized: dict[str, Decimal] = {}
    for label, raw_rent in prices.items():
        rent = to_decimal(raw_rent, default=Decimal("NaN"))
        if rent.is_nan() or rent < 0:
            logger.warning(f"⚠️ [Tariffs] Ignoring meter rent {raw_rent!r} for bracket {label!r}")
            continue
        normalized[str(label).strip()] = rent
    return MappingProxyType(normalized)


def _parse_threshold(raw: Any) -> Decimal:
    threshold = to_decimal(raw, default=Decimal("NaN"))
    if threshold.is_nan() or threshold < 0:
        return get_default_domestic_vat_threshold()
    return threshold


def schedule_from_row(row: Any) -> TariffSchedule:
    """
    Build a TariffSchedule from a stored tariff row.

    ``row`` is a TariffRecord or any mapping with the same keys.
    """
    get = row.get if isinstance(row, Mapping) else lambda name, default=None: getattr(row, name, default)

    return TariffSchedule(
        customer_type=str(get("customer_type")),
        year=int(get("year")),
        tiers=normalize_tiers(get("tiers"), "tiers"),
        sewerage_tiers=normalize_tiers(get("sewerage_tiers"), "sewerage_tiers"),
        maintenance_percentage=max(to_decimal(get("maintenance_percentage")), Decimal("0")),
        sanitation_percentage=max(to_decimal(get("sanitation_percentage")), Decimal("0")),
        meter_rent_by_bracket=normalize_meter_rent(get("meter_rent_prices")),
        vat_rate=max(to_decimal(get("vat_rate")), Decimal("0")),
        domestic_vat_threshold_m3=_parse_threshold(get("domestic_vat_threshold_m3")),
    )
