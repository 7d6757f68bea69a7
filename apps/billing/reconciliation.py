"""
Difference-usage reconciliation between a bulk meter and its customers.

The difference is the consumption the bulk meter saw that no individual
meter accounts for (shared taps, leaks, theft). Small or negative
differences are raised to a minimum so that loss is never billed as zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from apps.tariffs.schedule import to_decimal

from . import config as billing_config


@dataclass(frozen=True)
class Reconciliation:
    bulk_usage: Decimal
    individual_usage: Decimal
    raw_difference: Decimal
    difference_usage: Decimal

    @property
    def corrected(self) -> bool:
        return self.difference_usage != self.raw_difference


class DifferenceUsagePolicy:
    """
    Minimum-difference rule.

    ``difference = bulk - individual``; any value below ``minimum_m3``
    (negative, 0, 1 or 2 with the default of 3) is billed as ``minimum_m3``.
    Larger differences pass through unchanged.
    """

    def __init__(self, minimum_m3: Decimal | int | None = None) -> None:
        if minimum_m3 is None:
            minimum_m3 = billing_config.get_minimum_difference_usage()
        self.minimum_m3 = Decimal(minimum_m3)
        if self.minimum_m3 < 0:
            raise ValueError("minimum_m3 must be >= 0")

    def evaluate(self, bulk_usage: Decimal | int | float, individual_usage: Decimal | int | float) -> Reconciliation:
        bulk = to_decimal(bulk_usage)
        individual = to_decimal(individual_usage)
        raw = bulk - individual
        return Reconciliation(
            bulk_usage=bulk,
            individual_usage=individual,
            raw_difference=raw,
            difference_usage=self.minimum_m3 if raw < self.minimum_m3 else raw,
        )

    def reconcile(self, bulk_usage: Decimal | int | float, individual_usage: Decimal | int | float) -> Decimal:
        """Billable difference usage for a bulk meter."""
        return self.evaluate(bulk_usage, individual_usage).difference_usage
