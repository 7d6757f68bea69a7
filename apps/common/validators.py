"""
Input validation helpers for HydroBill Platform.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date

from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _

BILLING_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
MIN_BILLING_YEAR = 2000
MAX_BILLING_YEAR = 2100


# ===============================================================================
# BILLING PERIODS
# ===============================================================================


@dataclass(frozen=True)
class BillingPeriod:
    """A calendar month identified by its ``YYYY-MM`` label."""

    year: int
    month: int

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    @property
    def compact(self) -> str:
        """YYYYMM form used in document numbers."""
        return f"{self.year:04d}{self.month:02d}"

    def __str__(self) -> str:
        return self.label


def parse_billing_month(value: str | None) -> BillingPeriod:
    """
    Parse a ``YYYY-MM`` billing month into a BillingPeriod.

    Raises:
        ValidationError: if the value is missing, malformed or not a real month.
    """
    if not value:
        raise ValidationError(_("Billing month is not set."), code="missing")

    match = BILLING_MONTH_PATTERN.match(str(value).strip())
    if not match:
        raise ValidationError(
            _("Billing month %(value)s must use the YYYY-MM format."), code="format", params={"value": value}
        )

    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12 or not MIN_BILLING_YEAR <= year <= MAX_BILLING_YEAR:  # noqa: PLR2004
        raise ValidationError(
            _("Billing month %(value)s is not a valid calendar month."), code="range", params={"value": value}
        )

    return BillingPeriod(year=year, month=month)


def validate_billing_month(value: str) -> None:
    """Model field validator wrapper around parse_billing_month."""
    parse_billing_month(value)
