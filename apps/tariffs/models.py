"""
Tariff models for HydroBill Platform
Yearly water and sewerage rate tables per customer type.
"""

from __future__ import annotations

import uuid

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

# ===============================================================================
# CHOICES
# ===============================================================================


class CustomerType(models.TextChoices):
    DOMESTIC = "Domestic", _("Domestic")
    NON_DOMESTIC = "Non-domestic", _("Non-domestic")
    RENTAL_NON_DOMESTIC = "rental Non domestic", _("Rental non-domestic")
    RENTAL_DOMESTIC = "rental domestic", _("Rental domestic")


# VAT threshold exemption applies to these types only
DOMESTIC_CUSTOMER_TYPES = frozenset({CustomerType.DOMESTIC.value, CustomerType.RENTAL_DOMESTIC.value})


class SewerageConnection(models.TextChoices):
    YES = "Yes", _("Yes")
    NO = "No", _("No")


# ===============================================================================
# TARIFF MODELS
# ===============================================================================


class TariffRecord(models.Model):
    """
    Stored rate schedule for one customer type and year.

    Tier and meter-rent columns hold either structured JSON or the serialized
    text some imports produce; TariffScheduleRepository normalizes both.
    Tiers are lists of ``{"limit": <m3 | "Infinity">, "rate": <per m3>}``.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    customer_type = models.CharField(max_length=30, choices=CustomerType.choices, db_index=True)
    year = models.PositiveIntegerField(validators=[MinValueValidator(2000), MaxValueValidator(2100)])

    # Rate tables
    tiers = models.JSONField(default=list, blank=True, help_text=_("Water tiers: [{limit, rate}], last open-ended"))
    sewerage_tiers = models.JSONField(default=list, blank=True, help_text=_("Sewerage tiers, same shape as tiers"))
    meter_rent_prices = models.JSONField(
        default=dict, blank=True, help_text=_("Flat monthly rent keyed by meter size bracket (e.g. '3/4', '1')")
    )

    # Surcharges and tax
    maintenance_percentage = models.DecimalField(
        max_digits=6,
        decimal_places=4,
        default=0,
        validators=[MinValueValidator(0)],
        help_text=_("Maintenance fee as a fraction of the base water charge (e.g. 0.01)"),
    )
    sanitation_percentage = models.DecimalField(
        max_digits=6,
        decimal_places=4,
        default=0,
        validators=[MinValueValidator(0)],
        help_text=_("Sanitation fee as a fraction of the base water charge (e.g. 0.07)"),
    )
    vat_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(1)],
        help_text=_("VAT rate as decimal (e.g. 0.15 for 15%)"),
    )
    domestic_vat_threshold_m3 = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        null=True,
        blank=True,
        help_text=_("Domestic usage at or below this value is VAT exempt (default 15 m3)"),
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "tariffs"
        verbose_name = _("Tariff")
        verbose_name_plural = _("Tariffs")
        constraints = (models.UniqueConstraint(fields=("customer_type", "year"), name="uniq_tariff_type_year"),)
        ordering = ("-year", "customer_type")

    def __str__(self) -> str:
        return f"{self.customer_type} {self.year}"
