"""
Billing models for HydroBill Platform
Append-only bill ledger written by billing-cycle closure.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, ClassVar

from django.db import models
from django.utils.translation import gettext_lazy as _

from apps.metering.models import BulkMeter, PaymentStatus

MONEY_FIELD_OPTIONS: dict = {"max_digits": 14, "decimal_places": 2, "default": Decimal("0")}
USAGE_FIELD_OPTIONS: dict = {"max_digits": 12, "decimal_places": 2, "default": Decimal("0")}


class BillImmutableError(RuntimeError):
    """Raised when code tries to modify a persisted bill."""


class Bill(models.Model):
    """
    One closed billing cycle of a bulk meter.

    Bills are created only by cycle closure and are never edited; the one
    permitted removal is the compensating delete of a closure whose meter
    update failed, addressed by ``idempotency_key``.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    bill_number = models.CharField(max_length=80, unique=True)
    idempotency_key = models.CharField(max_length=128, unique=True)

    bulk_meter = models.ForeignKey(BulkMeter, on_delete=models.PROTECT, related_name="bills")
    billing_month = models.CharField(max_length=7, db_index=True)
    period_start = models.DateField()
    period_end = models.DateField()
    due_date = models.DateField()

    # Readings and usage (m3)
    previous_reading = models.DecimalField(**USAGE_FIELD_OPTIONS)
    current_reading = models.DecimalField(**USAGE_FIELD_OPTIONS)
    usage_m3 = models.DecimalField(**USAGE_FIELD_OPTIONS)
    individual_usage_m3 = models.DecimalField(**USAGE_FIELD_OPTIONS)
    difference_usage = models.DecimalField(**USAGE_FIELD_OPTIONS)

    # Charge breakdown for the difference usage
    base_water_charge = models.DecimalField(**MONEY_FIELD_OPTIONS)
    maintenance_fee = models.DecimalField(**MONEY_FIELD_OPTIONS)
    sanitation_fee = models.DecimalField(**MONEY_FIELD_OPTIONS)
    sewerage_charge = models.DecimalField(**MONEY_FIELD_OPTIONS)
    meter_rent = models.DecimalField(**MONEY_FIELD_OPTIONS)
    vat_amount = models.DecimalField(**MONEY_FIELD_OPTIONS)

    # Totals
    total_amount_due = models.DecimalField(**MONEY_FIELD_OPTIONS, help_text=_("Charge for this period"))
    balance_carried_forward = models.DecimalField(
        **MONEY_FIELD_OPTIONS, help_text=_("Outstanding balance before this period")
    )
    total_payable = models.DecimalField(**MONEY_FIELD_OPTIONS, help_text=_("Period charge plus carried balance"))

    payment_status = models.CharField(max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.UNPAID)
    notes = models.TextField(blank=True)
    meta = models.JSONField(default=dict, blank=True, help_text=_("Tier breakdowns and reconciliation details"))

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "bills"
        verbose_name = _("Bill")
        verbose_name_plural = _("Bills")
        ordering: ClassVar[tuple[str, ...]] = ("-billing_month", "bulk_meter_id")
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.UniqueConstraint(fields=("bulk_meter", "billing_month"), name="uniq_bill_meter_month"),
        )
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["payment_status", "due_date"], name="idx_bill_status_due"),
        )

    def __str__(self) -> str:
        return self.bill_number

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise BillImmutableError(f"Bill {self.bill_number} is append-only and cannot be modified")
        super().save(*args, **kwargs)
