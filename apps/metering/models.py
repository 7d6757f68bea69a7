"""
Metering models for HydroBill Platform
Bulk meters and the individually metered customers they feed.
"""

from __future__ import annotations

from decimal import Decimal
from typing import ClassVar

from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from apps.common.validators import validate_billing_month
from apps.tariffs.models import CustomerType, SewerageConnection

# ===============================================================================
# CHOICES
# ===============================================================================


class PaymentStatus(models.TextChoices):
    PAID = "Paid", _("Paid")
    UNPAID = "Unpaid", _("Unpaid")
    PENDING = "Pending", _("Pending")


class MeterStatus(models.TextChoices):
    ACTIVE = "Active", _("Active")
    INACTIVE = "Inactive", _("Inactive")
    MAINTENANCE = "Maintenance", _("Maintenance")
    SUSPENDED = "Suspended", _("Suspended")
    PENDING_APPROVAL = "Pending Approval", _("Pending Approval")
    REJECTED = "Rejected", _("Rejected")


READING_FIELD_OPTIONS: dict = {
    "max_digits": 12,
    "decimal_places": 2,
    "default": Decimal("0"),
    "validators": [MinValueValidator(Decimal("0"))],
}


# ===============================================================================
# METER ACCOUNTS
# ===============================================================================


class MeterAccount(models.Model):
    """
    Reading and balance state shared by bulk meters and customer meters.

    Only two operations move this state: a reading submission (current
    reading advances) and billing-cycle closure (previous reading rolls
    forward, balance is reset or carried). ``version`` is bumped on every
    write so concurrent writers detect stale reads.
    """

    customer_key_number = models.CharField(max_length=50, primary_key=True)
    name = models.CharField(max_length=200)

    customer_type = models.CharField(max_length=30, choices=CustomerType.choices, default=CustomerType.DOMESTIC)
    sewerage_connection = models.CharField(
        max_length=3, choices=SewerageConnection.choices, default=SewerageConnection.NO
    )
    meter_size = models.DecimalField(
        max_digits=6, decimal_places=3, default=Decimal("0.75"), help_text=_("Meter size in inches (e.g. 0.75)")
    )
    meter_number = models.CharField(max_length=50, blank=True)
    status = models.CharField(max_length=20, choices=MeterStatus.choices, default=MeterStatus.ACTIVE, db_index=True)

    # Readings (m3)
    previous_reading = models.DecimalField(**READING_FIELD_OPTIONS)
    current_reading = models.DecimalField(**READING_FIELD_OPTIONS)
    billing_month = models.CharField(
        max_length=7, blank=True, validators=[validate_billing_month], help_text=_("Billing month as YYYY-MM")
    )

    # Balance
    outstanding_balance = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    payment_status = models.CharField(max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.UNPAID)

    version = models.PositiveIntegerField(default=0, editable=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def __str__(self) -> str:
        return f"{self.name} ({self.customer_key_number})"

    @property
    def usage(self) -> Decimal:
        return self.current_reading - self.previous_reading


class BulkMeter(MeterAccount):
    """
    Shared meter feeding a group of individual customers.

    ``customer_type`` is the bulk meter's charge group, used to price its
    difference usage. The derived figures are refreshed by
    BulkMeterFiguresService and are informational; bills are priced afresh
    at cycle closure.
    """

    location = models.CharField(max_length=200, blank=True)

    # Derived figures
    bulk_usage = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    total_bulk_bill = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    difference_usage = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    difference_bill = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)

    class Meta:
        db_table = "bulk_meters"
        verbose_name = _("Bulk Meter")
        verbose_name_plural = _("Bulk Meters")
        ordering: ClassVar[tuple[str, ...]] = ("customer_key_number",)
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=models.Q(current_reading__gte=models.F("previous_reading")),
                name="bulk_meter_reading_not_regressed",
            ),
        )
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["status", "billing_month"], name="idx_bulk_meter_status_month"),
        )


class IndividualCustomer(MeterAccount):
    """Individually metered customer, optionally fed from a bulk meter."""

    assigned_bulk_meter = models.ForeignKey(
        BulkMeter,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="individual_customers",
    )

    class Meta:
        db_table = "individual_customers"
        verbose_name = _("Individual Customer")
        verbose_name_plural = _("Individual Customers")
        ordering: ClassVar[tuple[str, ...]] = ("customer_key_number",)
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=models.Q(current_reading__gte=models.F("previous_reading")),
                name="customer_reading_not_regressed",
            ),
        )
