# Generated manually for Metering App - bulk meters and customer meters

from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models

import apps.common.validators

CUSTOMER_TYPE_CHOICES = [
    ("Domestic", "Domestic"),
    ("Non-domestic", "Non-domestic"),
    ("rental Non domestic", "Rental non-domestic"),
    ("rental domestic", "Rental domestic"),
]
STATUS_CHOICES = [
    ("Active", "Active"),
    ("Inactive", "Inactive"),
    ("Maintenance", "Maintenance"),
    ("Suspended", "Suspended"),
    ("Pending Approval", "Pending Approval"),
    ("Rejected", "Rejected"),
]
PAYMENT_STATUS_CHOICES = [("Paid", "Paid"), ("Unpaid", "Unpaid"), ("Pending", "Pending")]


def meter_account_fields():
    reading = {
        "decimal_places": 2,
        "default": Decimal("0"),
        "max_digits": 12,
        "validators": [django.core.validators.MinValueValidator(Decimal("0"))],
    }
    return [
        ("customer_key_number", models.CharField(max_length=50, primary_key=True, serialize=False)),
        ("name", models.CharField(max_length=200)),
        ("customer_type", models.CharField(choices=CUSTOMER_TYPE_CHOICES, default="Domestic", max_length=30)),
        ("sewerage_connection", models.CharField(choices=[("Yes", "Yes"), ("No", "No")], default="No", max_length=3)),
        (
            "meter_size",
            models.DecimalField(
                decimal_places=3, default=Decimal("0.75"), help_text="Meter size in inches (e.g. 0.75)", max_digits=6
            ),
        ),
        ("meter_number", models.CharField(blank=True, max_length=50)),
        ("status", models.CharField(choices=STATUS_CHOICES, db_index=True, default="Active", max_length=20)),
        ("previous_reading", models.DecimalField(**reading)),
        ("current_reading", models.DecimalField(**reading)),
        (
            "billing_month",
            models.CharField(
                blank=True,
                help_text="Billing month as YYYY-MM",
                max_length=7,
                validators=[apps.common.validators.validate_billing_month],
            ),
        ),
        ("outstanding_balance", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
        ("payment_status", models.CharField(choices=PAYMENT_STATUS_CHOICES, default="Unpaid", max_length=10)),
        ("version", models.PositiveIntegerField(default=0, editable=False)),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="BulkMeter",
            fields=[
                *meter_account_fields(),
                ("location", models.CharField(blank=True, max_length=200)),
                ("bulk_usage", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("total_bulk_bill", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ("difference_usage", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("difference_bill", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
            ],
            options={
                "verbose_name": "Bulk Meter",
                "verbose_name_plural": "Bulk Meters",
                "db_table": "bulk_meters",
                "ordering": ("customer_key_number",),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(current_reading__gte=models.F("previous_reading")),
                        name="bulk_meter_reading_not_regressed",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["status", "billing_month"], name="idx_bulk_meter_status_month"),
                ],
            },
        ),
        migrations.CreateModel(
            name="IndividualCustomer",
            fields=[
                *meter_account_fields(),
                (
                    "assigned_bulk_meter",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="individual_customers",
                        to="metering.bulkmeter",
                    ),
                ),
            ],
            options={
                "verbose_name": "Individual Customer",
                "verbose_name_plural": "Individual Customers",
                "db_table": "individual_customers",
                "ordering": ("customer_key_number",),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(current_reading__gte=models.F("previous_reading")),
                        name="customer_reading_not_regressed",
                    ),
                ],
            },
        ),
    ]
