# Generated manually for Billing App - append-only bill ledger

import uuid
from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


def money(**kwargs):
    return models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14, **kwargs)


def usage():
    return models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=12)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("metering", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Bill",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("bill_number", models.CharField(max_length=80, unique=True)),
                ("idempotency_key", models.CharField(max_length=128, unique=True)),
                ("billing_month", models.CharField(db_index=True, max_length=7)),
                ("period_start", models.DateField()),
                ("period_end", models.DateField()),
                ("due_date", models.DateField()),
                ("previous_reading", usage()),
                ("current_reading", usage()),
                ("usage_m3", usage()),
                ("individual_usage_m3", usage()),
                ("difference_usage", usage()),
                ("base_water_charge", money()),
                ("maintenance_fee", money()),
                ("sanitation_fee", money()),
                ("sewerage_charge", money()),
                ("meter_rent", money()),
                ("vat_amount", money()),
                ("total_amount_due", money(help_text="Charge for this period")),
                ("balance_carried_forward", money(help_text="Outstanding balance before this period")),
                ("total_payable", money(help_text="Period charge plus carried balance")),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("Paid", "Paid"), ("Unpaid", "Unpaid"), ("Pending", "Pending")],
                        default="Unpaid",
                        max_length=10,
                    ),
                ),
                ("notes", models.TextField(blank=True)),
                (
                    "meta",
                    models.JSONField(blank=True, default=dict, help_text="Tier breakdowns and reconciliation details"),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "bulk_meter",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bills",
                        to="metering.bulkmeter",
                    ),
                ),
            ],
            options={
                "verbose_name": "Bill",
                "verbose_name_plural": "Bills",
                "db_table": "bills",
                "ordering": ("-billing_month", "bulk_meter_id"),
                "constraints": [
                    models.UniqueConstraint(fields=("bulk_meter", "billing_month"), name="uniq_bill_meter_month"),
                ],
                "indexes": [
                    models.Index(fields=["payment_status", "due_date"], name="idx_bill_status_due"),
                ],
            },
        ),
    ]
