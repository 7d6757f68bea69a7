# Generated manually for Tariffs App - yearly rate schedules

import uuid

import django.core.validators
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="TariffRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "customer_type",
                    models.CharField(
                        choices=[
                            ("Domestic", "Domestic"),
                            ("Non-domestic", "Non-domestic"),
                            ("rental Non domestic", "Rental non-domestic"),
                            ("rental domestic", "Rental domestic"),
                        ],
                        db_index=True,
                        max_length=30,
                    ),
                ),
                (
                    "year",
                    models.PositiveIntegerField(
                        validators=[
                            django.core.validators.MinValueValidator(2000),
                            django.core.validators.MaxValueValidator(2100),
                        ]
                    ),
                ),
                (
                    "tiers",
                    models.JSONField(
                        blank=True, default=list, help_text="Water tiers: [{limit, rate}], last open-ended"
                    ),
                ),
                (
                    "sewerage_tiers",
                    models.JSONField(blank=True, default=list, help_text="Sewerage tiers, same shape as tiers"),
                ),
                (
                    "meter_rent_prices",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Flat monthly rent keyed by meter size bracket (e.g. '3/4', '1')",
                    ),
                ),
                (
                    "maintenance_percentage",
                    models.DecimalField(
                        decimal_places=4,
                        default=0,
                        help_text="Maintenance fee as a fraction of the base water charge (e.g. 0.01)",
                        max_digits=6,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                (
                    "sanitation_percentage",
                    models.DecimalField(
                        decimal_places=4,
                        default=0,
                        help_text="Sanitation fee as a fraction of the base water charge (e.g. 0.07)",
                        max_digits=6,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                (
                    "vat_rate",
                    models.DecimalField(
                        decimal_places=4,
                        default=0,
                        help_text="VAT rate as decimal (e.g. 0.15 for 15%)",
                        max_digits=5,
                        validators=[
                            django.core.validators.MinValueValidator(0),
                            django.core.validators.MaxValueValidator(1),
                        ],
                    ),
                ),
                (
                    "domestic_vat_threshold_m3",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Domestic usage at or below this value is VAT exempt (default 15 m3)",
                        max_digits=8,
                        null=True,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Tariff",
                "verbose_name_plural": "Tariffs",
                "db_table": "tariffs",
                "ordering": ("-year", "customer_type"),
                "constraints": [
                    models.UniqueConstraint(fields=("customer_type", "year"), name="uniq_tariff_type_year"),
                ],
            },
        ),
    ]
