# Generated manually for Audit App - billing audit trail

import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("contenttypes", "0002_remove_content_type_name"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AuditEvent",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("timestamp", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("actor_type", models.CharField(default="system", max_length=20)),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("create", "Create"),
                            ("update", "Update"),
                            ("delete", "Delete"),
                            ("meter_reading_submitted", "Meter Reading Submitted"),
                            ("bulk_meter_figures_refreshed", "Bulk Meter Figures Refreshed"),
                            ("billing_cycle_closed", "Billing Cycle Closed"),
                            ("billing_cycle_compensated", "Billing Cycle Compensated"),
                            ("billing_cycle_compensation_failed", "Billing Cycle Compensation Failed"),
                            ("billing_batch_completed", "Billing Batch Completed"),
                            ("tariff_schedule_refreshed", "Tariff Schedule Refreshed"),
                        ],
                        db_index=True,
                        max_length=50,
                    ),
                ),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("business_operation", "Business Operation"),
                            ("data_integrity", "Data Integrity"),
                            ("system_admin", "System Administration"),
                        ],
                        db_index=True,
                        default="business_operation",
                        max_length=30,
                    ),
                ),
                (
                    "severity",
                    models.CharField(
                        choices=[("low", "Low"), ("medium", "Medium"), ("high", "High"), ("critical", "Critical")],
                        db_index=True,
                        default="low",
                        max_length=10,
                    ),
                ),
                ("requires_review", models.BooleanField(db_index=True, default=False)),
                ("object_id", models.CharField(blank=True, db_index=True, max_length=64)),
                ("old_values", models.JSONField(blank=True, default=dict)),
                ("new_values", models.JSONField(blank=True, default=dict)),
                ("description", models.TextField(blank=True)),
                ("request_id", models.CharField(blank=True, db_index=True, max_length=64)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "content_type",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to="contenttypes.contenttype",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Audit Event",
                "verbose_name_plural": "Audit Events",
                "db_table": "audit_event",
                "ordering": ("-timestamp",),
                "indexes": [
                    models.Index(fields=["content_type", "object_id", "-timestamp"], name="idx_audit_object_time"),
                    models.Index(fields=["action", "-timestamp"], name="idx_audit_action_time"),
                    models.Index(fields=["severity", "-timestamp"], name="idx_audit_severity_time"),
                    models.Index(fields=["requires_review", "-timestamp"], name="idx_audit_review_time"),
                ],
            },
        ),
    ]
