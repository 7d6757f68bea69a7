"""
Audit models for HydroBill Platform.
Append-only trail of billing-cycle closures, compensations and tariff changes.
"""

from __future__ import annotations

import uuid
from typing import ClassVar

from django.conf import settings
from django.contrib.contenttypes.models import ContentType
from django.db import models
from django.utils.translation import gettext_lazy as _


class AuditEvent(models.Model):
    """Immutable audit log for billing operations."""

    # ======================================================================
    # AUDIT EVENT CATEGORIES
    # ======================================================================
    CATEGORY_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        ("business_operation", "Business Operation"),
        ("data_integrity", "Data Integrity"),
        ("system_admin", "System Administration"),
    )

    SEVERITY_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        ("low", "Low"),
        ("medium", "Medium"),
        ("high", "High"),
        ("critical", "Critical"),
    )

    ACTION_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        # ======================================================================
        # GENERIC CRUD OPERATIONS
        # ======================================================================
        ("create", "Create"),
        ("update", "Update"),
        ("delete", "Delete"),
        # ======================================================================
        # METER READINGS
        # ======================================================================
        ("meter_reading_submitted", "Meter Reading Submitted"),
        ("bulk_meter_figures_refreshed", "Bulk Meter Figures Refreshed"),
        # ======================================================================
        # BILLING CYCLE CLOSURE
        # ======================================================================
        ("billing_cycle_closed", "Billing Cycle Closed"),
        ("billing_cycle_compensated", "Billing Cycle Compensated"),
        ("billing_cycle_compensation_failed", "Billing Cycle Compensation Failed"),
        ("billing_batch_completed", "Billing Batch Completed"),
        # ======================================================================
        # TARIFFS
        # ======================================================================
        ("tariff_schedule_refreshed", "Tariff Schedule Refreshed"),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    actor_type = models.CharField(max_length=20, default="system")  # user, system, api
    action = models.CharField(max_length=50, choices=ACTION_CHOICES, db_index=True)
    category = models.CharField(max_length=30, choices=CATEGORY_CHOICES, default="business_operation", db_index=True)
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES, default="low", db_index=True)
    requires_review = models.BooleanField(default=False, db_index=True)  # Flagged for manual reconciliation
    content_type = models.ForeignKey(ContentType, on_delete=models.SET_NULL, null=True, blank=True)
    object_id = models.CharField(max_length=64, blank=True, db_index=True)
    old_values = models.JSONField(default=dict, blank=True)
    new_values = models.JSONField(default=dict, blank=True)
    description = models.TextField(blank=True)
    request_id = models.CharField(max_length=64, blank=True, db_index=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "audit_event"
        verbose_name = _("Audit Event")
        verbose_name_plural = _("Audit Events")
        ordering: ClassVar[tuple[str, ...]] = ("-timestamp",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["content_type", "object_id", "-timestamp"], name="idx_audit_object_time"),
            models.Index(fields=["action", "-timestamp"], name="idx_audit_action_time"),
            models.Index(fields=["severity", "-timestamp"], name="idx_audit_severity_time"),
            models.Index(fields=["requires_review", "-timestamp"], name="idx_audit_review_time"),
        )

    def __str__(self) -> str:
        return f"{self.action} on {self.content_type or '-'}:{self.object_id} by {self.user or 'System'}"
