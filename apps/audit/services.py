"""
Audit services for HydroBill Platform
Centralized audit logging for billing operations.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from django.contrib.contenttypes.models import ContentType
from django.utils import timezone

from apps.common.logging import get_request_id

from .models import AuditEvent

logger = logging.getLogger(__name__)


class AuditJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for audit metadata.

    Handles UUID, date/datetime, Decimal (kept as string to preserve
    precision) and model instances.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, uuid.UUID):
            return str(obj)
        elif isinstance(obj, datetime | date):
            return obj.isoformat()
        elif isinstance(obj, Decimal):
            return str(obj)
        elif hasattr(obj, "pk"):  # Django model instance
            return f"{obj.__class__.__name__}(pk={obj.pk})"

        return super().default(obj)


def serialize_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """
    Safely serialize a metadata dictionary for JSONField storage.

    Non-serializable values are converted by AuditJSONEncoder; if that still
    fails a placeholder describing the failure is stored instead.
    """
    if not metadata:
        return {}

    try:
        serialized_json = json.dumps(metadata, cls=AuditJSONEncoder, ensure_ascii=False)
        return json.loads(serialized_json)  # type: ignore[no-any-return]
    except (TypeError, ValueError) as e:
        logger.error(f"🔥 [Audit] Failed to serialize metadata: {e}")
        return {
            "serialization_error": str(e),
            "original_keys": list(metadata.keys()),
            "timestamp": timezone.now().isoformat(),
        }


@dataclass
class AuditContext:
    """Parameter object for audit event context information"""

    user: Any | None = None
    request_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    actor_type: str = "system"


@dataclass
class AuditEventData:
    """Parameter object for audit event data"""

    event_type: str
    content_object: Any | None = None  # Any Django model instance
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    description: str = ""


class AuditService:
    """Centralized audit logging service"""

    CRITICAL_ACTIONS = frozenset({"billing_cycle_compensation_failed"})
    HIGH_ACTIONS = frozenset({"billing_cycle_compensated"})
    MEDIUM_ACTIONS = frozenset({"billing_cycle_closed", "billing_batch_completed", "tariff_schedule_refreshed"})
    REVIEW_ACTIONS = frozenset({"billing_cycle_compensation_failed"})

    @staticmethod
    def log_event(event_data: AuditEventData, context: AuditContext | None = None) -> AuditEvent:
        """
        🔐 Log an audit event with automatic categorization

        Args:
            event_data: AuditEventData containing event information
            context: AuditContext containing actor and correlation context (optional)
        """
        if context is None:
            context = AuditContext()

        try:
            content_type = None
            object_id = ""
            if event_data.content_object is not None:
                content_type = ContentType.objects.get_for_model(event_data.content_object)
                object_id = str(event_data.content_object.pk)

            category = context.metadata.get("category", AuditService._get_action_category(event_data.event_type))
            severity = context.metadata.get("severity", AuditService._get_action_severity(event_data.event_type))
            requires_review = context.metadata.get(
                "requires_review", AuditService._requires_review(event_data.event_type)
            )

            audit_event = AuditEvent.objects.create(
                user=context.user,
                actor_type=context.actor_type,
                action=event_data.event_type,
                category=category,
                severity=severity,
                requires_review=requires_review,
                content_type=content_type,
                object_id=object_id,
                old_values=serialize_metadata(event_data.old_values or {}),
                new_values=serialize_metadata(event_data.new_values or {}),
                description=event_data.description,
                request_id=context.request_id or get_request_id() or str(uuid.uuid4()),
                metadata=serialize_metadata(context.metadata),
            )

            logger.info(f"✅ [Audit] {event_data.event_type} event logged ({category}/{severity})")
            return audit_event

        except Exception as e:
            logger.error(f"🔥 [Audit] Failed to log event {event_data.event_type}: {e}")
            raise

    @staticmethod
    def log_simple_event(  # noqa: PLR0913
        event_type: str,
        *,
        user: Any | None = None,
        content_object: Any | None = None,
        description: str = "",
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        actor_type: str = "system",
    ) -> AuditEvent:
        """
        🔐 Simplified audit logging method

        Args:
            event_type: Type of event being logged
            user: User who triggered the action (None for system actions)
            content_object: Django model instance being audited
            description: Human-readable description
            old_values: Previous values (for updates)
            new_values: New values (for updates)
            metadata: Additional metadata; may override category/severity/requires_review
            actor_type: Type of actor ("user", "system", "api")

        Returns:
            AuditEvent: The created audit event
        """
        event_data = AuditEventData(
            event_type=event_type,
            content_object=content_object,
            description=description,
            old_values=old_values,
            new_values=new_values,
        )
        context = AuditContext(user=user, actor_type=actor_type, metadata=metadata or {})
        return AuditService.log_event(event_data, context)

    @staticmethod
    def _get_action_category(action: str) -> str:
        """Determine audit event category from action type"""
        if action.startswith("billing_cycle_compensation") or action == "billing_cycle_compensated":
            return "data_integrity"
        if action.startswith("tariff_"):
            return "system_admin"
        return "business_operation"

    @staticmethod
    def _get_action_severity(action: str) -> str:
        """Determine severity level from action type"""
        if action in AuditService.CRITICAL_ACTIONS:
            return "critical"
        if action in AuditService.HIGH_ACTIONS:
            return "high"
        if action in AuditService.MEDIUM_ACTIONS:
            return "medium"
        return "low"

    @staticmethod
    def _requires_review(action: str) -> bool:
        """Determine if action requires manual review"""
        return action in AuditService.REVIEW_ACTIONS
