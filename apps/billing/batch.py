"""
Batch billing-cycle closure.

Runs the coordinator over every active bulk meter with a bounded number of
concurrent closures. Each meter gets exactly one entry in the report.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from django.db import close_old_connections

from apps.audit.services import AuditService
from apps.common.logging import get_request_context, log_context
from apps.metering.models import BulkMeter, MeterStatus

from . import config as billing_config
from .cycle_service import BillingCycleCoordinator
from .models import Bill

logger = logging.getLogger(__name__)


class EntryStatus(str, Enum):
    CLOSED = "closed"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BatchEntry:
    meter_id: str
    status: EntryStatus
    bill_number: str | None = None
    error_code: str | None = None
    message: str = ""
    state_changed: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "meter_id": self.meter_id,
            "status": self.status.value,
            "bill_number": self.bill_number,
            "error_code": self.error_code,
            "message": self.message,
            "state_changed": self.state_changed,
        }


@dataclass
class BatchRunReport:
    batch_id: str
    billing_month: str | None
    carry_balance: bool
    entries: list[BatchEntry] = field(default_factory=list)

    def count(self, status: EntryStatus) -> int:
        return sum(1 for entry in self.entries if entry.status is status)

    @property
    def closed(self) -> int:
        return self.count(EntryStatus.CLOSED)

    @property
    def skipped(self) -> int:
        return self.count(EntryStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(EntryStatus.FAILED)

    @property
    def cancelled(self) -> int:
        return self.count(EntryStatus.CANCELLED)

    @property
    def needs_review(self) -> list[str]:
        """Meters whose failure left persistent state behind."""
        return [entry.meter_id for entry in self.entries if entry.state_changed]

    def summary(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "billing_month": self.billing_month,
            "carry_balance": self.carry_balance,
            "total": len(self.entries),
            "closed": self.closed,
            "skipped": self.skipped,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "needs_review": self.needs_review,
        }

    def as_dict(self) -> dict[str, Any]:
        return {**self.summary(), "entries": [entry.as_dict() for entry in self.entries]}


class BulkCycleBatchRunner:
    """
    🏭 Closes billing cycles for many bulk meters.

    Meters already billed for their month are reported as skipped without
    taking their lock. Setting ``cancel_event`` stops new closures from
    starting; closures already running finish normally and every meter not
    yet started is reported as cancelled.
    """

    def __init__(self, coordinator: BillingCycleCoordinator, max_workers: int | None = None) -> None:
        self.coordinator = coordinator
        self.max_workers = max(1, max_workers or billing_config.get_batch_max_workers())

    def eligible_meters(self, billing_month: str | None = None) -> list[tuple[str, str]]:
        """(meter id, billing month) of active bulk meters with a billing month."""
        meters = BulkMeter.objects.filter(status=MeterStatus.ACTIVE).exclude(billing_month="")
        if billing_month:
            meters = meters.filter(billing_month=billing_month)
        return list(meters.order_by("customer_key_number").values_list("customer_key_number", "billing_month"))

    def run(
        self,
        billing_month: str | None = None,
        carry_balance: bool = True,
        *,
        meter_ids: list[str] | None = None,
        cancel_event: threading.Event | None = None,
        user: Any | None = None,
    ) -> BatchRunReport:
        cancel_event = cancel_event or threading.Event()
        batch_id = uuid.uuid4().hex
        report = BatchRunReport(batch_id=batch_id, billing_month=billing_month, carry_balance=carry_balance)

        with log_context(batch_id=batch_id, billing_month=billing_month or ""):
            candidates = self.eligible_meters(billing_month)
            if meter_ids is not None:
                wanted = set(meter_ids)
                candidates = [candidate for candidate in candidates if candidate[0] in wanted]

            billed = set(
                Bill.objects.filter(
                    bulk_meter_id__in=[meter_id for meter_id, _ in candidates],
                    billing_month__in={month for _, month in candidates},
                ).values_list("bulk_meter_id", "billing_month")
            )
            pending: list[str] = []
            for meter_id, month in candidates:
                if (meter_id, month) in billed:
                    report.entries.append(
                        BatchEntry(meter_id=meter_id, status=EntryStatus.SKIPPED, message=f"{month} already billed")
                    )
                else:
                    pending.append(meter_id)

            logger.info(
                f"🏭 [BillingBatch] Starting batch {batch_id}: {len(pending)} to close, "
                f"{len(report.entries)} already billed, {self.max_workers} worker(s)"
            )

            if self.max_workers == 1:
                report.entries.extend(self._run_sequential(pending, carry_balance, cancel_event, user))
            else:
                report.entries.extend(self._run_pooled(pending, carry_balance, cancel_event, user))

            log = logger.warning if report.failed or report.cancelled else logger.info
            log(
                f"🏁 [BillingBatch] Batch {batch_id} finished: {report.closed} closed, {report.skipped} skipped, "
                f"{report.failed} failed, {report.cancelled} cancelled"
            )
            try:
                AuditService.log_simple_event(
                    "billing_batch_completed",
                    user=user,
                    description=f"Billing batch {batch_id} finished",
                    metadata=report.summary(),
                )
            except Exception:
                logger.error(f"🔥 [BillingBatch] Could not audit batch {batch_id}", exc_info=True)

        return report

    # ---------------------------------------------------------------------------
    # Execution strategies
    # ---------------------------------------------------------------------------

    def _run_sequential(
        self, meter_ids: list[str], carry_balance: bool, cancel_event: threading.Event, user: Any | None
    ) -> list[BatchEntry]:
        entries: list[BatchEntry] = []
        for index, meter_id in enumerate(meter_ids):
            if cancel_event.is_set():
                entries.extend(self._cancelled(meter_ids[index:]))
                break
            entries.append(self._close_one(meter_id, carry_balance, user))
        return entries

    def _run_pooled(
        self, meter_ids: list[str], carry_balance: bool, cancel_event: threading.Event, user: Any | None
    ) -> list[BatchEntry]:
        entries: dict[str, BatchEntry] = {}
        remaining = list(meter_ids)
        in_flight: dict[Future[BatchEntry], str] = {}
        context = {key: value for key, value in get_request_context().items() if value}

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="billing-cycle") as executor:
            while remaining or in_flight:
                while remaining and len(in_flight) < self.max_workers and not cancel_event.is_set():
                    meter_id = remaining.pop(0)
                    in_flight[executor.submit(self._close_in_worker, meter_id, carry_balance, user, context)] = meter_id

                if cancel_event.is_set() and remaining:
                    for entry in self._cancelled(remaining):
                        entries[entry.meter_id] = entry
                    remaining = []

                if not in_flight:
                    continue

                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    entries[in_flight.pop(future)] = future.result()

        return [entries[meter_id] for meter_id in meter_ids]

    def _close_in_worker(
        self, meter_id: str, carry_balance: bool, user: Any | None, context: dict[str, Any]
    ) -> BatchEntry:
        try:
            with log_context(**context):
                return self._close_one(meter_id, carry_balance, user)
        finally:
            close_old_connections()

    def _close_one(self, meter_id: str, carry_balance: bool, user: Any | None) -> BatchEntry:
        try:
            result = self.coordinator.close_cycle(meter_id, carry_balance, user=user)
        except Exception as e:
            logger.exception(f"🔥 [BillingBatch] Unexpected error closing {meter_id}")
            return BatchEntry(
                meter_id=meter_id, status=EntryStatus.FAILED, error_code="unexpected_error", message=str(e)
            )

        if result.is_err():
            error = result.unwrap_err()
            return BatchEntry(
                meter_id=meter_id,
                status=EntryStatus.FAILED,
                error_code=error.code,
                message=error.message,
                state_changed=error.state_changed,
            )

        closure = result.unwrap()
        return BatchEntry(
            meter_id=meter_id,
            status=EntryStatus.SKIPPED if closure.skipped else EntryStatus.CLOSED,
            bill_number=closure.bill_number,
        )

    @staticmethod
    def _cancelled(meter_ids: list[str]) -> list[BatchEntry]:
        if meter_ids:
            logger.warning(f"🛑 [BillingBatch] Cancelled before starting {len(meter_ids)} closure(s)")
        return [
            BatchEntry(meter_id=meter_id, status=EntryStatus.CANCELLED, message="Batch cancelled")
            for meter_id in meter_ids
        ]
