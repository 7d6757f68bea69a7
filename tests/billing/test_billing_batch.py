# ===============================================================================
# BILLING CYCLE BATCH RUNNER TESTS
# ===============================================================================

from __future__ import annotations

import threading
from unittest.mock import Mock

from django.core.cache import cache
from django.test import TestCase

from apps.audit.models import AuditEvent
from apps.billing.batch import BulkCycleBatchRunner, EntryStatus
from apps.billing.cycle_service import CycleClosure, CycleState, build_default_coordinator
from apps.billing.exceptions import CompensationFailure, CycleClosureInProgress
from apps.billing.models import Bill
from apps.common.types import Err, Ok
from tests.factories.hydrobill import create_bulk_meter, create_metered_block, create_standard_tariffs


class ScriptedCoordinator:
    """Coordinator stand-in returning canned outcomes without touching the database"""

    def __init__(self, outcomes: dict | None = None, on_call=None) -> None:
        self.outcomes = outcomes or {}
        self.on_call = on_call
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def close_cycle(self, meter_id: str, carry_balance: bool = True, *, user=None):
        with self._lock:
            self.calls.append(meter_id)
        if self.on_call:
            self.on_call(meter_id)
        outcome = self.outcomes.get(meter_id)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            return outcome
        closure = CycleClosure(
            meter_id=meter_id, billing_month="2025-11", state=CycleState.CLOSED, bill_number=f"B-{meter_id}"
        )
        return Ok(closure)


class BatchRunnerDatabaseTestCase(TestCase):
    """End-to-end batch over real meters"""

    def setUp(self) -> None:
        cache.clear()
        create_standard_tariffs(2025)
        create_metered_block("BM-001")
        create_metered_block("BM-002")
        create_bulk_meter("BM-OFF", status="Inactive")
        create_bulk_meter("BM-OCT", billing_month="2025-10")

    def test_batch_closes_active_meters_for_month(self) -> None:
        report = BulkCycleBatchRunner(build_default_coordinator()).run("2025-11")

        self.assertEqual(report.closed, 2)
        self.assertEqual({entry.meter_id for entry in report.entries}, {"BM-001", "BM-002"})
        self.assertEqual(Bill.objects.count(), 2)

    def test_batch_without_month_covers_every_active_meter(self) -> None:
        report = BulkCycleBatchRunner(build_default_coordinator()).run()

        self.assertEqual(report.closed, 3)
        self.assertFalse(Bill.objects.filter(bulk_meter_id="BM-OFF").exists())

    def test_rerun_is_idempotent(self) -> None:
        """A second run skips billed meters without invoking the coordinator"""
        BulkCycleBatchRunner(build_default_coordinator()).run("2025-11")
        coordinator = Mock(wraps=build_default_coordinator())

        report = BulkCycleBatchRunner(coordinator).run("2025-11")

        self.assertEqual(report.skipped, 2)
        self.assertEqual(report.closed, 0)
        coordinator.close_cycle.assert_not_called()
        self.assertEqual(Bill.objects.count(), 2)

    def test_meter_filter(self) -> None:
        report = BulkCycleBatchRunner(build_default_coordinator()).run("2025-11", meter_ids=["BM-002"])

        self.assertEqual([entry.meter_id for entry in report.entries], ["BM-002"])

    def test_batch_is_audited(self) -> None:
        report = BulkCycleBatchRunner(build_default_coordinator()).run("2025-11")

        event = AuditEvent.objects.get(action="billing_batch_completed")
        self.assertEqual(event.metadata["batch_id"], report.batch_id)
        self.assertEqual(event.metadata["closed"], 2)


class BatchRunnerOutcomeTestCase(TestCase):
    """Per-meter outcome mapping, cancellation and pooled execution"""

    def setUp(self) -> None:
        for key in ("BM-A", "BM-B", "BM-C", "BM-D"):
            create_bulk_meter(key)

    def test_errors_are_reported_per_meter(self) -> None:
        coordinator = ScriptedCoordinator(
            {
                "BM-B": Err(CycleClosureInProgress("busy", meter_id="BM-B")),
                "BM-C": Err(CompensationFailure("stuck", meter_id="BM-C", bill_idempotency_key="cycle:BM-C:2025-11")),
                "BM-D": RuntimeError("boom"),
            }
        )

        report = BulkCycleBatchRunner(coordinator).run("2025-11")

        statuses = {entry.meter_id: entry for entry in report.entries}
        self.assertEqual(statuses["BM-A"].status, EntryStatus.CLOSED)
        self.assertEqual(statuses["BM-B"].error_code, "cycle_closure_in_progress")
        self.assertEqual(statuses["BM-D"].error_code, "unexpected_error")
        self.assertEqual(report.failed, 3)
        self.assertEqual(report.needs_review, ["BM-C"])

    def test_cancel_before_start(self) -> None:
        cancel = threading.Event()
        cancel.set()
        coordinator = ScriptedCoordinator()

        report = BulkCycleBatchRunner(coordinator).run("2025-11", cancel_event=cancel)

        self.assertEqual(report.cancelled, 4)
        self.assertEqual(coordinator.calls, [])

    def test_cancel_mid_batch(self) -> None:
        """Meters not yet started are cancelled; the running closure finishes"""
        cancel = threading.Event()
        coordinator = ScriptedCoordinator(on_call=lambda meter_id: cancel.set())

        report = BulkCycleBatchRunner(coordinator, max_workers=1).run("2025-11", cancel_event=cancel)

        self.assertEqual(coordinator.calls, ["BM-A"])
        self.assertEqual(report.closed, 1)
        self.assertEqual(report.cancelled, 3)

    def test_pooled_run_reports_every_meter_once(self) -> None:
        coordinator = ScriptedCoordinator()

        report = BulkCycleBatchRunner(coordinator, max_workers=3).run("2025-11")

        self.assertEqual([entry.meter_id for entry in report.entries], ["BM-A", "BM-B", "BM-C", "BM-D"])
        self.assertEqual(report.closed, 4)
        self.assertEqual(sorted(coordinator.calls), ["BM-A", "BM-B", "BM-C", "BM-D"])

    def test_summary_counts(self) -> None:
        report = BulkCycleBatchRunner(ScriptedCoordinator()).run("2025-11")

        summary = report.summary()
        self.assertEqual(summary["total"], 4)
        self.assertEqual(summary["closed"], 4)
        self.assertEqual(len(report.as_dict()["entries"]), 4)
