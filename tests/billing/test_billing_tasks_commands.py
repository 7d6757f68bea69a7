# ===============================================================================
# BILLING TASKS AND MANAGEMENT COMMAND TESTS
# ===============================================================================

from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core.cache import cache
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from apps.audit.models import AuditEvent
from apps.billing import tasks
from apps.billing.models import Bill
from apps.metering.models import BulkMeter
from apps.tariffs.models import TariffRecord
from tests.factories.hydrobill import create_metered_block, create_standard_tariffs


class BillingTasksTestCase(TestCase):
    """Django-Q task entry points"""

    def setUp(self) -> None:
        cache.clear()
        create_standard_tariffs(2025)
        create_metered_block("BM-001")

    def test_close_billing_cycle_task(self) -> None:
        result = tasks.close_billing_cycle("BM-001")

        self.assertTrue(result["success"])
        self.assertEqual(result["closure"]["state"], "closed")
        self.assertEqual(result["closure"]["bill_total"], "106.43")

    def test_close_billing_cycle_task_reports_errors(self) -> None:
        result = tasks.close_billing_cycle("MISSING")

        self.assertFalse(result["success"])
        self.assertEqual(result["error"]["code"], "meter_not_found")

    def test_run_billing_cycle_batch_task(self) -> None:
        result = tasks.run_billing_cycle_batch("2025-11")

        self.assertTrue(result["success"])
        self.assertEqual(result["closed"], 1)
        self.assertEqual(result["entries"][0]["bill_number"], "BILL-202511-BM-001")

    def test_batch_task_survives_runner_crash(self) -> None:
        with patch("apps.billing.tasks.BulkCycleBatchRunner.run", side_effect=RuntimeError("db down")):
            result = tasks.run_billing_cycle_batch("2025-11")

        self.assertFalse(result["success"])
        self.assertIn("db down", result["error"])

    @patch("apps.billing.tasks.async_task", return_value="task-123")
    def test_queue_billing_cycle_batch(self, mock_async_task) -> None:
        task_id = tasks.queue_billing_cycle_batch("2025-11", carry_balance=False, max_workers=2)

        self.assertEqual(task_id, "task-123")
        args, kwargs = mock_async_task.call_args
        self.assertEqual(args, ("apps.billing.tasks.run_billing_cycle_batch", "2025-11", False, 2))
        self.assertEqual(kwargs["timeout"], tasks.BATCH_TASK_TIMEOUT)

    @patch("apps.billing.tasks.async_task", return_value="task-456")
    def test_queue_single_closure(self, mock_async_task) -> None:
        self.assertEqual(tasks.queue_billing_cycle_closure("BM-001"), "task-456")
        self.assertEqual(mock_async_task.call_args.args[1], "BM-001")


class CloseBillingCyclesCommandTestCase(TestCase):
    """manage.py close_billing_cycles"""

    def setUp(self) -> None:
        cache.clear()
        create_standard_tariffs(2025)
        create_metered_block("BM-001", outstanding_balance=Decimal("10.00"))

    def test_command_closes_cycles(self) -> None:
        out = StringIO()

        call_command("close_billing_cycles", "--month", "2025-11", stdout=out)

        self.assertIn("BILL-202511-BM-001", out.getvalue())
        self.assertIn("Closed: 1", out.getvalue())
        self.assertEqual(Bill.objects.count(), 1)

    def test_no_carry_flag(self) -> None:
        call_command("close_billing_cycles", "--no-carry", stdout=StringIO())

        meter = BulkMeter.objects.get(pk="BM-001")
        self.assertEqual(meter.outstanding_balance, Decimal("0"))
        self.assertEqual(meter.payment_status, "Paid")

    def test_rerun_reports_skips(self) -> None:
        call_command("close_billing_cycles", stdout=StringIO())
        out = StringIO()

        call_command("close_billing_cycles", stdout=out)

        self.assertIn("Skipped: 1", out.getvalue())
        self.assertEqual(Bill.objects.count(), 1)

    def test_invalid_month_is_rejected(self) -> None:
        with self.assertRaises(CommandError):
            call_command("close_billing_cycles", "--month", "2025-13", stdout=StringIO())

    def test_invalid_worker_count_is_rejected(self) -> None:
        with self.assertRaises(CommandError):
            call_command("close_billing_cycles", "--workers", "0", stdout=StringIO())


class RefreshTariffsCommandTestCase(TestCase):
    """manage.py refresh_tariffs"""

    def test_refresh_reloads_and_updates_figures(self) -> None:
        create_metered_block("BM-001")
        self.assertEqual(BulkMeter.objects.get(pk="BM-001").difference_bill, Decimal("0"))
        create_standard_tariffs(2025)
        out = StringIO()

        call_command("refresh_tariffs", stdout=out)

        self.assertIn("Loaded 2 tariff schedule(s)", out.getvalue())
        self.assertEqual(BulkMeter.objects.get(pk="BM-001").difference_bill, Decimal("106.43"))
        self.assertTrue(AuditEvent.objects.filter(action="tariff_schedule_refreshed").exists())
        self.assertEqual(TariffRecord.objects.count(), 2)
