# ===============================================================================
# COMMON INFRASTRUCTURE TESTS - LOCKS, BILLING MONTHS, LOG CONTEXT, RESULTS
# ===============================================================================

import logging
from datetime import date
from unittest.mock import patch

from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from apps.common.locks import DistributedLock, LockNotAcquired
from apps.common.logging import RequestIDFilter, get_request_context, get_request_id, log_context
from apps.common.types import Err, Ok
from apps.common.validators import parse_billing_month


class DistributedLockTestCase(SimpleTestCase):
    def setUp(self) -> None:
        cache.clear()

    def test_second_holder_is_refused(self) -> None:
        first = DistributedLock("billing-cycle:BM-001", blocking=False)
        second = DistributedLock("billing-cycle:BM-001", blocking=False)

        self.assertTrue(first.acquire())
        self.assertFalse(second.acquire())
        self.assertTrue(second.is_locked)

        first.release()
        self.assertTrue(second.acquire())
        second.release()

    def test_context_manager_raises_when_held(self) -> None:
        with DistributedLock("billing-cycle:BM-002", blocking=False):
            with self.assertRaises(LockNotAcquired) as ctx, DistributedLock("billing-cycle:BM-002", blocking=False):
                pass

        self.assertEqual(ctx.exception.lock_name, "billing-cycle:BM-002")
        self.assertFalse(DistributedLock("billing-cycle:BM-002").is_locked)

    def test_blocking_gives_up_after_timeout(self) -> None:
        holder = DistributedLock("billing-cycle:BM-003", blocking=False)
        holder.acquire()

        waiter = DistributedLock("billing-cycle:BM-003", blocking=True, blocking_timeout=0)
        self.assertFalse(waiter.acquire())
        holder.release()

    def test_release_without_lease_is_noop(self) -> None:
        """A lock that never acquired cannot release someone else's lease"""
        holder = DistributedLock("billing-cycle:BM-004", blocking=False)
        holder.acquire()

        self.assertFalse(DistributedLock("billing-cycle:BM-004").release())
        self.assertTrue(holder.is_locked)
        holder.release()

    def test_expired_lease_is_not_released_by_stale_owner(self) -> None:
        stale = DistributedLock("billing-cycle:BM-005", blocking=False)
        stale.acquire()
        cache.delete("lock:billing-cycle:BM-005")
        current = DistributedLock("billing-cycle:BM-005", blocking=False)
        current.acquire()

        self.assertFalse(stale.release())
        self.assertTrue(current.is_locked)
        current.release()

    def test_lease_near_expiry_is_left_to_lapse(self) -> None:
        """Owner check and delete are separate calls, so an almost expired lease is not deleted"""
        with patch("apps.common.locks.time.monotonic") as clock:
            clock.return_value = 100.0
            holder = DistributedLock("billing-cycle:BM-006", timeout=10, blocking=False)
            self.assertTrue(holder.acquire())

            clock.return_value = 109.5
            with self.assertLogs("apps.common.locks", level="DEBUG"):
                self.assertFalse(holder.release())

        self.assertTrue(holder.is_locked)
        self.assertFalse(holder.release())
        cache.delete("lock:billing-cycle:BM-006")

    def test_release_with_lease_remaining_deletes_key(self) -> None:
        with patch("apps.common.locks.time.monotonic") as clock:
            clock.return_value = 100.0
            holder = DistributedLock("billing-cycle:BM-007", timeout=10, blocking=False)
            holder.acquire()

            clock.return_value = 108.5
            self.assertTrue(holder.release())

        self.assertFalse(holder.is_locked)


class BillingMonthTestCase(SimpleTestCase):
    def test_parse_valid_month(self) -> None:
        period = parse_billing_month("2024-02")

        self.assertEqual(period.label, "2024-02")
        self.assertEqual(period.compact, "202402")
        self.assertEqual(period.start, date(2024, 2, 1))
        self.assertEqual(period.end, date(2024, 2, 29))

    def test_invalid_months(self) -> None:
        for value in ("", None, "2025-13", "2025-00", "25-11", "2025/11", "1999-12"):
            with self.subTest(value=value), self.assertRaises(ValidationError):
                parse_billing_month(value)


class LogContextTestCase(SimpleTestCase):
    def test_nested_context_restores_outer_values(self) -> None:
        with log_context(request_id="batch-1", batch_id="batch-1"):
            with log_context(meter_id="BM-001") as request_id:
                self.assertEqual(request_id, "batch-1")
                self.assertEqual(get_request_context()["meter_id"], "BM-001")
            context = get_request_context()
            self.assertIsNone(context["meter_id"])
            self.assertEqual(context["batch_id"], "batch-1")

        self.assertIsNone(get_request_id())

    def test_request_id_is_generated(self) -> None:
        with log_context() as request_id:
            self.assertEqual(get_request_id(), request_id)
            self.assertTrue(request_id)

    def test_filter_stamps_records(self) -> None:
        record = logging.LogRecord("apps.billing", logging.INFO, __file__, 1, "closing", None, None)

        with log_context(request_id="req-7", meter_id="BM-009"):
            RequestIDFilter().filter(record)

        self.assertEqual(record.request_id, "req-7")
        self.assertEqual(record.meter_id, "BM-009")


class ResultTypesTestCase(SimpleTestCase):
    def test_ok(self) -> None:
        result = Ok(5)

        self.assertTrue(result.is_ok())
        self.assertEqual(result.unwrap(), 5)
        with self.assertRaises(ValueError):
            result.unwrap_err()

    def test_err(self) -> None:
        result = Err("boom")

        self.assertTrue(result.is_err())
        self.assertEqual(result.unwrap_err(), "boom")
        with self.assertRaises(ValueError):
            result.unwrap()
