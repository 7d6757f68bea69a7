"""
Billing API tests.
Calculation, cycle closure, bill listing and batch queueing endpoints.
"""

from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import OperationalError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from apps.audit.models import AuditEvent
from apps.billing.models import Bill
from apps.common.locks import DistributedLock
from tests.factories.hydrobill import create_bulk_meter, create_metered_block, create_standard_tariffs

User = get_user_model()


class BillingAPITestCase(TestCase):
    def setUp(self) -> None:
        cache.clear()
        create_standard_tariffs(2025)
        self.user = User.objects.create_user(username="operator", password="testpass123")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)


class CalculateBillAPITestCase(BillingAPITestCase):
    url = "/api/billing/calculate/"

    def test_calculate_bill(self) -> None:
        response = self.client.post(
            self.url,
            {
                "usage": "25",
                "customer_type": "Domestic",
                "sewerage_connection": "Yes",
                "meter_size": "0.75",
                "billing_month": "2025-11",
            },
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["success"])
        self.assertEqual(response.data["bill"]["total_bill"], "327.97")
        self.assertTrue(response.data["bill"]["tariff_found"])

    def test_defaults_for_sewerage_and_meter_size(self) -> None:
        response = self.client.post(
            self.url, {"usage": "0", "customer_type": "Domestic", "billing_month": "2025-11"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["bill"]["total_bill"], "45.00")

    def test_missing_tariff_is_not_an_error(self) -> None:
        response = self.client.post(
            self.url, {"usage": "10", "customer_type": "Domestic", "billing_month": "2031-01"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["bill"]["tariff_found"])

    def test_invalid_input(self) -> None:
        response = self.client.post(
            self.url, {"usage": "ten", "customer_type": "Commercial", "billing_month": "11/2025"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("usage", response.data["errors"])
        self.assertIn("customer_type", response.data["errors"])
        self.assertIn("billing_month", response.data["errors"])

    def test_authentication_required(self) -> None:
        response = APIClient().post(self.url, {}, format="json")

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))


class CloseCycleAPITestCase(BillingAPITestCase):
    def url(self, meter_id: str = "BM-001") -> str:
        return f"/api/billing/bulk-meters/{meter_id}/close-cycle/"

    def test_close_then_skip(self) -> None:
        """First call creates the bill, the repeat reports a skip"""
        create_metered_block("BM-001")

        first = self.client.post(self.url(), {}, format="json")
        second = self.client.post(self.url(), {}, format="json")

        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(first.data["closure"]["state"], "closed")
        self.assertEqual(first.data["closure"]["bill_number"], "BILL-202511-BM-001")
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(second.data["closure"]["state"], "skipped")
        self.assertEqual(Bill.objects.count(), 1)

    def test_closure_is_attributed_to_user(self) -> None:
        create_metered_block("BM-001")

        self.client.post(self.url(), {"carry_balance": False}, format="json")

        event = AuditEvent.objects.get(action="billing_cycle_closed")
        self.assertEqual(event.user, self.user)
        self.assertEqual(Bill.objects.get().payment_status, "Paid")

    def test_unknown_meter(self) -> None:
        response = self.client.post(self.url("BM-404"), {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"]["code"], "meter_not_found")
        self.assertFalse(response.data["error"]["state_changed"])

    def test_meter_without_billing_month(self) -> None:
        create_bulk_meter("BM-001", billing_month="")

        response = self.client.post(self.url(), {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(response.data["error"]["code"], "invalid_billing_period")

    def test_concurrent_closure_conflict(self) -> None:
        create_metered_block("BM-001")
        held = DistributedLock("billing-cycle:BM-001", blocking=False)
        self.assertTrue(held.acquire())

        try:
            response = self.client.post(self.url(), {}, format="json")
        finally:
            held.release()

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"]["code"], "cycle_closure_in_progress")
        self.assertFalse(Bill.objects.exists())

    @patch(
        "apps.billing.stores.DjangoBillLedger.exists_for_month",
        side_effect=OperationalError("database is unavailable"),
    )
    def test_ledger_unavailable(self, mock_exists) -> None:
        create_metered_block("BM-001")

        with self.assertLogs("apps.billing.cycle_service", level="ERROR"):
            response = self.client.post(self.url(), {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data["error"]["code"], "cycle_computation_failure")
        self.assertFalse(response.data["error"]["state_changed"])
        self.assertFalse(DistributedLock("billing-cycle:BM-001").is_locked)

    def test_invalid_carry_flag(self) -> None:
        create_metered_block("BM-001")

        response = self.client.post(self.url(), {"carry_balance": "maybe"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class BulkMeterBillsAPITestCase(BillingAPITestCase):
    def test_lists_bills(self) -> None:
        create_metered_block("BM-001")
        self.client.post("/api/billing/bulk-meters/BM-001/close-cycle/", {}, format="json")

        response = self.client.get("/api/billing/bulk-meters/BM-001/bills/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["bills"]), 1)
        bill = response.data["bills"][0]
        self.assertEqual(bill["bulk_meter"], "BM-001")
        self.assertEqual(bill["billing_month"], "2025-11")
        self.assertEqual(Decimal(bill["total_amount_due"]), Decimal("106.43"))

    def test_unknown_meter(self) -> None:
        response = self.client.get("/api/billing/bulk-meters/BM-404/bills/")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class RunBillingCyclesAPITestCase(BillingAPITestCase):
    url = "/api/billing/cycles/run/"

    @patch("apps.api.billing.views.queue_billing_cycle_batch", return_value="task-1")
    def test_queues_batch(self, mock_queue) -> None:
        response = self.client.post(self.url, {"billing_month": "2025-11", "max_workers": 4}, format="json")

        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED)
        self.assertEqual(response.data["task_id"], "task-1")
        mock_queue.assert_called_once_with("2025-11", True, 4)

    @patch("apps.api.billing.views.queue_billing_cycle_batch", return_value="task-2")
    def test_blank_month_means_all_months(self, mock_queue) -> None:
        response = self.client.post(self.url, {"billing_month": ""}, format="json")

        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED)
        mock_queue.assert_called_once_with(None, True, None)

    @patch("apps.api.billing.views.queue_billing_cycle_batch", side_effect=ConnectionError("broker down"))
    def test_queue_unavailable(self, mock_queue) -> None:
        response = self.client.post(self.url, {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

    def test_worker_bounds(self) -> None:
        response = self.client.post(self.url, {"max_workers": 0}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
