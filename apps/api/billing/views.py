# ===============================================================================
# BILLING API VIEWS - CALCULATION AND CYCLE CLOSURE 💧
# ===============================================================================

import logging

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.request import Request
from rest_framework.response import Response

from apps.billing.cycle_service import build_default_coordinator
from apps.billing.exceptions import (
    BillingCycleError,
    CycleClosureInProgress,
    InvalidBillingPeriod,
    MeterNotFound,
)
from apps.billing.models import Bill
from apps.billing.tasks import queue_billing_cycle_batch
from apps.metering.models import BulkMeter
from apps.tariffs.apps import tariff_repository
from apps.tariffs.services import BillCalculator

from .serializers import (
    BillCalculationRequestSerializer,
    BillSerializer,
    CloseCycleRequestSerializer,
    RunCyclesRequestSerializer,
)

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[BillingCycleError], int] = {
    CycleClosureInProgress: status.HTTP_409_CONFLICT,
    MeterNotFound: status.HTTP_404_NOT_FOUND,
    InvalidBillingPeriod: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def _error_status(error: BillingCycleError) -> int:
    return ERROR_STATUS_CODES.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)


# ===============================================================================
# BILL CALCULATION API 💰
# ===============================================================================


@api_view(["POST"])
def calculate_bill_api(request: Request) -> Response:
    """
    💰 Price a usage figure against the stored tariffs

    POST /api/billing/calculate/

    Request Body:
    {
        "usage": "25.00",
        "customer_type": "Domestic",
        "sewerage_connection": "Yes",
        "meter_size": "0.75",
        "billing_month": "2025-11"
    }

    A missing tariff yields an all-zero result with "tariff_found": false.
    """
    serializer = BillCalculationRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({"success": False, "errors": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    calculator = BillCalculator(tariff_repository())
    result = calculator.calculate(
        data["usage"],
        data["customer_type"],
        data["sewerage_connection"],
        data["meter_size"],
        data["billing_month"],
    )
    return Response({"success": True, "bill": result.as_dict()})


# ===============================================================================
# BILLING CYCLE APIS 🧾
# ===============================================================================


@api_view(["POST"])
def close_cycle_api(request: Request, meter_id: str) -> Response:
    """
    🧾 Close the current billing cycle of one bulk meter

    POST /api/billing/bulk-meters/<meter_id>/close-cycle/

    Request Body:
    {
        "carry_balance": true   // optional, default true
    }

    Errors carry "code" and "state_changed"; state_changed=true means the
    bill needs manual reconciliation.
    """
    serializer = CloseCycleRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({"success": False, "errors": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

    user = request.user if request.user.is_authenticated else None
    result = build_default_coordinator().close_cycle(
        meter_id, serializer.validated_data["carry_balance"], user=user
    )

    if result.is_err():
        error = result.unwrap_err()
        logger.warning(f"⚠️ [Billing API] Cycle closure for {meter_id} failed: {error.code}")
        return Response({"success": False, "error": error.as_dict()}, status=_error_status(error))

    closure = result.unwrap()
    return Response(
        {"success": True, "closure": closure.as_dict()},
        status=status.HTTP_200_OK if closure.skipped else status.HTTP_201_CREATED,
    )


@api_view(["GET"])
def bulk_meter_bills_api(request: Request, meter_id: str) -> Response:
    """
    📄 Bills issued for one bulk meter, newest month first

    GET /api/billing/bulk-meters/<meter_id>/bills/
    """
    if not BulkMeter.objects.filter(pk=meter_id).exists():
        return Response({"success": False, "error": "Bulk meter not found"}, status=status.HTTP_404_NOT_FOUND)

    bills = Bill.objects.filter(bulk_meter_id=meter_id).order_by("-billing_month")
    return Response({"success": True, "bills": BillSerializer(bills, many=True).data})


@api_view(["POST"])
def run_billing_cycles_api(request: Request) -> Response:
    """
    🏭 Queue a billing-cycle batch on the task cluster

    POST /api/billing/cycles/run/

    Request Body:
    {
        "billing_month": "2025-11",   // optional
        "carry_balance": true,        // optional
        "max_workers": 4              // optional
    }
    """
    serializer = RunCyclesRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({"success": False, "errors": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    billing_month = data.get("billing_month") or None
    try:
        task_id = queue_billing_cycle_batch(billing_month, data["carry_balance"], data.get("max_workers"))
    except Exception as e:
        logger.error(f"🔥 [Billing API] Could not queue billing batch: {e}")
        return Response(
            {"success": False, "error": "Task queue temporarily unavailable"},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    logger.info(f"🏭 [Billing API] Queued billing batch {task_id} for {billing_month or 'all months'}")
    return Response(
        {"success": True, "task_id": task_id, "billing_month": billing_month},
        status=status.HTTP_202_ACCEPTED,
    )
