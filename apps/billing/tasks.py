"""
Billing background tasks.

This module contains Django-Q2 tasks for billing-cycle closure, both for a
single bulk meter and for the monthly batch over all active meters.
"""

from __future__ import annotations

import logging
from typing import Any

from django_q.tasks import async_task

from .batch import BulkCycleBatchRunner
from .cycle_service import build_default_coordinator

logger = logging.getLogger(__name__)

# Task configuration
BATCH_TASK_TIMEOUT = 3600  # 1 hour
SINGLE_TASK_TIMEOUT = 300  # 5 minutes


def close_billing_cycle(meter_id: str, carry_balance: bool = True) -> dict[str, Any]:
    """
    Close the current billing cycle of one bulk meter.

    Returns:
        Dictionary with the closure outcome or the error details
    """
    logger.info(f"🧾 [BillingTask] Closing billing cycle for {meter_id}")

    result = build_default_coordinator().close_cycle(meter_id, carry_balance)
    if result.is_err():
        error = result.unwrap_err()
        return {"success": False, "error": error.as_dict()}

    return {"success": True, "closure": result.unwrap().as_dict()}


def run_billing_cycle_batch(
    billing_month: str | None = None,
    carry_balance: bool = True,
    max_workers: int | None = None,
) -> dict[str, Any]:
    """
    Close billing cycles for all active bulk meters.

    Runs monthly after readings are in. Meters already billed for their
    month are skipped, so the task is safe to re-run.

    Returns:
        Dictionary with per-meter results and totals
    """
    logger.info(f"🏭 [BillingTask] Starting billing cycle batch for {billing_month or 'all months'}")

    try:
        runner = BulkCycleBatchRunner(build_default_coordinator(), max_workers=max_workers)
        report = runner.run(billing_month, carry_balance)
    except Exception as e:
        logger.exception(f"🔥 [BillingTask] Billing cycle batch crashed: {e}")
        return {"success": False, "error": str(e)}

    return {"success": report.failed == 0, **report.as_dict()}


# ===============================================================================
# ASYNC WRAPPERS
# ===============================================================================


def queue_billing_cycle_batch(
    billing_month: str | None = None,
    carry_balance: bool = True,
    max_workers: int | None = None,
) -> str:
    """Queue the batch on the Django-Q cluster; returns the task id."""
    return async_task(
        "apps.billing.tasks.run_billing_cycle_batch",
        billing_month,
        carry_balance,
        max_workers,
        timeout=BATCH_TASK_TIMEOUT,
        task_name=f"billing-cycle-batch-{billing_month or 'all'}",
    )


def queue_billing_cycle_closure(meter_id: str, carry_balance: bool = True) -> str:
    """Queue one meter's closure; returns the task id."""
    return async_task(
        "apps.billing.tasks.close_billing_cycle",
        meter_id,
        carry_balance,
        timeout=SINGLE_TASK_TIMEOUT,
        task_name=f"billing-cycle-{meter_id}",
    )
