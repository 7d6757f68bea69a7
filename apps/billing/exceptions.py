"""
Billing-cycle closure errors.

Every error says which meter it concerns and whether any persistent state
changed before it was raised, so callers know if manual follow-up is needed.
"""

from __future__ import annotations

from typing import Any


class BillingCycleError(Exception):
    code = "billing_cycle_error"

    def __init__(self, message: str, *, meter_id: str, state_changed: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.meter_id = meter_id
        self.state_changed = state_changed

    def as_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "meter_id": self.meter_id,
            "state_changed": self.state_changed,
        }


class CycleClosureInProgress(BillingCycleError):
    """Another closure holds the meter's lock."""

    code = "cycle_closure_in_progress"


class MeterNotFound(BillingCycleError):
    code = "meter_not_found"


class InvalidBillingPeriod(BillingCycleError):
    """The meter has no billing month, or it is not a real ``YYYY-MM`` month."""

    code = "invalid_billing_period"


class CycleComputationFailure(BillingCycleError):
    """Reading the meter, its customers or the ledger failed before anything was written."""

    code = "cycle_computation_failure"


class BillPersistFailure(BillingCycleError):
    """The bill could not be written; nothing was changed."""

    code = "bill_persist_failure"


class MeterUpdateFailure(BillingCycleError):
    """The meter update failed and the bill was deleted again."""

    code = "meter_update_failure"


class CompensationFailure(BillingCycleError):
    """
    The meter update failed and the bill could not be deleted.

    The bill is left without a matching meter update and must be
    reconciled by hand.
    """

    code = "compensation_failure"

    def __init__(self, message: str, *, meter_id: str, bill_idempotency_key: str) -> None:
        super().__init__(message, meter_id=meter_id, state_changed=True)
        self.bill_idempotency_key = bill_idempotency_key

    def as_dict(self) -> dict[str, Any]:
        return {**super().as_dict(), "bill_idempotency_key": self.bill_idempotency_key}
