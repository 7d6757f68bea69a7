"""
Billing-cycle closure for HydroBill Platform.

Closing a cycle writes two things that cannot share one transaction in
general: a new Bill and the bulk meter's rolled-forward readings/balance.
The coordinator runs these as a saga:

    idle -> computing -> bill_persisted -> closed
                 |              |
                 v              +--> compensated_rollback  (bill deleted)
              aborted / skipped +--> needs_reconciliation  (delete failed)

Only one closure per meter runs at a time, enforced with a cache-backed
distributed lock keyed by meter id.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from django.core.exceptions import ValidationError
from django.utils import timezone

from apps.audit.services import AuditService
from apps.common.locks import DistributedLock
from apps.common.logging import log_context
from apps.common.types import Err, Ok, Result
from apps.common.validators import BillingPeriod, parse_billing_month
from apps.metering.models import PaymentStatus
from apps.tariffs.apps import tariff_repository
from apps.tariffs.repository import TariffScheduleRepository
from apps.tariffs.services import BillCalculationResult, BillCalculator

from . import config as billing_config
from .exceptions import (
    BillingCycleError,
    BillPersistFailure,
    CompensationFailure,
    CycleClosureInProgress,
    CycleComputationFailure,
    InvalidBillingPeriod,
    MeterNotFound,
    MeterUpdateFailure,
)
from .reconciliation import DifferenceUsagePolicy, Reconciliation
from .stores import (
    AssociatedCustomerLookup,
    BillAlreadyExists,
    BillDraft,
    BillLedger,
    DjangoBillLedger,
    DjangoBulkMeterStore,
    DjangoCustomerLookup,
    MeterAccountNotFound,
    MeterAccountStore,
    MeterSnapshot,
)

logger = logging.getLogger(__name__)

LOCK_NAME_PREFIX = "billing-cycle"


# ===============================================================================
# STATE MACHINE
# ===============================================================================


class CycleState(str, Enum):
    IDLE = "idle"
    COMPUTING = "computing"
    BILL_PERSISTED = "bill_persisted"
    CLOSED = "closed"
    SKIPPED = "skipped"
    ABORTED = "aborted"
    COMPENSATED_ROLLBACK = "compensated_rollback"
    NEEDS_RECONCILIATION = "needs_reconciliation"


ALLOWED_TRANSITIONS: dict[CycleState, frozenset[CycleState]] = {
    CycleState.IDLE: frozenset({CycleState.COMPUTING, CycleState.ABORTED}),
    CycleState.COMPUTING: frozenset({CycleState.BILL_PERSISTED, CycleState.SKIPPED, CycleState.ABORTED}),
    CycleState.BILL_PERSISTED: frozenset(
        {CycleState.CLOSED, CycleState.COMPENSATED_ROLLBACK, CycleState.NEEDS_RECONCILIATION}
    ),
}

TERMINAL_STATES = frozenset(
    {
        CycleState.CLOSED,
        CycleState.SKIPPED,
        CycleState.ABORTED,
        CycleState.COMPENSATED_ROLLBACK,
        CycleState.NEEDS_RECONCILIATION,
    }
)


class IllegalCycleTransition(RuntimeError):
    pass


class CycleStateMachine:
    """Tracks one closure's progress and refuses transitions the saga does not define."""

    def __init__(self, meter_id: str) -> None:
        self.meter_id = meter_id
        self.state = CycleState.IDLE
        self.history: list[CycleState] = [CycleState.IDLE]

    def transition(self, target: CycleState) -> None:
        if target not in ALLOWED_TRANSITIONS.get(self.state, frozenset()):
            raise IllegalCycleTransition(f"{self.meter_id}: {self.state.value} -> {target.value} is not allowed")
        logger.debug(f"🔁 [BillingCycle] {self.meter_id}: {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


# ===============================================================================
# OUTCOME
# ===============================================================================


@dataclass(frozen=True)
class CycleClosure:
    """Successful (closed) or idempotently skipped closure of one meter."""

    meter_id: str
    billing_month: str
    state: CycleState
    bill_number: str | None = None
    difference_usage: Decimal | None = None
    bill_total: Decimal | None = None
    total_payable: Decimal | None = None
    outstanding_balance: Decimal | None = None
    payment_status: str | None = None
    history: tuple[CycleState, ...] = field(default_factory=tuple)

    @property
    def skipped(self) -> bool:
        return self.state is CycleState.SKIPPED

    def as_dict(self) -> dict[str, Any]:
        def text(value: Decimal | None) -> str | None:
            return None if value is None else str(value)

        return {
            "meter_id": self.meter_id,
            "billing_month": self.billing_month,
            "state": self.state.value,
            "bill_number": self.bill_number,
            "difference_usage": text(self.difference_usage),
            "bill_total": text(self.bill_total),
            "total_payable": text(self.total_payable),
            "outstanding_balance": text(self.outstanding_balance),
            "payment_status": self.payment_status,
            "history": [state.value for state in self.history],
        }


def cycle_idempotency_key(meter_id: str, billing_month: str) -> str:
    return f"cycle:{meter_id}:{billing_month}"


def bill_number_for(meter_id: str, period: BillingPeriod) -> str:
    return f"BILL-{period.compact}-{meter_id}"


def default_lock_factory(meter_id: str) -> DistributedLock:
    return DistributedLock(
        f"{LOCK_NAME_PREFIX}:{meter_id}",
        timeout=billing_config.get_cycle_lock_timeout(),
        blocking=True,
        blocking_timeout=billing_config.get_cycle_lock_wait(),
    )


# ===============================================================================
# COORDINATOR
# ===============================================================================


class BillingCycleCoordinator:
    """
    🧾 Closes the billing cycle of one bulk meter.

    Returns ``Ok(CycleClosure)`` when the cycle was closed or was already
    billed, otherwise ``Err(BillingCycleError)``. Errors are returned, not
    raised; only illegal state transitions escape.
    """

    def __init__(  # noqa: PLR0913
        self,
        calculator: BillCalculator,
        *,
        policy: DifferenceUsagePolicy | None = None,
        meters: MeterAccountStore | None = None,
        ledger: BillLedger | None = None,
        customers: AssociatedCustomerLookup | None = None,
        lock_factory: Callable[[str], Any] | None = None,
    ) -> None:
        self.calculator = calculator
        self.policy = policy or DifferenceUsagePolicy()
        self.meters = meters or DjangoBulkMeterStore()
        self.ledger = ledger or DjangoBillLedger()
        self.customers = customers or DjangoCustomerLookup()
        self.lock_factory = lock_factory or default_lock_factory

    def close_cycle(
        self, meter_id: str, carry_balance: bool = True, *, user: Any | None = None
    ) -> Result[CycleClosure, BillingCycleError]:
        machine = CycleStateMachine(meter_id)

        with log_context(meter_id=meter_id):
            lock = self.lock_factory(meter_id)
            if not lock.acquire():
                machine.transition(CycleState.ABORTED)
                logger.warning(f"⚠️ [BillingCycle] {meter_id}: another closure is in progress")
                return Err(
                    CycleClosureInProgress(f"Billing cycle closure already running for {meter_id}", meter_id=meter_id)
                )
            try:
                return self._close_locked(machine, meter_id, carry_balance, user)
            finally:
                lock.release()

    # ---------------------------------------------------------------------------
    # Saga steps
    # ---------------------------------------------------------------------------

    def _close_locked(
        self, machine: CycleStateMachine, meter_id: str, carry_balance: bool, user: Any | None
    ) -> Result[CycleClosure, BillingCycleError]:
        machine.transition(CycleState.COMPUTING)

        try:
            snapshot = self.meters.get_latest(meter_id)
        except MeterAccountNotFound:
            machine.transition(CycleState.ABORTED)
            logger.warning(f"⚠️ [BillingCycle] {meter_id}: meter not found")
            return Err(MeterNotFound(f"Bulk meter {meter_id} not found", meter_id=meter_id))
        except Exception as e:
            return self._computation_failed(machine, meter_id, "reading the meter", e)

        try:
            period = parse_billing_month(snapshot.billing_month)
        except ValidationError as e:
            machine.transition(CycleState.ABORTED)
            logger.warning(f"⚠️ [BillingCycle] {meter_id}: invalid billing month {snapshot.billing_month!r}")
            return Err(InvalidBillingPeriod(e.messages[0], meter_id=meter_id))

        try:
            already_billed = self.ledger.exists_for_month(meter_id, period.label)
        except Exception as e:
            return self._computation_failed(machine, meter_id, "checking the bill ledger", e)
        if already_billed:
            return Ok(self._skipped(machine, snapshot, period))

        try:
            reconciliation = self.policy.evaluate(
                max(snapshot.usage, Decimal("0")), sum(self.customers.individual_usages(meter_id), Decimal("0"))
            )
            bill = self.calculator.calculate(
                reconciliation.difference_usage,
                snapshot.customer_type,
                snapshot.sewerage_connection,
                snapshot.meter_size,
                period.label,
            )
        except Exception as e:
            return self._computation_failed(machine, meter_id, f"pricing {period.label}", e)

        if not bill.tariff_found:
            logger.warning(f"⚠️ [BillingCycle] {meter_id}: closing {period.label} with a zero-priced bill")

        total_payable = bill.total_bill + snapshot.outstanding_balance
        next_status = PaymentStatus.UNPAID if carry_balance else PaymentStatus.PAID
        draft = self._draft_bill(snapshot, period, reconciliation, bill, total_payable, next_status)

        try:
            bill_number = self.ledger.append(draft)
        except BillAlreadyExists:
            logger.info(f"⏭️ [BillingCycle] {meter_id}: bill for {period.label} appeared concurrently")
            return Ok(self._skipped(machine, snapshot, period))
        except Exception as e:
            machine.transition(CycleState.ABORTED)
            logger.error(
                f"🔥 [BillingCycle] {meter_id}: failed to persist bill for {period.label}: {e}", exc_info=True
            )
            return Err(BillPersistFailure(f"Could not persist bill {draft.bill_number}: {e}", meter_id=meter_id))

        machine.transition(CycleState.BILL_PERSISTED)

        new_balance = total_payable if carry_balance else Decimal("0")
        try:
            self.meters.close_cycle_update(
                meter_id,
                expected_version=snapshot.version,
                previous_reading=snapshot.current_reading,
                outstanding_balance=new_balance,
                payment_status=next_status,
            )
        except Exception as e:
            logger.error(
                f"🔥 [BillingCycle] {meter_id}: meter update failed after bill {bill_number}: {e}", exc_info=True
            )
            return self._compensate(machine, draft, e)

        machine.transition(CycleState.CLOSED)
        closure = CycleClosure(
            meter_id=meter_id,
            billing_month=period.label,
            state=machine.state,
            bill_number=bill_number,
            difference_usage=reconciliation.difference_usage,
            bill_total=bill.total_bill,
            total_payable=total_payable,
            outstanding_balance=new_balance,
            payment_status=next_status,
            history=tuple(machine.history),
        )
        logger.info(
            f"✅ [BillingCycle] {meter_id}: closed {period.label} with {bill_number} "
            f"(difference {reconciliation.difference_usage} m3, payable {total_payable})"
        )
        self._audit(
            "billing_cycle_closed",
            description=f"Billing cycle {period.label} closed for {meter_id}",
            metadata={**closure.as_dict(), "carry_balance": carry_balance, "corrected": reconciliation.corrected},
            user=user,
        )
        return Ok(closure)

    def _compensate(
        self, machine: CycleStateMachine, draft: BillDraft, cause: Exception
    ) -> Result[CycleClosure, BillingCycleError]:
        """Delete the bill written by this closure, retrying a bounded number of times."""
        meter_id = draft.meter_id
        attempts = billing_config.get_compensation_attempts()
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                deleted = self.ledger.delete(draft.idempotency_key)
            except Exception as e:
                last_error = e
                logger.warning(
                    f"⚠️ [BillingCycle] {meter_id}: compensating delete attempt {attempt}/{attempts} failed: {e}"
                )
                continue

            machine.transition(CycleState.COMPENSATED_ROLLBACK)
            logger.warning(
                f"↩️ [BillingCycle] {meter_id}: bill {draft.bill_number} "
                f"{'deleted' if deleted else 'already absent'} after meter update failure"
            )
            self._audit(
                "billing_cycle_compensated",
                description=f"Bill {draft.bill_number} rolled back: {cause}",
                metadata={"meter_id": meter_id, "bill_number": draft.bill_number, "attempts": attempt},
            )
            return Err(
                MeterUpdateFailure(
                    f"Meter {meter_id} could not be updated ({cause}); bill {draft.bill_number} was rolled back",
                    meter_id=meter_id,
                )
            )

        machine.transition(CycleState.NEEDS_RECONCILIATION)
        logger.critical(
            f"🚨 [BillingCycle] {meter_id}: bill {draft.bill_number} left without meter update; "
            f"compensation failed after {attempts} attempts ({last_error}). Manual reconciliation required."
        )
        self._audit(
            "billing_cycle_compensation_failed",
            description=f"Bill {draft.bill_number} could not be rolled back after meter update failure",
            metadata={
                "meter_id": meter_id,
                "bill_number": draft.bill_number,
                "idempotency_key": draft.idempotency_key,
                "meter_update_error": str(cause),
                "compensation_error": str(last_error),
                "attempts": attempts,
            },
        )
        return Err(
            CompensationFailure(
                f"Bill {draft.bill_number} persisted but meter {meter_id} was not updated and the bill "
                f"could not be deleted: {last_error}",
                meter_id=meter_id,
                bill_idempotency_key=draft.idempotency_key,
            )
        )

    # ---------------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------------

    def _computation_failed(
        self, machine: CycleStateMachine, meter_id: str, step: str, cause: Exception
    ) -> Err[BillingCycleError]:
        machine.transition(CycleState.ABORTED)
        logger.error(f"🔥 [BillingCycle] {meter_id}: failed while {step}: {cause}", exc_info=True)
        return Err(
            CycleComputationFailure(f"Billing cycle for {meter_id} failed while {step}: {cause}", meter_id=meter_id)
        )

    def _skipped(self, machine: CycleStateMachine, snapshot: MeterSnapshot, period: BillingPeriod) -> CycleClosure:
        machine.transition(CycleState.SKIPPED)
        logger.info(f"⏭️ [BillingCycle] {snapshot.meter_id}: {period.label} already billed, skipping")
        return CycleClosure(
            meter_id=snapshot.meter_id,
            billing_month=period.label,
            state=machine.state,
            bill_number=bill_number_for(snapshot.meter_id, period),
            outstanding_balance=snapshot.outstanding_balance,
            payment_status=snapshot.payment_status,
            history=tuple(machine.history),
        )

    def _draft_bill(  # noqa: PLR0913
        self,
        snapshot: MeterSnapshot,
        period: BillingPeriod,
        reconciliation: Reconciliation,
        bill: BillCalculationResult,
        total_payable: Decimal,
        payment_status: str,
    ) -> BillDraft:
        generated_on = timezone.localdate()
        return BillDraft(
            idempotency_key=cycle_idempotency_key(snapshot.meter_id, period.label),
            bill_number=bill_number_for(snapshot.meter_id, period),
            meter_id=snapshot.meter_id,
            billing_month=period.label,
            period_start=period.start,
            period_end=period.end,
            due_date=period.end + timedelta(days=billing_config.get_due_days()),
            previous_reading=snapshot.previous_reading,
            current_reading=snapshot.current_reading,
            usage_m3=reconciliation.bulk_usage,
            individual_usage_m3=reconciliation.individual_usage,
            difference_usage=reconciliation.difference_usage,
            base_water_charge=bill.base_water_charge,
            maintenance_fee=bill.maintenance_fee,
            sanitation_fee=bill.sanitation_fee,
            sewerage_charge=bill.sewerage_charge,
            meter_rent=bill.meter_rent,
            vat_amount=bill.vat_amount,
            total_amount_due=bill.total_bill,
            balance_carried_forward=snapshot.outstanding_balance,
            total_payable=total_payable,
            payment_status=payment_status,
            notes=f"Bill generated on {generated_on.isoformat()}. Total payable was {total_payable}.",
            meta={
                "raw_difference_usage": str(reconciliation.raw_difference),
                "difference_corrected": reconciliation.corrected,
                "tariff_found": bill.tariff_found,
                "water_tier_breakdown": [band.as_dict() for band in bill.water_tier_breakdown],
                "sewerage_tier_breakdown": [band.as_dict() for band in bill.sewerage_tier_breakdown],
            },
        )

    def _audit(self, event_type: str, **kwargs: Any) -> None:
        """Record an audit event; the closure outcome stands even if the audit write fails."""
        try:
            AuditService.log_simple_event(event_type, **kwargs)
        except Exception:
            logger.error(f"🔥 [BillingCycle] Audit event {event_type} could not be written", exc_info=True)


def build_default_coordinator(repository: TariffScheduleRepository | None = None) -> BillingCycleCoordinator:
    """Coordinator wired to the database stores and, by default, the shared tariff repository."""
    return BillingCycleCoordinator(BillCalculator(repository or tariff_repository()))
