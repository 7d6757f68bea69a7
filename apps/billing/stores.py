"""
Persistence collaborators used by billing-cycle closure.

The coordinator depends only on the Protocols below; the Django classes are
the production implementations. Each write runs in its own transaction.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Protocol

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from apps.metering.models import BulkMeter, IndividualCustomer

from .models import Bill

logger = logging.getLogger(__name__)


class MeterAccountNotFound(LookupError):
    pass


class StaleMeterState(RuntimeError):
    """The meter changed since it was read; the update was not applied."""


class BillAlreadyExists(RuntimeError):
    """A bill with the same meter/month or idempotency key is already stored."""


# ===============================================================================
# VALUE OBJECTS
# ===============================================================================


@dataclass(frozen=True)
class MeterSnapshot:
    """Meter account state as read at the start of a closure."""

    meter_id: str
    previous_reading: Decimal
    current_reading: Decimal
    outstanding_balance: Decimal
    payment_status: str
    billing_month: str
    customer_type: str
    sewerage_connection: str
    meter_size: Decimal
    version: int

    @property
    def usage(self) -> Decimal:
        return self.current_reading - self.previous_reading


@dataclass(frozen=True)
class BillDraft:
    """Everything needed to append one bill to the ledger."""

    idempotency_key: str
    bill_number: str
    meter_id: str
    billing_month: str
    period_start: date
    period_end: date
    due_date: date
    previous_reading: Decimal
    current_reading: Decimal
    usage_m3: Decimal
    individual_usage_m3: Decimal
    difference_usage: Decimal
    base_water_charge: Decimal
    maintenance_fee: Decimal
    sanitation_fee: Decimal
    sewerage_charge: Decimal
    meter_rent: Decimal
    vat_amount: Decimal
    total_amount_due: Decimal
    balance_carried_forward: Decimal
    total_payable: Decimal
    payment_status: str
    notes: str = ""
    meta: dict[str, Any] = field(default_factory=dict)


# ===============================================================================
# PROTOCOLS
# ===============================================================================


class MeterAccountStore(Protocol):
    def get_latest(self, meter_id: str) -> MeterSnapshot: ...

    def close_cycle_update(
        self,
        meter_id: str,
        *,
        expected_version: int,
        previous_reading: Decimal,
        outstanding_balance: Decimal,
        payment_status: str,
    ) -> None: ...


class BillLedger(Protocol):
    def append(self, draft: BillDraft) -> str: ...

    def delete(self, idempotency_key: str) -> bool: ...

    def exists_for_month(self, meter_id: str, billing_month: str) -> bool: ...


class AssociatedCustomerLookup(Protocol):
    def individual_usages(self, bulk_meter_id: str) -> list[Decimal]: ...


# ===============================================================================
# DJANGO IMPLEMENTATIONS
# ===============================================================================


class DjangoBulkMeterStore:
    """MeterAccountStore over BulkMeter rows with version-checked updates."""

    def get_latest(self, meter_id: str) -> MeterSnapshot:
        try:
            meter = BulkMeter.objects.get(pk=meter_id)
        except BulkMeter.DoesNotExist as e:
            raise MeterAccountNotFound(meter_id) from e

        return MeterSnapshot(
            meter_id=meter.pk,
            previous_reading=meter.previous_reading,
            current_reading=meter.current_reading,
            outstanding_balance=meter.outstanding_balance,
            payment_status=meter.payment_status,
            billing_month=meter.billing_month,
            customer_type=meter.customer_type,
            sewerage_connection=meter.sewerage_connection,
            meter_size=meter.meter_size,
            version=meter.version,
        )

    def close_cycle_update(
        self,
        meter_id: str,
        *,
        expected_version: int,
        previous_reading: Decimal,
        outstanding_balance: Decimal,
        payment_status: str,
    ) -> None:
        with transaction.atomic():
            updated = BulkMeter.objects.filter(pk=meter_id, version=expected_version).update(
                previous_reading=previous_reading,
                outstanding_balance=outstanding_balance,
                payment_status=payment_status,
                version=F("version") + 1,
                updated_at=timezone.now(),
            )
            if updated:
                return
            if not BulkMeter.objects.filter(pk=meter_id).exists():
                raise MeterAccountNotFound(meter_id)
            raise StaleMeterState(f"Bulk meter {meter_id} changed since version {expected_version}")


class DjangoBillLedger:
    """BillLedger over the Bill table."""

    def append(self, draft: BillDraft) -> str:
        values = asdict(draft)
        values["bulk_meter_id"] = values.pop("meter_id")
        try:
            with transaction.atomic():
                bill = Bill.objects.create(**values)
        except IntegrityError as e:
            if Bill.objects.filter(idempotency_key=draft.idempotency_key).exists() or self.exists_for_month(
                draft.meter_id, draft.billing_month
            ):
                raise BillAlreadyExists(draft.idempotency_key) from e
            raise
        return bill.bill_number

    def delete(self, idempotency_key: str) -> bool:
        """Delete the bill with ``idempotency_key``; False when it is already gone."""
        with transaction.atomic():
            deleted, _ = Bill.objects.filter(idempotency_key=idempotency_key).delete()
        return deleted > 0

    def exists_for_month(self, meter_id: str, billing_month: str) -> bool:
        return Bill.objects.filter(bulk_meter_id=meter_id, billing_month=billing_month).exists()


class DjangoCustomerLookup:
    """AssociatedCustomerLookup over IndividualCustomer rows."""

    def individual_usages(self, bulk_meter_id: str) -> list[Decimal]:
        rows = IndividualCustomer.objects.filter(assigned_bulk_meter_id=bulk_meter_id).values_list(
            "previous_reading", "current_reading"
        )
        return [current - previous for previous, current in rows]
