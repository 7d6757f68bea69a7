import logging
from typing import Any

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from apps.billing.batch import BulkCycleBatchRunner, EntryStatus
from apps.billing.cycle_service import build_default_coordinator
from apps.common.validators import parse_billing_month

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """
    🧾 Close billing cycles for active bulk meters

    Usage:
    python manage.py close_billing_cycles --month 2025-11 --workers 4

    Options:
    --month: Only close meters whose billing month matches (YYYY-MM)
    --meter: Only close the given bulk meter (repeatable)
    --no-carry: Treat the period as settled instead of carrying the balance
    --workers: Concurrent closures (default: BILLING_BATCH_MAX_WORKERS)
    """

    help = "🧾 Close billing cycles for active bulk meters"

    def add_arguments(self, parser: Any) -> None:
        parser.add_argument("--month", type=str, help="Billing month to close (YYYY-MM)")
        parser.add_argument("--meter", action="append", dest="meters", help="Bulk meter key number (repeatable)")
        parser.add_argument(
            "--no-carry", action="store_false", dest="carry_balance", help="Do not carry the balance forward"
        )
        parser.add_argument("--workers", type=int, help="Number of concurrent closures")

    def handle(self, *args: Any, **options: Any) -> None:
        """🎯 Main command handler"""
        month = options.get("month")
        if month:
            try:
                month = parse_billing_month(month).label
            except ValidationError as e:
                raise CommandError(e.messages[0]) from e

        workers = options.get("workers")
        if workers is not None and workers < 1:
            raise CommandError("--workers must be at least 1")

        self.stdout.write(self.style.SUCCESS(f"🧾 Closing billing cycles for {month or 'all months'}..."))

        runner = BulkCycleBatchRunner(build_default_coordinator(), max_workers=workers)
        report = runner.run(month, options["carry_balance"], meter_ids=options.get("meters"))

        for entry in report.entries:
            if entry.status is EntryStatus.CLOSED:
                self.stdout.write(f"  ✅ {entry.meter_id}: {entry.bill_number}")
            elif entry.status is EntryStatus.SKIPPED:
                self.stdout.write(f"  ⏭️ {entry.meter_id}: {entry.message or 'already billed'}")
            else:
                self.stdout.write(self.style.WARNING(f"  ❌ {entry.meter_id}: [{entry.error_code}] {entry.message}"))

        self.stdout.write(f"  ✅ Closed: {report.closed}")
        self.stdout.write(f"  ⏭️ Skipped: {report.skipped}")
        self.stdout.write(f"  ❌ Failed: {report.failed}")

        if report.needs_review:
            self.stdout.write(
                self.style.ERROR(f"🚨 Manual reconciliation required for: {', '.join(report.needs_review)}")
            )

        self.stdout.write(self.style.SUCCESS("✅ Billing cycle closure completed!"))
