"""
Tariff signals for HydroBill Platform
Keep the shared schedule repository in step with the TariffRecord table.
"""

from typing import Any

from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .apps import tariff_repository
from .models import TariffRecord


@receiver(post_save, sender=TariffRecord)
@receiver(post_delete, sender=TariffRecord)
def invalidate_tariff_schedules(sender: type[TariffRecord], instance: TariffRecord, **kwargs: Any) -> None:
    repository = tariff_repository()
    repository.invalidate()
    # A reload racing the open transaction may cache the old rows
    transaction.on_commit(repository.invalidate)
