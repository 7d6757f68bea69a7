"""
TariffSchedule repository.

Loads every stored tariff row once, keeps the normalized schedules in memory
for the lifetime of the repository instance, and notifies subscribers after
each refresh. There is no module-level instance: services take the repository
they read from as an argument. Inside Django the tariffs app config owns the
one long-lived repository and drops its cache whenever a tariff row changes.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any, Protocol

from .schedule import TariffSchedule, schedule_from_row

logger = logging.getLogger(__name__)

ScheduleKey = tuple[str, int]
ScheduleSet = Mapping[ScheduleKey, TariffSchedule]
ScheduleListener = Callable[[ScheduleSet], None]


class TariffStore(Protocol):
    """Read-only source of raw tariff rows."""

    def load_all(self) -> Iterable[Any]: ...


class DjangoTariffStore:
    """TariffStore backed by the TariffRecord table."""

    def load_all(self) -> Iterable[Any]:
        from .models import TariffRecord  # noqa: PLC0415

        return list(TariffRecord.objects.all())


class TariffScheduleRepository:
    """
    💧 Cached lookup of tariff schedules by (customer type, year).

    Thread-safe: the cache is swapped atomically under a lock and the
    schedules themselves are immutable.
    """

    def __init__(self, store: TariffStore | None = None) -> None:
        self._store = store or DjangoTariffStore()
        self._lock = threading.RLock()
        self._schedules: ScheduleSet | None = None
        self._listeners: list[ScheduleListener] = []

    # ---------------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------------

    def get(self, customer_type: str, year: int) -> TariffSchedule | None:
        """Return the schedule for ``(customer_type, year)`` or None when none is stored."""
        return self._loaded().get((customer_type, int(year)))

    def all(self) -> ScheduleSet:
        return self._loaded()

    @property
    def is_loaded(self) -> bool:
        return self._schedules is not None

    # ---------------------------------------------------------------------------
    # Commands
    # ---------------------------------------------------------------------------

    def refresh(self) -> ScheduleSet:
        """Reload every schedule from the store and notify subscribers."""
        schedules = self._load()
        with self._lock:
            self._schedules = schedules
            listeners = list(self._listeners)

        logger.info(f"💧 [Tariffs] Loaded {len(schedules)} tariff schedules")
        for listener in listeners:
            try:
                listener(schedules)
            except Exception:
                logger.exception(f"🔥 [Tariffs] Schedule listener {listener!r} failed")
        return schedules

    def invalidate(self) -> None:
        """Drop the cached schedules; the next query reloads them. Subscribers are not notified."""
        with self._lock:
            self._schedules = None
        logger.debug("💧 [Tariffs] Schedule cache invalidated")

    # ---------------------------------------------------------------------------
    # Observers
    # ---------------------------------------------------------------------------

    def subscribe(self, listener: ScheduleListener) -> Callable[[], None]:
        """
        Register ``listener`` to receive the schedule set after every refresh.

        Returns a callable that unsubscribes the listener; calling it more
        than once is harmless.
        """
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: ScheduleListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ---------------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------------

    def _loaded(self) -> ScheduleSet:
        schedules = self._schedules
        if schedules is not None:
            return schedules

        with self._lock:
            if self._schedules is None:
                self._schedules = self._load()
            return self._schedules

    def _load(self) -> ScheduleSet:
        schedules: dict[ScheduleKey, TariffSchedule] = {}
        for row in self._store.load_all():
            try:
                schedule = schedule_from_row(row)
            except (TypeError, ValueError) as e:
                logger.error(f"🔥 [Tariffs] Skipping unreadable tariff row {row!r}: {e}")
                continue
            if not schedule.tiers:
                logger.error(f"🔥 [Tariffs] Tariff {schedule.customer_type}/{schedule.year} has no valid tiers")
            schedules[schedule.key] = schedule
        return MappingProxyType(schedules)
