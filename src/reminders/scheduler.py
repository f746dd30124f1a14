"""Recurring reminder scheduling.

Owns at most one pending timer per (alert, user) key. Pending timers sit
in a time-ordered heap serviced by ``run_pending()``; a background loop
(``start()``/``stop()``) calls it as timers come due. Fire times follow a
fixed grid anchored at the alert's creation time, so rescheduling never
drifts with the moment it happens to be called.
"""

import asyncio
import contextlib
import heapq
import itertools
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from src.logging_config.context import ReminderContext
from src.reminders.clock import Clock, utc_now
from src.reminders.config import (
    DEFAULT_REMINDER_CONFIG,
    Eligibility,
    ReminderConfig,
    ReminderEventType,
)
from src.reminders.dispatcher import NotificationDispatcher
from src.reminders.models import Alert, Preference, ReminderEvent, ReminderKey, User
from src.reminders.preferences import PreferenceStore

logger = logging.getLogger(__name__)

Observer = Callable[[ReminderEvent], None]


@dataclass(eq=False)
class ReminderTimer:
    """A pending reminder. Cancelled timers stay in the heap until popped."""
    key: ReminderKey
    alert: Alert
    user: User
    fire_at: datetime
    cancelled: bool = False


class Subscription:
    """Handle returned by ``add_observer``.

    Example:
        with scheduler.add_observer(events.append):
            await scheduler.schedule_reminder(alert, user)
    """

    def __init__(self, scheduler: "ReminderScheduler", observer: Observer):
        self._scheduler = scheduler
        self._observer = observer
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._scheduler.remove_observer(self._observer)
            self._active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cancel()


class ReminderScheduler:
    """Schedules, fires and reschedules reminders.

    Calls for the same key are serialized by a per-key lock, so a
    schedule, the trigger it causes, and the reschedule that follows form
    a strict sequence. Calls for different keys are independent.

    Example:
        scheduler = ReminderScheduler(dispatcher, preferences)
        scheduler.add_observer(lambda event: print(event.to_dict()))
        await scheduler.schedule_reminder(alert, user)
        scheduler.start()
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        preferences: PreferenceStore,
        clock: Optional[Clock] = None,
        config: Optional[ReminderConfig] = None,
    ):
        self.config = config or DEFAULT_REMINDER_CONFIG
        self._dispatcher = dispatcher
        self._preferences = preferences
        self._clock = clock or utc_now

        self._timers: dict[ReminderKey, ReminderTimer] = {}
        self._queue: list[tuple[datetime, int, ReminderTimer]] = []
        self._seq = itertools.count()
        self._locks: dict[ReminderKey, asyncio.Lock] = {}
        self._lock_users: dict[ReminderKey, int] = {}
        self._in_flight: set[ReminderKey] = set()
        self._cleared_in_flight: set[ReminderKey] = set()
        self._observers: list[Observer] = []

        self._task: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None

    # ── Observers ─────────────────────────────────────────────────────

    def add_observer(self, observer: Observer) -> Subscription:
        self._observers.append(observer)
        return Subscription(self, observer)

    def remove_observer(self, observer: Observer) -> bool:
        try:
            self._observers.remove(observer)
        except ValueError:
            return False
        return True

    def notify_observers(self, event: ReminderEvent) -> None:
        """Deliver an event to each observer in registration order.

        Iterates over a snapshot, so observers added or removed during
        the pass do not change who receives this event.
        """
        for observer in tuple(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("Reminder observer %r failed on %s", observer, event.type.value)

    # ── Scheduling ────────────────────────────────────────────────────

    def check_eligibility(
        self,
        alert: Alert,
        preference: Optional[Preference],
        now: datetime,
    ) -> Eligibility:
        if alert.archived:
            return Eligibility.ARCHIVED
        if now < alert.start_time:
            return Eligibility.NOT_STARTED
        if now >= alert.expiry_time:
            return Eligibility.EXPIRED
        if not alert.reminder_enabled:
            return Eligibility.REMINDERS_DISABLED
        if alert.reminder_frequency_minutes <= 0:
            return Eligibility.INVALID_FREQUENCY
        if preference is not None and preference.is_snoozed(now):
            return Eligibility.SNOOZED
        return Eligibility.ELIGIBLE

    @staticmethod
    def next_fire_time(alert: Alert, now: datetime, has_history: bool = True) -> datetime:
        """Next grid point ``created_at + n * frequency`` strictly after ``now``.

        Without any history the first reminder is due immediately.
        """
        if not has_history:
            return now
        frequency = timedelta(minutes=alert.reminder_frequency_minutes)
        intervals = (now - alert.created_at) // frequency + 1
        return alert.created_at + intervals * frequency

    async def schedule_reminder(
        self,
        alert: Alert,
        user: User,
        preference: Optional[Preference] = None,
    ) -> Optional[datetime]:
        """Replace the key's pending reminder with the next one on the grid.

        Fires synchronously when the reminder is already due.

        Returns:
            The computed fire time, or None when the pair is ineligible.
        """
        key = ReminderKey(alert.alert_id, user.user_id)
        async with self._key_lock(key):
            return await self._schedule_locked(alert, user, preference)

    async def trigger_reminder(self, alert: Alert, user: User) -> None:
        """Deliver a reminder now, then reschedule the next cycle."""
        key = ReminderKey(alert.alert_id, user.user_id)
        async with self._key_lock(key):
            await self._trigger_locked(alert, user)

    def clear_reminder(self, key: Union[ReminderKey, tuple[str, str]]) -> bool:
        """Cancel the pending reminder for a key. Idempotent.

        A reminder that is already being delivered finishes its delivery
        but is not rescheduled afterwards.

        Returns:
            True if a pending timer was cancelled.
        """
        key = ReminderKey(*key)
        cancelled = self._cancel(key)
        if key in self._in_flight:
            self._cleared_in_flight.add(key)
        if cancelled:
            logger.debug("Cleared reminder %s", key)
        return cancelled

    def clear_all_reminders(self) -> int:
        count = len(self._timers)
        for timer in self._timers.values():
            timer.cancelled = True
        self._timers.clear()
        self._queue.clear()
        self._cleared_in_flight.update(self._in_flight)
        if count:
            logger.info("Cleared %d reminder(s)", count)
        return count

    def get_active_reminders(self) -> set[ReminderKey]:
        return set(self._timers)

    def get_next_fire_time(self, key: Union[ReminderKey, tuple[str, str]]) -> Optional[datetime]:
        timer = self._timers.get(ReminderKey(*key))
        return timer.fire_at if timer else None

    @property
    def pending_count(self) -> int:
        return len(self._timers)

    # ── Loop ──────────────────────────────────────────────────────────

    async def run_pending(self) -> int:
        """Fire every reminder due at the current clock reading.

        Returns:
            Number of reminders fired.
        """
        now = self._clock()
        fired = 0
        while self._queue and self._queue[0][0] <= now:
            _, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            if await self._fire(timer):
                fired += 1
        return fired

    async def run_forever(self, poll_interval: Optional[float] = None) -> None:
        """Service the timer heap until cancelled."""
        interval = poll_interval or self.config.poll_interval_seconds
        self._wakeup = asyncio.Event()
        logger.info("Reminder loop started (poll=%.2fs)", interval)
        try:
            while True:
                try:
                    await self.run_pending()
                except Exception:
                    logger.exception("Reminder loop tick failed")

                delay = interval
                due = self._next_due()
                if due is not None:
                    delay = min(interval, max(0.0, (due - self._clock()).total_seconds()))

                self._wakeup.clear()
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
        finally:
            self._wakeup = None
            logger.info("Reminder loop stopped")

    def start(self, poll_interval: Optional[float] = None) -> asyncio.Task:
        """Run the loop as a background task on the current event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(
                self.run_forever(poll_interval)
            )
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Internals ─────────────────────────────────────────────────────

    @contextlib.asynccontextmanager
    async def _key_lock(self, key: ReminderKey):
        """Hold the key's lock; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _schedule_locked(
        self,
        alert: Alert,
        user: User,
        preference: Optional[Preference],
        after_trigger: bool = False,
    ) -> Optional[datetime]:
        key = ReminderKey(alert.alert_id, user.user_id)
        now = self._clock()
        self._cancel(key)

        eligibility = self.check_eligibility(alert, preference, now)
        if eligibility is not Eligibility.ELIGIBLE:
            logger.debug("Not scheduling %s: %s", key, eligibility.value)
            return None

        has_history = (
            after_trigger
            or preference is not None
            or self._dispatcher.delivery_log.has_history(alert.alert_id, user.user_id)
        )
        fire_at = self.next_fire_time(alert, now, has_history)
        if fire_at >= alert.expiry_time:
            logger.debug("Not scheduling %s: next cycle %s is past expiry", key, fire_at.isoformat())
            return None

        if fire_at > now:
            self._arm(key, alert, user, fire_at)
            self._emit(ReminderEventType.SCHEDULED, key, scheduled_for=fire_at)
            return fire_at

        self._emit(ReminderEventType.SCHEDULED, key, scheduled_for=fire_at)
        await self._trigger_locked(alert, user)
        return fire_at

    async def _trigger_locked(self, alert: Alert, user: User) -> None:
        key = ReminderKey(alert.alert_id, user.user_id)
        self._in_flight.add(key)
        try:
            with ReminderContext(alert_id=alert.alert_id, user_id=user.user_id):
                try:
                    result = await self._dispatcher.deliver_notification(
                        alert, user, list(alert.delivery_channels),
                    )
                except Exception as exc:
                    logger.exception("Reminder dispatch failed for %s", key)
                    self._emit(
                        ReminderEventType.ERROR, key,
                        error=str(exc) or type(exc).__name__,
                    )
                else:
                    self._emit(ReminderEventType.TRIGGERED, key, success=result.success)
        finally:
            self._in_flight.discard(key)

        if key in self._cleared_in_flight:
            self._cleared_in_flight.discard(key)
            logger.info("Reminder %s cleared during delivery; not rescheduling", key)
            return

        preference = self._preferences.get_preference(alert.alert_id, user.user_id)
        await self._schedule_locked(alert, user, preference, after_trigger=True)

    async def _fire(self, timer: ReminderTimer) -> bool:
        async with self._key_lock(timer.key):
            if timer.cancelled or self._timers.get(timer.key) is not timer:
                return False
            del self._timers[timer.key]
            await self._trigger_locked(timer.alert, timer.user)
        return True

    def _arm(self, key: ReminderKey, alert: Alert, user: User, fire_at: datetime) -> None:
        timer = ReminderTimer(key=key, alert=alert, user=user, fire_at=fire_at)
        self._timers[key] = timer
        heapq.heappush(self._queue, (fire_at, next(self._seq), timer))
        if self._wakeup is not None:
            self._wakeup.set()

    def _cancel(self, key: ReminderKey) -> bool:
        timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.cancelled = True
        return True

    def _next_due(self) -> Optional[datetime]:
        while self._queue and self._queue[0][2].cancelled:
            heapq.heappop(self._queue)
        return self._queue[0][0] if self._queue else None

    def _emit(self, event_type: ReminderEventType, key: ReminderKey, **payload) -> None:
        self.notify_observers(ReminderEvent(
            type=event_type,
            alert_id=key.alert_id,
            user_id=key.user_id,
            timestamp=self._clock(),
            **payload,
        ))
