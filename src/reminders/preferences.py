"""Per (alert, user) read and snooze state management."""

import logging
import threading
from dataclasses import replace
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from src.reminders.clock import Clock, utc_now
from src.reminders.config import DEFAULT_REMINDER_CONFIG, ReminderConfig
from src.reminders.errors import PreferenceNotFoundError
from src.reminders.models import Preference, ReminderKey

logger = logging.getLogger(__name__)


class PreferenceStore:
    """Keyed store of read/snooze preferences.

    Each (alert_id, user_id) key moves independently along two axes:
    read/unread and snoozed/not snoozed. Records are created lazily on the
    first interaction and never deleted. Writes replace the stored record
    with an updated copy, so callers holding a previous record keep a
    stable snapshot.

    Example:
        store = PreferenceStore()
        store.snooze_for_day("a1", "u1")
        store.is_snoozed_for_today("a1", "u1")  # True until end of day
    """

    def __init__(
        self,
        initial: Optional[Iterable[Preference]] = None,
        clock: Optional[Clock] = None,
        config: Optional[ReminderConfig] = None,
    ):
        self.config = config or DEFAULT_REMINDER_CONFIG
        self._clock = clock or utc_now
        self._tz = ZoneInfo(self.config.snooze_timezone)
        self._preferences: dict[ReminderKey, Preference] = {}
        self._lock = threading.Lock()
        if initial:
            self.load(initial)

    def load(self, preferences: Iterable[Preference]) -> int:
        """Seed or restore records, replacing any with the same key."""
        count = 0
        with self._lock:
            for pref in preferences:
                self._preferences[pref.key] = pref
                count += 1
        return count

    def get_preference(self, alert_id: str, user_id: str) -> Optional[Preference]:
        return self._preferences.get(ReminderKey(alert_id, user_id))

    def all_preferences(self) -> list[Preference]:
        with self._lock:
            return list(self._preferences.values())

    def user_preferences(self, user_id: str) -> list[Preference]:
        return [p for p in self.all_preferences() if p.user_id == user_id]

    def alert_preferences(self, alert_id: str) -> list[Preference]:
        return [p for p in self.all_preferences() if p.alert_id == alert_id]

    # ── Read axis ─────────────────────────────────────────────────────

    def mark_as_read(self, alert_id: str, user_id: str) -> Preference:
        """Mark read, keeping any snooze. Records when it was first read."""
        now = self._clock()
        with self._lock:
            existing = self._get_or_new(alert_id, user_id)
            read_at = existing.read_at if existing.read and existing.read_at else now
            pref = replace(existing, read=True, read_at=read_at, updated_at=now)
            self._preferences[pref.key] = pref
        logger.debug("Marked %s/%s read", alert_id, user_id)
        return pref

    def mark_as_unread(self, alert_id: str, user_id: str) -> Preference:
        """Mark unread, keeping any snooze."""
        now = self._clock()
        with self._lock:
            existing = self._get_or_new(alert_id, user_id)
            pref = replace(existing, read=False, read_at=None, updated_at=now)
            self._preferences[pref.key] = pref
        logger.debug("Marked %s/%s unread", alert_id, user_id)
        return pref

    # ── Snooze axis ───────────────────────────────────────────────────

    def snooze_for_day(self, alert_id: str, user_id: str) -> Preference:
        """Snooze until the end of the current calendar day, keeping read state."""
        now = self._clock()
        today = self._local_date(now)
        with self._lock:
            existing = self._get_or_new(alert_id, user_id)
            pref = replace(
                existing,
                snoozed_until=self._end_of_day(today),
                last_snoozed_day=today,
                updated_at=now,
            )
            self._preferences[pref.key] = pref
        logger.info(
            "Snoozed %s for %s until %s",
            alert_id, user_id, pref.snoozed_until.isoformat(),
        )
        return pref

    def unsnooze(self, alert_id: str, user_id: str) -> Preference:
        """Clear both snooze fields.

        Raises:
            PreferenceNotFoundError: no record exists for the key yet.
        """
        key = ReminderKey(alert_id, user_id)
        with self._lock:
            existing = self._preferences.get(key)
            if existing is None:
                raise PreferenceNotFoundError(alert_id, user_id)
            pref = replace(
                existing,
                snoozed_until=None,
                last_snoozed_day=None,
                updated_at=self._clock(),
            )
            self._preferences[key] = pref
        logger.info("Unsnoozed %s for %s", alert_id, user_id)
        return pref

    def is_snoozed_for_today(self, alert_id: str, user_id: str) -> bool:
        pref = self.get_preference(alert_id, user_id)
        if pref is None:
            return False
        return pref.is_snoozed(self._clock())

    def should_reset_snooze(self, alert_id: str, user_id: str) -> bool:
        """True when the last snooze happened on an earlier calendar day."""
        pref = self.get_preference(alert_id, user_id)
        if pref is None or pref.last_snoozed_day is None:
            return False
        return pref.last_snoozed_day != self._local_date(self._clock())

    def reset_expired_snoozes(self) -> int:
        """Clear snooze fields on every record whose snooze has lapsed.

        Returns:
            Number of records reset.
        """
        now = self._clock()
        count = 0
        with self._lock:
            for key, pref in list(self._preferences.items()):
                if pref.snoozed_until is not None and pref.snoozed_until <= now:
                    self._preferences[key] = replace(
                        pref, snoozed_until=None, last_snoozed_day=None, updated_at=now,
                    )
                    count += 1
        if count:
            logger.info("Reset %d expired snooze(s)", count)
        return count

    # ── Helpers ───────────────────────────────────────────────────────

    def _get_or_new(self, alert_id: str, user_id: str) -> Preference:
        # Caller holds the lock
        existing = self._preferences.get(ReminderKey(alert_id, user_id))
        if existing is not None:
            return existing
        return Preference(alert_id=alert_id, user_id=user_id)

    def _local_date(self, now: datetime) -> date:
        return now.astimezone(self._tz).date()

    def _end_of_day(self, day: date) -> datetime:
        return datetime.combine(day, time.max, tzinfo=self._tz).astimezone(timezone.utc)
