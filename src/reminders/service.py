"""Reminder service.

Composition root wiring the catalog, preference store, dispatcher,
scheduler and analytics together, with the alert/user operations
callers actually use.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from src.reminders.analytics import AnalyticsAggregator, AnalyticsData, DetailedAnalyticsData
from src.reminders.catalog import AlertCatalog
from src.reminders.channels import ChannelRegistry, NotificationPayload, default_channels
from src.reminders.clock import Clock, utc_now
from src.reminders.config import REMINDER_FIELDS, Eligibility, ReminderConfig, ReminderEventType
from src.reminders.dispatcher import NotificationDispatcher
from src.reminders.models import Alert, DeliveryRecord, Preference, ReminderEvent, User
from src.reminders.preferences import PreferenceStore
from src.reminders.scheduler import ReminderScheduler
from src.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class ReminderLog:
    """Observer that keeps every scheduler event."""

    def __init__(self):
        self._events: list[ReminderEvent] = []

    def __call__(self, event: ReminderEvent) -> None:
        self._events.append(event)

    @property
    def events(self) -> list[ReminderEvent]:
        return list(self._events)

    def of_type(self, event_type: ReminderEventType) -> list[ReminderEvent]:
        return [e for e in self._events if e.type == event_type]

    def counts(self) -> dict[str, int]:
        counts = {t.value: 0 for t in ReminderEventType}
        for event in self._events:
            counts[event.type.value] += 1
        return counts

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


@dataclass
class UserAlertView:
    """An alert as seen by one user."""
    alert: Alert
    preference: Optional[Preference] = None
    next_reminder_at: Optional[datetime] = None
    is_eligible_for_reminder: bool = False

    def to_dict(self) -> dict:
        pref = self.preference
        return {
            **self.alert.to_dict(),
            "read": pref.read if pref else False,
            "snoozed_until": (
                pref.snoozed_until.isoformat() if pref and pref.snoozed_until else None
            ),
            "next_reminder_at": (
                self.next_reminder_at.isoformat() if self.next_reminder_at else None
            ),
            "is_eligible_for_reminder": self.is_eligible_for_reminder,
        }


class ReminderService:
    """Alert reminder operations over one set of wired components.

    Example:
        service = build_reminder_service(clock=SimulatedClock(start))
        service.catalog.add_user(User("u1", team_id="ops"))
        await service.create_alert(alert)
        await service.scheduler.run_pending()
    """

    def __init__(
        self,
        catalog: AlertCatalog,
        preferences: PreferenceStore,
        dispatcher: NotificationDispatcher,
        scheduler: ReminderScheduler,
        analytics: AnalyticsAggregator,
        clock: Optional[Clock] = None,
    ):
        self.catalog = catalog
        self.preferences = preferences
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.analytics = analytics
        self._clock = clock or utc_now

        self.reminder_log = ReminderLog()
        self._log_subscription = scheduler.add_observer(self.reminder_log)

    # ── Alerts ────────────────────────────────────────────────────────

    async def initialize_reminders(self) -> int:
        """Schedule every active alert for every eligible user.

        Returns:
            Number of reminders scheduled or fired.
        """
        now = self._clock()
        scheduled = 0
        for alert in self.catalog.list_alerts():
            if not alert.is_active(now) or not alert.reminder_enabled:
                continue
            scheduled += await self._schedule_for_users(alert)
        logger.info("Initialized %d reminder(s)", scheduled)
        return scheduled

    async def create_alert(self, alert: Alert) -> Alert:
        self.catalog.add_alert(alert)
        logger.info("Created alert %s (%s)", alert.alert_id, alert.severity.value)
        if alert.reminder_enabled:
            await self._schedule_for_users(alert)
        return alert

    async def update_alert(self, alert_id: str, **changes) -> Alert:
        """Apply changes; re-evaluate reminders when a reminder field changed."""
        previous = self.catalog.get_alert(alert_id)
        updated = self.catalog.update_alert(alert_id, **changes)

        changed = {
            name for name in REMINDER_FIELDS.intersection(changes)
            if getattr(previous, name) != getattr(updated, name)
        }
        if not changed:
            return updated

        users = self.catalog.eligible_users(updated)
        for user in users:
            self.scheduler.clear_reminder((alert_id, user.user_id))
        if not updated.archived:
            await self._schedule_for_users(updated, users)
        logger.info("Re-evaluated reminders for %s (%s)", alert_id, ", ".join(sorted(changed)))
        return updated

    # ── Preferences ───────────────────────────────────────────────────

    async def snooze_alert(self, alert_id: str, user_id: str) -> Preference:
        self._lookup(alert_id, user_id)
        preference = self.preferences.snooze_for_day(alert_id, user_id)
        self.scheduler.clear_reminder((alert_id, user_id))
        return preference

    async def unsnooze_alert(self, alert_id: str, user_id: str) -> Preference:
        alert, user = self._lookup(alert_id, user_id)
        preference = self.preferences.unsnooze(alert_id, user_id)
        if alert.reminder_enabled:
            await self.scheduler.schedule_reminder(alert, user, preference)
        return preference

    def mark_alert_read(self, alert_id: str, user_id: str) -> Preference:
        self._lookup(alert_id, user_id)
        return self.preferences.mark_as_read(alert_id, user_id)

    def mark_alert_unread(self, alert_id: str, user_id: str) -> Preference:
        self._lookup(alert_id, user_id)
        return self.preferences.mark_as_unread(alert_id, user_id)

    def user_alerts(self, user_id: str) -> list[UserAlertView]:
        """Active alerts visible to a user, with reminder state."""
        user = self.catalog.get_user(user_id)
        self.preferences.reset_expired_snoozes()
        now = self._clock()

        views = []
        for alert in self.catalog.visible_alerts(user):
            if not alert.is_active(now):
                continue
            preference = self.preferences.get_preference(alert.alert_id, user_id)
            eligibility = self.scheduler.check_eligibility(alert, preference, now)
            views.append(UserAlertView(
                alert=alert,
                preference=preference,
                next_reminder_at=self.scheduler.get_next_fire_time((alert.alert_id, user_id)),
                is_eligible_for_reminder=eligibility is Eligibility.ELIGIBLE,
            ))
        return views

    # ── Sweeps ────────────────────────────────────────────────────────

    async def trigger_reminders(self) -> int:
        """Trigger a reminder now for every eligible (alert, user) pair.

        Returns:
            Number of reminders triggered.
        """
        self.preferences.reset_expired_snoozes()
        now = self._clock()
        triggered = 0
        for alert in self.catalog.list_alerts():
            if not alert.is_active(now) or not alert.reminder_enabled:
                continue
            for user in self.catalog.eligible_users(alert):
                preference = self.preferences.get_preference(alert.alert_id, user.user_id)
                if preference is not None and preference.is_snoozed(now):
                    continue
                await self.scheduler.trigger_reminder(alert, user)
                triggered += 1
        logger.info("Triggered %d reminder(s)", triggered)
        return triggered

    # ── Pass-throughs ─────────────────────────────────────────────────

    def get_analytics(self) -> AnalyticsData:
        return self.analytics.generate_analytics()

    def get_detailed_analytics(self) -> DetailedAnalyticsData:
        return self.analytics.generate_detailed_analytics()

    def get_delivery_log(self) -> list[DeliveryRecord]:
        return self.dispatcher.get_delivery_log()

    def get_available_channels(self) -> list[str]:
        return self.dispatcher.get_available_channels()

    async def start(self) -> None:
        await self.initialize_reminders()
        self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        self.scheduler.clear_all_reminders()

    # ── Helpers ───────────────────────────────────────────────────────

    def _lookup(self, alert_id: str, user_id: str) -> tuple[Alert, User]:
        return self.catalog.get_alert(alert_id), self.catalog.get_user(user_id)

    async def _schedule_for_users(
        self, alert: Alert, users: Optional[list[User]] = None,
    ) -> int:
        count = 0
        for user in users if users is not None else self.catalog.eligible_users(alert):
            preference = self.preferences.get_preference(alert.alert_id, user.user_id)
            if await self.scheduler.schedule_reminder(alert, user, preference) is not None:
                count += 1
        return count


def _logging_transport(channel: str):
    async def send(payload: NotificationPayload) -> None:
        logger.info("[%s] %s -> %s: %s", channel, payload.alert_id, payload.user_id, payload.title)
    return send


def build_reminder_service(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    catalog: Optional[AlertCatalog] = None,
) -> ReminderService:
    """Wire a ReminderService from settings.

    Email and SMS channels get a logging transport when enabled in
    settings; otherwise they stay registered but unavailable.
    """
    settings = settings or get_settings()
    clock = clock or utc_now
    config = ReminderConfig.from_settings(settings)

    registry = ChannelRegistry(default_channels(
        clock=clock,
        email_transport=_logging_transport("email") if settings.email_enabled else None,
        sms_transport=_logging_transport("sms") if settings.sms_enabled else None,
    ))
    catalog = catalog or AlertCatalog(clock=clock)
    preferences = PreferenceStore(clock=clock, config=config)
    dispatcher = NotificationDispatcher(registry, clock=clock, config=config)
    scheduler = ReminderScheduler(dispatcher, preferences, clock=clock, config=config)
    analytics = AnalyticsAggregator(
        catalog, dispatcher.delivery_log, preferences, clock=clock, config=config,
    )
    return ReminderService(catalog, preferences, dispatcher, scheduler, analytics, clock=clock)
