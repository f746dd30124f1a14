"""Data models for alert reminders.

Alerts and users are owned by an external catalog and treated as
read-only here. Preferences and delivery records are created by the
reminder subsystem itself.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import NamedTuple, Optional

from src.reminders.clock import ensure_utc, utc_now
from src.reminders.config import AlertSeverity, ChannelKind, ReminderEventType, UserRole
from src.reminders.errors import InvalidAlertError


class ReminderKey(NamedTuple):
    """Identity of one reminder stream: one alert for one user."""
    alert_id: str
    user_id: str

    def __str__(self) -> str:
        return f"{self.alert_id}_{self.user_id}"


@dataclass
class AlertVisibility:
    """Who may see an alert. Resolved outside the reminder core."""
    org: bool = False
    teams: list[str] = field(default_factory=list)
    users: list[str] = field(default_factory=list)


@dataclass
class Alert:
    """A time-bounded alert with optional recurring reminders."""
    alert_id: str = field(default_factory=lambda: f"a_{uuid.uuid4().hex[:12]}")
    title: str = ""
    message: str = ""
    severity: AlertSeverity = AlertSeverity.INFO
    visibility: AlertVisibility = field(default_factory=AlertVisibility)
    delivery_channels: list[str] = field(
        default_factory=lambda: [ChannelKind.IN_APP.value]
    )
    reminder_enabled: bool = True
    reminder_frequency_minutes: int = 120
    start_time: datetime = field(default_factory=utc_now)
    expiry_time: Optional[datetime] = None
    archived: bool = False
    created_by: str = ""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.expiry_time is None:
            raise InvalidAlertError("expiry_time is required", field="expiry_time")
        # Naive datetimes are taken as UTC.
        self.start_time = ensure_utc(self.start_time)
        self.expiry_time = ensure_utc(self.expiry_time)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)
        if self.start_time >= self.expiry_time:
            raise InvalidAlertError(
                "start_time must be before expiry_time", field="start_time",
            )
        if self.reminder_enabled and self.reminder_frequency_minutes <= 0:
            raise InvalidAlertError(
                "reminder_frequency_minutes must be positive",
                field="reminder_frequency_minutes",
            )

    def is_active(self, now: datetime) -> bool:
        """Not archived and inside the [start_time, expiry_time) window."""
        return (
            not self.archived
            and self.start_time <= now < self.expiry_time
        )

    def to_dict(self) -> dict:
        return {
            "alert_id": self.alert_id,
            "title": self.title,
            "severity": self.severity.value,
            "delivery_channels": list(self.delivery_channels),
            "reminder_enabled": self.reminder_enabled,
            "reminder_frequency_minutes": self.reminder_frequency_minutes,
            "start_time": self.start_time.isoformat(),
            "expiry_time": self.expiry_time.isoformat(),
            "archived": self.archived,
        }


@dataclass
class User:
    """A directory user."""
    user_id: str
    name: str = ""
    team_id: str = ""
    role: UserRole = UserRole.USER


@dataclass
class Preference:
    """Per (alert, user) read and snooze state.

    ``read`` and the snooze fields are independent axes: snoozing does
    not mark an alert read, and reading does not clear a snooze.
    """
    alert_id: str
    user_id: str
    preference_id: str = field(default_factory=lambda: f"pref_{uuid.uuid4().hex[:12]}")
    read: bool = False
    read_at: Optional[datetime] = None
    snoozed_until: Optional[datetime] = None
    last_snoozed_day: Optional[date] = None
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> ReminderKey:
        return ReminderKey(self.alert_id, self.user_id)

    def is_snoozed(self, now: datetime) -> bool:
        return self.snoozed_until is not None and self.snoozed_until > now

    def to_dict(self) -> dict:
        return {
            "preference_id": self.preference_id,
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "read": self.read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "snoozed_until": self.snoozed_until.isoformat() if self.snoozed_until else None,
            "last_snoozed_day": self.last_snoozed_day.isoformat() if self.last_snoozed_day else None,
        }


@dataclass(frozen=True)
class DeliveryRecord:
    """One delivery attempt. Append-only, never mutated."""
    alert_id: str
    user_id: str
    channel: str
    delivered: bool
    delivered_at: datetime
    error: Optional[str] = None
    record_id: str = field(default_factory=lambda: f"del_{uuid.uuid4().hex[:12]}")

    @property
    def key(self) -> ReminderKey:
        return ReminderKey(self.alert_id, self.user_id)

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "channel": self.channel,
            "delivered": self.delivered,
            "delivered_at": self.delivered_at.isoformat(),
            "error": self.error,
        }


@dataclass(frozen=True)
class ReminderEvent:
    """Scheduler lifecycle event delivered to observers."""
    type: ReminderEventType
    alert_id: str
    user_id: str
    timestamp: datetime
    scheduled_for: Optional[datetime] = None
    success: Optional[bool] = None
    error: Optional[str] = None

    @property
    def key(self) -> ReminderKey:
        return ReminderKey(self.alert_id, self.user_id)

    def to_dict(self) -> dict:
        data = {
            "type": self.type.value,
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.type == ReminderEventType.SCHEDULED:
            data["scheduled_for"] = self.scheduled_for.isoformat() if self.scheduled_for else None
        elif self.type == ReminderEventType.TRIGGERED:
            data["success"] = self.success
        else:
            data["error"] = self.error
        return data
