"""Alert reminders configuration.

Enums, constants, and configuration dataclasses for reminder scheduling,
delivery, and analytics.
"""

import enum
from dataclasses import dataclass, field
from typing import Optional

from src.settings import Settings


class AlertSeverity(enum.Enum):
    """Alert severity levels."""
    INFO = "Info"
    WARNING = "Warning"
    CRITICAL = "Critical"


class UserRole(enum.Enum):
    """Directory roles."""
    USER = "user"
    ADMIN = "admin"


class ChannelKind(str, enum.Enum):
    """Built-in delivery channel types.

    Channel types are plain strings on the wire, so callers may also
    request types that have no enum member (they resolve to
    "Channel not found" at dispatch time).
    """
    IN_APP = "inapp"
    EMAIL = "email"
    SMS = "sms"


class ReminderEventType(enum.Enum):
    """Lifecycle events emitted by the scheduler."""
    SCHEDULED = "scheduled"
    TRIGGERED = "triggered"
    ERROR = "error"


class Eligibility(enum.Enum):
    """Why a reminder was or was not armed."""
    ELIGIBLE = "eligible"
    ARCHIVED = "archived"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"
    REMINDERS_DISABLED = "reminders_disabled"
    SNOOZED = "snoozed"
    INVALID_FREQUENCY = "invalid_frequency"


# Fields whose change requires re-evaluating a reminder
REMINDER_FIELDS = frozenset({
    "reminder_enabled",
    "reminder_frequency_minutes",
    "archived",
    "start_time",
    "expiry_time",
    "delivery_channels",
})

CHANNEL_NOT_FOUND = "Channel not found"
CHANNEL_NOT_AVAILABLE = "Channel not available"


@dataclass
class ReminderConfig:
    """Reminder subsystem configuration."""
    default_channels: list[str] = field(
        default_factory=lambda: [ChannelKind.IN_APP.value]
    )
    snooze_timezone: str = "UTC"
    poll_interval_seconds: float = 1.0
    high_engagement_threshold: float = 80.0
    low_engagement_threshold: float = 20.0
    effectiveness_top_n: int = 5
    rolling_windows_days: tuple[int, int] = (7, 30)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ReminderConfig":
        """Build a config from environment-backed settings."""
        if settings is None:
            return cls()
        return cls(
            default_channels=list(settings.default_channels),
            snooze_timezone=settings.snooze_timezone,
            poll_interval_seconds=settings.scheduler_poll_seconds,
            high_engagement_threshold=settings.high_engagement_threshold,
            low_engagement_threshold=settings.low_engagement_threshold,
            effectiveness_top_n=settings.effectiveness_top_n,
        )


DEFAULT_REMINDER_CONFIG = ReminderConfig()
