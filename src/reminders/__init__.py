"""Alert Reminders.

Recurring per-user reminders for time-bounded alerts: scheduling on a
fixed grid, multi-channel delivery, read/snooze preferences, and
engagement analytics.
"""

from .config import (
    AlertSeverity,
    UserRole,
    ChannelKind,
    ReminderEventType,
    Eligibility,
    ReminderConfig,
    DEFAULT_REMINDER_CONFIG,
)
from .errors import (
    ErrorCode,
    ReminderError,
    ChannelNotFoundError,
    ChannelUnavailableError,
    DeliveryFailedError,
    PreferenceNotFoundError,
    AlertNotFoundError,
    UserNotFoundError,
    InvalidAlertError,
)
from .clock import SimulatedClock, utc_now
from .models import (
    ReminderKey,
    AlertVisibility,
    Alert,
    User,
    Preference,
    DeliveryRecord,
    ReminderEvent,
)
from .channels import (
    NotificationPayload,
    ChannelResult,
    NotificationChannel,
    InAppChannel,
    EmailChannel,
    SMSChannel,
    ChannelRegistry,
    default_channels,
)
from .dispatcher import DispatchResult, DeliveryLog, NotificationDispatcher
from .preferences import PreferenceStore
from .scheduler import ReminderScheduler, Subscription
from .analytics import AnalyticsAggregator, AnalyticsData, DetailedAnalyticsData
from .catalog import AlertCatalog, default_visibility
from .service import ReminderLog, ReminderService, UserAlertView, build_reminder_service

__all__ = [
    # Config
    "AlertSeverity",
    "UserRole",
    "ChannelKind",
    "ReminderEventType",
    "Eligibility",
    "ReminderConfig",
    "DEFAULT_REMINDER_CONFIG",
    # Errors
    "ErrorCode",
    "ReminderError",
    "ChannelNotFoundError",
    "ChannelUnavailableError",
    "DeliveryFailedError",
    "PreferenceNotFoundError",
    "AlertNotFoundError",
    "UserNotFoundError",
    "InvalidAlertError",
    # Clock
    "SimulatedClock",
    "utc_now",
    # Models
    "ReminderKey",
    "AlertVisibility",
    "Alert",
    "User",
    "Preference",
    "DeliveryRecord",
    "ReminderEvent",
    # Channels
    "NotificationPayload",
    "ChannelResult",
    "NotificationChannel",
    "InAppChannel",
    "EmailChannel",
    "SMSChannel",
    "ChannelRegistry",
    "default_channels",
    # Dispatch
    "DispatchResult",
    "DeliveryLog",
    "NotificationDispatcher",
    # Preferences
    "PreferenceStore",
    # Scheduling
    "ReminderScheduler",
    "Subscription",
    # Analytics
    "AnalyticsAggregator",
    "AnalyticsData",
    "DetailedAnalyticsData",
    # Service
    "AlertCatalog",
    "default_visibility",
    "ReminderLog",
    "ReminderService",
    "UserAlertView",
    "build_reminder_service",
]
