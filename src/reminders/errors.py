"""Reminder exception hierarchy.

Typed exceptions with stable error codes. Channel errors are always
recovered inside the dispatcher; not-found errors propagate to callers.
"""

import enum
from typing import Any, Dict, List, Optional

from src.reminders.config import CHANNEL_NOT_AVAILABLE, CHANNEL_NOT_FOUND


class ErrorCode(enum.Enum):
    """Standardized error codes."""

    # Delivery (recovered per channel)
    CHANNEL_NOT_FOUND = "CHANNEL_NOT_FOUND"
    CHANNEL_UNAVAILABLE = "CHANNEL_UNAVAILABLE"
    DELIVERY_FAILED = "DELIVERY_FAILED"

    # Lookups (surfaced to callers)
    PREFERENCE_NOT_FOUND = "PREFERENCE_NOT_FOUND"
    ALERT_NOT_FOUND = "ALERT_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # Validation
    INVALID_ALERT = "INVALID_ALERT"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class ReminderError(Exception):
    """Base exception for the reminder subsystem.

    All custom exceptions inherit from this, allowing a single
    handler to catch the entire hierarchy.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or []

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }


class ChannelNotFoundError(ReminderError):
    """Raised when a requested channel type is not registered."""

    def __init__(self, channel_type: str):
        super().__init__(
            CHANNEL_NOT_FOUND,
            ErrorCode.CHANNEL_NOT_FOUND,
            [{"channel": channel_type}],
        )
        self.channel_type = channel_type


class ChannelUnavailableError(ReminderError):
    """Raised when a registered channel reports it cannot deliver."""

    def __init__(self, channel_type: str):
        super().__init__(
            CHANNEL_NOT_AVAILABLE,
            ErrorCode.CHANNEL_UNAVAILABLE,
            [{"channel": channel_type}],
        )
        self.channel_type = channel_type


class DeliveryFailedError(ReminderError):
    """Raised when a channel's deliver call blows up."""

    def __init__(self, channel_type: str, cause: Optional[BaseException] = None):
        message = str(cause) if cause is not None and str(cause) else "Unknown error"
        super().__init__(
            message,
            ErrorCode.DELIVERY_FAILED,
            [{"channel": channel_type}],
        )
        self.channel_type = channel_type
        self.cause = cause


class PreferenceNotFoundError(ReminderError):
    """Raised when a preference record does not exist yet."""

    def __init__(self, alert_id: str, user_id: str):
        super().__init__(
            "Preference not found",
            ErrorCode.PREFERENCE_NOT_FOUND,
            [{"alert_id": alert_id, "user_id": user_id}],
        )


class AlertNotFoundError(ReminderError):
    """Raised when an alert id is not in the catalog."""

    def __init__(self, alert_id: str):
        super().__init__(
            "Alert not found",
            ErrorCode.ALERT_NOT_FOUND,
            [{"resource_type": "alert", "resource_id": alert_id}],
        )
        self.alert_id = alert_id


class UserNotFoundError(ReminderError):
    """Raised when a user id is not in the directory."""

    def __init__(self, user_id: str):
        super().__init__(
            "User not found",
            ErrorCode.USER_NOT_FOUND,
            [{"resource_type": "user", "resource_id": user_id}],
        )
        self.user_id = user_id


class InvalidAlertError(ReminderError):
    """Raised when an alert record violates its invariants."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = [{"field": field, "issue": message}] if field else []
        super().__init__(message, ErrorCode.INVALID_ALERT, details)
