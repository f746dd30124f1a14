"""Pluggable notification delivery channels.

Each channel implements the ``NotificationChannel`` protocol. Email and
SMS are capability stubs: they become available once a transport
callable is wired in.
"""

import inspect
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from src.reminders.clock import Clock, utc_now
from src.reminders.config import ChannelKind

logger = logging.getLogger(__name__)

Transport = Callable[["NotificationPayload"], Union[Awaitable[Any], Any]]


@dataclass(frozen=True)
class NotificationPayload:
    """What every channel receives for one delivery."""
    alert_id: str
    user_id: str
    title: str
    message: str
    severity: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ChannelResult:
    """Result of a single channel delivery attempt."""
    channel: str
    success: bool = False
    delivery_id: str = ""
    timestamp: datetime = field(default_factory=utc_now)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "channel": self.channel,
            "success": self.success,
            "delivery_id": self.delivery_id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol for notification channels."""

    @property
    def channel_type(self) -> str: ...

    async def deliver(self, payload: NotificationPayload) -> ChannelResult: ...

    def is_available(self) -> bool: ...


def _delivery_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class InAppChannel:
    """In-app inbox channel. Always available."""

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or utc_now
        self._inbox: dict[str, list[NotificationPayload]] = defaultdict(list)

    @property
    def channel_type(self) -> str:
        return ChannelKind.IN_APP.value

    def is_available(self) -> bool:
        return True

    async def deliver(self, payload: NotificationPayload) -> ChannelResult:
        self._inbox[payload.user_id].append(payload)
        logger.debug("[INAPP] %s -> %s: %s", payload.alert_id, payload.user_id, payload.title)
        return ChannelResult(
            channel=self.channel_type,
            success=True,
            delivery_id=_delivery_id(self.channel_type),
            timestamp=self._clock(),
        )

    def inbox(self, user_id: str) -> list[NotificationPayload]:
        """Notifications delivered in-app to a user, oldest first."""
        return list(self._inbox.get(user_id, []))


class _TransportChannel:
    """Shared behaviour for channels backed by an external provider."""

    kind: ChannelKind = ChannelKind.EMAIL
    not_configured_error = "Service not configured"

    def __init__(self, transport: Optional[Transport] = None, clock: Optional[Clock] = None):
        self._transport = transport
        self._clock = clock or utc_now

    @property
    def channel_type(self) -> str:
        return self.kind.value

    def is_available(self) -> bool:
        return self._transport is not None

    async def deliver(self, payload: NotificationPayload) -> ChannelResult:
        if not self.is_available():
            return ChannelResult(
                channel=self.channel_type,
                success=False,
                timestamp=self._clock(),
                error=self.not_configured_error,
            )

        outcome = self._transport(self.render(payload))
        if inspect.isawaitable(outcome):
            await outcome

        logger.info("[%s] %s -> %s", self.channel_type.upper(), payload.alert_id, payload.user_id)
        return ChannelResult(
            channel=self.channel_type,
            success=True,
            delivery_id=_delivery_id(self.channel_type),
            timestamp=self._clock(),
        )

    def render(self, payload: NotificationPayload) -> NotificationPayload:
        return payload


class EmailChannel(_TransportChannel):
    """Email channel (stub until a provider transport is configured)."""

    kind = ChannelKind.EMAIL
    not_configured_error = "Email service not configured"


class SMSChannel(_TransportChannel):
    """SMS channel (stub until a provider transport is configured).

    Messages are rendered as "title: message" and cut to 160 characters.
    """

    kind = ChannelKind.SMS
    not_configured_error = "SMS service not configured"
    max_length = 160

    def render(self, payload: NotificationPayload) -> NotificationPayload:
        text = f"{payload.title}: {payload.message}"[: self.max_length]
        return NotificationPayload(
            alert_id=payload.alert_id,
            user_id=payload.user_id,
            title=payload.title,
            message=text,
            severity=payload.severity,
            timestamp=payload.timestamp,
        )


class ChannelRegistry:
    """Registry of delivery channels keyed by channel type."""

    def __init__(self, channels: Optional[list[NotificationChannel]] = None):
        self._channels: dict[str, NotificationChannel] = {}
        for channel in channels or []:
            self.register(channel)

    def register(self, channel: NotificationChannel) -> None:
        """Add a channel, replacing any previous one of the same type."""
        if channel.channel_type in self._channels:
            logger.info("Replacing channel %s", channel.channel_type)
        self._channels[channel.channel_type] = channel

    def unregister(self, channel_type: str) -> bool:
        return self._channels.pop(channel_type, None) is not None

    def get(self, channel_type: str) -> Optional[NotificationChannel]:
        return self._channels.get(channel_type)

    @property
    def registered_types(self) -> list[str]:
        return list(self._channels.keys())

    def available_types(self) -> list[str]:
        """Types of registered channels that can deliver right now."""
        return [t for t, ch in self._channels.items() if ch.is_available()]


def default_channels(
    clock: Optional[Clock] = None,
    email_transport: Optional[Transport] = None,
    sms_transport: Optional[Transport] = None,
) -> list[NotificationChannel]:
    """The built-in in-app, email and SMS channels."""
    return [
        InAppChannel(clock=clock),
        EmailChannel(transport=email_transport, clock=clock),
        SMSChannel(transport=sms_transport, clock=clock),
    ]
