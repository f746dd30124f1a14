"""Notification dispatch with partial-failure handling.

Routes one notification to an ordered list of channels and records
every attempt in an append-only delivery log.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional

from src.reminders.channels import (
    ChannelRegistry,
    ChannelResult,
    NotificationChannel,
    NotificationPayload,
)
from src.reminders.clock import Clock, utc_now
from src.reminders.config import DEFAULT_REMINDER_CONFIG, ReminderConfig
from src.reminders.errors import (
    ChannelNotFoundError,
    ChannelUnavailableError,
    DeliveryFailedError,
    ReminderError,
)
from src.reminders.models import Alert, DeliveryRecord, User

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Outcome of delivering one notification across channels."""
    success: bool = True
    results: list[ChannelResult] = field(default_factory=list)

    @property
    def failed_channels(self) -> list[str]:
        return [r.channel for r in self.results if not r.success]

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
        }


class DeliveryLog:
    """Append-only record of every delivery attempt.

    The system of record for "was this user notified and when".
    Entries are never pruned or mutated.
    """

    def __init__(self, records: Optional[Iterable[DeliveryRecord]] = None):
        self._records: list[DeliveryRecord] = list(records or [])
        self._lock = threading.Lock()

    def append(self, record: DeliveryRecord) -> None:
        with self._lock:
            self._records.append(record)

    def extend(self, records: Iterable[DeliveryRecord]) -> int:
        """Append restored records, skipping ids already present."""
        with self._lock:
            known = {r.record_id for r in self._records}
            fresh = [r for r in records if r.record_id not in known]
            self._records.extend(fresh)
        return len(fresh)

    def records(
        self,
        alert_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> list[DeliveryRecord]:
        """Snapshot of the log, optionally filtered."""
        with self._lock:
            records = list(self._records)
        if alert_id is not None:
            records = [r for r in records if r.alert_id == alert_id]
        if user_id is not None:
            records = [r for r in records if r.user_id == user_id]
        return records

    def has_history(self, alert_id: str, user_id: str) -> bool:
        """Whether any attempt was ever made for the pair."""
        return any(
            r.alert_id == alert_id and r.user_id == user_id
            for r in self.records()
        )

    def last_delivered(self, alert_id: str, user_id: str) -> Optional[DeliveryRecord]:
        """Most recent successful delivery for the pair."""
        delivered = [r for r in self.records(alert_id, user_id) if r.delivered]
        if not delivered:
            return None
        return max(delivered, key=lambda r: r.delivered_at)

    def __len__(self) -> int:
        return len(self._records)


class NotificationDispatcher:
    """Fans a notification out to channels.

    A missing, unavailable, or failing channel marks the overall result
    failed but never stops delivery to the remaining channels, and
    never raises past the dispatcher.

    Example:
        dispatcher = NotificationDispatcher(ChannelRegistry(default_channels()))
        result = await dispatcher.deliver_notification(alert, user, ["inapp", "email"])
        if not result.success:
            logger.warning("Failed channels: %s", result.failed_channels)
    """

    def __init__(
        self,
        registry: Optional[ChannelRegistry] = None,
        log: Optional[DeliveryLog] = None,
        clock: Optional[Clock] = None,
        config: Optional[ReminderConfig] = None,
    ):
        self.config = config or DEFAULT_REMINDER_CONFIG
        self._registry = registry or ChannelRegistry()
        self._log = log or DeliveryLog()
        self._clock = clock or utc_now

    @property
    def registry(self) -> ChannelRegistry:
        return self._registry

    @property
    def delivery_log(self) -> DeliveryLog:
        return self._log

    def register_channel(self, channel: NotificationChannel) -> None:
        self._registry.register(channel)

    def unregister_channel(self, channel_type: str) -> bool:
        return self._registry.unregister(channel_type)

    def get_available_channels(self) -> list[str]:
        return self._registry.available_types()

    def get_delivery_log(self) -> list[DeliveryRecord]:
        return self._log.records()

    async def deliver_notification(
        self,
        alert: Alert,
        user: User,
        channel_types: Optional[list[str]] = None,
    ) -> DispatchResult:
        """Deliver one notification to each requested channel, in order.

        Args:
            alert: Alert being notified.
            user: Recipient.
            channel_types: Channel types to use. Defaults to the
                configured default channels.

        Returns:
            DispatchResult whose ``success`` is the AND of every attempt.
        """
        if channel_types is None:
            channel_types = list(self.config.default_channels)

        payload = NotificationPayload(
            alert_id=alert.alert_id,
            user_id=user.user_id,
            title=alert.title,
            message=alert.message,
            severity=alert.severity.value,
            timestamp=self._clock(),
        )

        dispatch = DispatchResult()
        for channel_type in channel_types:
            result = await self._deliver_one(channel_type, payload)
            dispatch.results.append(result)
            if not result.success:
                dispatch.success = False
            self._record(alert, user, channel_type, result)

        logger.info(
            "Delivered %s to %s via %d channel(s) (success=%s)",
            alert.alert_id,
            user.user_id,
            len(channel_types),
            dispatch.success,
        )
        return dispatch

    async def _deliver_one(self, channel_type: str, payload: NotificationPayload) -> ChannelResult:
        try:
            channel = self._registry.get(channel_type)
            if channel is None:
                raise ChannelNotFoundError(channel_type)
            try:
                available = channel.is_available()
            except Exception as exc:
                raise DeliveryFailedError(channel_type, exc) from exc
            if not available:
                raise ChannelUnavailableError(channel_type)
            try:
                return await channel.deliver(payload)
            except Exception as exc:
                raise DeliveryFailedError(channel_type, exc) from exc
        except ReminderError as exc:
            logger.warning(
                "Channel %s failed for %s/%s: %s",
                channel_type, payload.alert_id, payload.user_id, exc.message,
            )
            return ChannelResult(
                channel=channel_type,
                success=False,
                timestamp=self._clock(),
                error=exc.message,
            )

    def _record(
        self, alert: Alert, user: User, channel_type: str, result: ChannelResult,
    ) -> None:
        kwargs = {}
        if result.delivery_id:
            kwargs["record_id"] = result.delivery_id
        self._log.append(DeliveryRecord(
            alert_id=alert.alert_id,
            user_id=user.user_id,
            channel=channel_type,
            delivered=result.success,
            delivered_at=result.timestamp,
            error=result.error,
            **kwargs,
        ))
