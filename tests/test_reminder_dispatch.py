"""Tests for reminder channels and notification dispatch."""

import pytest

from src.reminders.channels import (
    ChannelRegistry,
    EmailChannel,
    InAppChannel,
    NotificationChannel,
    NotificationPayload,
    SMSChannel,
    default_channels,
)
from src.reminders.config import CHANNEL_NOT_AVAILABLE, CHANNEL_NOT_FOUND, ReminderConfig
from src.reminders.dispatcher import DeliveryLog, NotificationDispatcher
from src.reminders.models import DeliveryRecord


class ExplodingChannel:
    """Registered and available, but every delivery raises."""

    def __init__(self, error: str = "smtp timeout"):
        self.error = error

    @property
    def channel_type(self) -> str:
        return "webhook"

    def is_available(self) -> bool:
        return True

    async def deliver(self, payload):
        raise RuntimeError(self.error)


class UnhealthyChannel(ExplodingChannel):
    """Health check itself raises."""

    def is_available(self) -> bool:
        raise ConnectionError("health check failed")


@pytest.fixture
def payload(clock):
    return NotificationPayload(
        alert_id="a1", user_id="u1", title="Outage", message="API down",
        severity="Critical", timestamp=clock(),
    )


@pytest.fixture
def dispatcher(clock):
    return NotificationDispatcher(ChannelRegistry(default_channels(clock=clock)), clock=clock)


# ── Channels ─────────────────────────────────────────────────────────


class TestChannels:
    def test_protocol_conformance(self, clock):
        for channel in default_channels(clock=clock):
            assert isinstance(channel, NotificationChannel)

    @pytest.mark.asyncio
    async def test_inapp_inbox(self, clock, payload):
        channel = InAppChannel(clock=clock)
        result = await channel.deliver(payload)
        assert result.success is True
        assert result.delivery_id.startswith("inapp_")
        assert channel.inbox("u1") == [payload]
        assert channel.inbox("u2") == []

    @pytest.mark.asyncio
    async def test_email_without_transport(self, clock, payload):
        channel = EmailChannel(clock=clock)
        assert channel.is_available() is False
        result = await channel.deliver(payload)
        assert result.success is False
        assert result.error == "Email service not configured"

    @pytest.mark.asyncio
    async def test_email_with_async_transport(self, clock, payload):
        sent = []

        async def transport(p):
            sent.append(p)

        channel = EmailChannel(transport=transport, clock=clock)
        result = await channel.deliver(payload)
        assert result.success is True
        assert sent == [payload]

    @pytest.mark.asyncio
    async def test_sms_renders_short_text(self, clock, payload):
        sent = []
        channel = SMSChannel(transport=sent.append, clock=clock)
        await channel.deliver(payload)
        assert sent[0].message == "Outage: API down"

    @pytest.mark.asyncio
    async def test_sms_truncates(self, clock, payload):
        sent = []
        long_payload = NotificationPayload(
            alert_id="a1", user_id="u1", title="T", message="x" * 300,
            severity="Info", timestamp=clock(),
        )
        await SMSChannel(transport=sent.append, clock=clock).deliver(long_payload)
        assert len(sent[0].message) == 160


class TestChannelRegistry:
    def test_register_replaces_same_type(self, clock):
        registry = ChannelRegistry([InAppChannel(clock=clock)])
        replacement = InAppChannel(clock=clock)
        registry.register(replacement)
        assert registry.get("inapp") is replacement
        assert registry.registered_types == ["inapp"]

    def test_available_types(self, clock):
        registry = ChannelRegistry(default_channels(clock=clock, sms_transport=print))
        assert registry.available_types() == ["inapp", "sms"]

    def test_unregister(self, clock):
        registry = ChannelRegistry(default_channels(clock=clock))
        assert registry.unregister("email") is True
        assert registry.unregister("email") is False
        assert registry.get("email") is None


# ── Dispatcher ───────────────────────────────────────────────────────


class TestNotificationDispatcher:
    @pytest.mark.asyncio
    async def test_partial_failure(self, dispatcher, alert, user):
        result = await dispatcher.deliver_notification(alert, user, ["inapp", "email"])

        assert result.success is False
        assert [r.success for r in result.results] == [True, False]
        assert result.failed_channels == ["email"]

        log = dispatcher.get_delivery_log()
        assert len(log) == 2
        assert log[0].channel == "inapp" and log[0].delivered is True
        assert log[1].channel == "email" and log[1].delivered is False
        assert log[1].error == CHANNEL_NOT_AVAILABLE

    @pytest.mark.asyncio
    async def test_unknown_channel_logged(self, dispatcher, alert, user):
        result = await dispatcher.deliver_notification(alert, user, ["pager", "inapp"])
        assert result.success is False
        log = dispatcher.get_delivery_log()
        assert log[0].channel == "pager"
        assert log[0].error == CHANNEL_NOT_FOUND
        assert log[1].delivered is True

    @pytest.mark.asyncio
    async def test_raising_channel_recovered(self, dispatcher, alert, user):
        dispatcher.register_channel(ExplodingChannel())
        result = await dispatcher.deliver_notification(alert, user, ["webhook", "inapp"])
        assert result.success is False
        assert result.results[0].error == "smtp timeout"
        assert result.results[1].success is True

    @pytest.mark.asyncio
    async def test_raising_health_check_recovered(self, dispatcher, alert, user):
        dispatcher.register_channel(UnhealthyChannel())
        result = await dispatcher.deliver_notification(alert, user, ["webhook", "inapp"])

        assert result.success is False
        assert result.results[0].error == "health check failed"
        assert result.results[1].success is True

        log = dispatcher.get_delivery_log()
        assert len(log) == 2
        assert log[0].channel == "webhook" and log[0].delivered is False
        assert log[1].channel == "inapp" and log[1].delivered is True

    @pytest.mark.asyncio
    async def test_empty_error_message_becomes_unknown(self, dispatcher, alert, user):
        dispatcher.register_channel(ExplodingChannel(error=""))
        result = await dispatcher.deliver_notification(alert, user, ["webhook"])
        assert result.results[0].error == "Unknown error"

    @pytest.mark.asyncio
    async def test_default_channels_from_config(self, clock, alert, user):
        dispatcher = NotificationDispatcher(
            ChannelRegistry(default_channels(clock=clock)),
            clock=clock,
            config=ReminderConfig(default_channels=["inapp"]),
        )
        result = await dispatcher.deliver_notification(alert, user)
        assert result.success is True
        assert [r.channel for r in result.results] == ["inapp"]

    @pytest.mark.asyncio
    async def test_record_id_matches_delivery_id(self, dispatcher, alert, user):
        result = await dispatcher.deliver_notification(alert, user, ["inapp"])
        assert dispatcher.get_delivery_log()[0].record_id == result.results[0].delivery_id

    def test_available_channels(self, dispatcher):
        assert dispatcher.get_available_channels() == ["inapp"]


class TestDeliveryLog:
    def _record(self, clock, **overrides):
        fields = dict(alert_id="a1", user_id="u1", channel="inapp", delivered=True,
                      delivered_at=clock())
        fields.update(overrides)
        return DeliveryRecord(**fields)

    def test_filters_and_history(self, clock):
        log = DeliveryLog([
            self._record(clock),
            self._record(clock, user_id="u2", delivered=False),
        ])
        assert len(log.records(user_id="u2")) == 1
        assert log.has_history("a1", "u2") is True
        assert log.has_history("a2", "u1") is False

    def test_last_delivered_skips_failures(self, clock):
        first = self._record(clock)
        clock.advance(minutes=5)
        log = DeliveryLog([first, self._record(clock, delivered=False)])
        assert log.last_delivered("a1", "u1") == first

    def test_extend_skips_known_ids(self, clock):
        record = self._record(clock)
        log = DeliveryLog([record])
        assert log.extend([record, self._record(clock)]) == 1
        assert len(log) == 2
