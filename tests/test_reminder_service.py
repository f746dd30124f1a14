"""Tests for the reminder service facade."""

from datetime import datetime, timedelta, timezone

import pytest

from src.reminders.catalog import AlertCatalog, default_visibility
from src.reminders.config import ReminderEventType
from src.reminders.errors import (
    AlertNotFoundError,
    InvalidAlertError,
    PreferenceNotFoundError,
    UserNotFoundError,
)
from src.reminders.models import AlertVisibility
from src.reminders.service import ReminderLog, build_reminder_service
from src.settings import Settings

START = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


class TestBuildService:
    def test_email_disabled_by_default(self, service):
        assert service.get_available_channels() == ["inapp"]

    def test_enabled_channels_available(self, clock):
        settings = Settings(_env_file=None, email_enabled=True, sms_enabled=True)
        svc = build_reminder_service(settings=settings, clock=clock)
        assert svc.get_available_channels() == ["inapp", "email", "sms"]

    @pytest.mark.asyncio
    async def test_enabled_email_delivers(self, clock, user, alert_factory):
        settings = Settings(_env_file=None, email_enabled=True)
        svc = build_reminder_service(settings=settings, clock=clock)
        svc.catalog.add_user(user)
        await svc.create_alert(alert_factory(delivery_channels=["inapp", "email"]))
        assert [r.delivered for r in svc.get_delivery_log()] == [True, True]


class TestCatalog:
    def test_visibility(self, users, alert_factory):
        alert = alert_factory(visibility=AlertVisibility(teams=["sales"], users=["u1"]))
        visible = [u.user_id for u in users if default_visibility(alert, u)]
        assert visible == ["u1", "u3"]

    def test_lookups_raise(self, clock):
        catalog = AlertCatalog(clock=clock)
        with pytest.raises(AlertNotFoundError):
            catalog.get_alert("missing")
        with pytest.raises(UserNotFoundError):
            catalog.get_user("missing")

    def test_update_sets_updated_at(self, alert, clock):
        catalog = AlertCatalog([alert], clock=clock)
        clock.advance(minutes=5)
        updated = catalog.update_alert("a1", title="Changed")
        assert updated.title == "Changed"
        assert updated.updated_at == START + timedelta(minutes=5)
        assert alert.title == "Maintenance window"


class TestCreateAlert:
    @pytest.mark.asyncio
    async def test_schedules_eligible_users(self, service, alert):
        await service.create_alert(alert)

        assert len(service.get_delivery_log()) == 3
        assert service.scheduler.pending_count == 3
        for user_id in ("u1", "u2", "u3"):
            assert service.scheduler.get_next_fire_time(("a1", user_id)) == START + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_team_alert(self, service, alert_factory):
        await service.create_alert(
            alert_factory(alert_id="ops", visibility=AlertVisibility(teams=["ops"])),
        )
        assert {k.user_id for k in service.scheduler.get_active_reminders()} == {"u1", "u2"}

    @pytest.mark.asyncio
    async def test_future_alert_not_scheduled(self, service, alert_factory):
        await service.create_alert(alert_factory(start=START + timedelta(hours=2)))
        assert service.scheduler.pending_count == 0
        assert service.get_delivery_log() == []

    @pytest.mark.asyncio
    async def test_disabled_reminders(self, service, alert_factory):
        await service.create_alert(alert_factory(reminder_enabled=False))
        assert service.scheduler.pending_count == 0

    @pytest.mark.asyncio
    async def test_reminder_log_records_events(self, service, alert):
        await service.create_alert(alert)
        counts = service.reminder_log.counts()
        assert counts == {"scheduled": 6, "triggered": 3, "error": 0}

    @pytest.mark.asyncio
    async def test_initialize_reminders(self, service, alert):
        service.catalog.add_alert(alert)
        assert await service.initialize_reminders() == 3
        assert service.scheduler.pending_count == 3


class TestUpdateAlert:
    @pytest.mark.asyncio
    async def test_frequency_change_reschedules(self, service, alert):
        await service.create_alert(alert)
        await service.update_alert("a1", reminder_frequency_minutes=30)
        assert service.scheduler.get_next_fire_time(("a1", "u1")) == START + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_archive_clears(self, service, alert):
        await service.create_alert(alert)
        updated = await service.update_alert("a1", archived=True)
        assert updated.archived is True
        assert service.scheduler.pending_count == 0

    @pytest.mark.asyncio
    async def test_cosmetic_change_keeps_timers(self, service, alert):
        await service.create_alert(alert)
        service.reminder_log.clear()
        await service.update_alert("a1", title="Renamed")
        assert service.scheduler.pending_count == 3
        assert len(service.reminder_log) == 0

    @pytest.mark.asyncio
    async def test_unknown_alert(self, service):
        with pytest.raises(AlertNotFoundError):
            await service.update_alert("missing", archived=True)

    @pytest.mark.asyncio
    async def test_invalid_window(self, service, alert):
        await service.create_alert(alert)
        with pytest.raises(InvalidAlertError):
            await service.update_alert("a1", expiry_time=START - timedelta(hours=1))
        assert service.catalog.get_alert("a1").expiry_time == alert.expiry_time


class TestUserActions:
    @pytest.mark.asyncio
    async def test_snooze_clears_reminder(self, service, alert):
        await service.create_alert(alert)
        pref = await service.snooze_alert("a1", "u1")

        assert pref.snoozed_until is not None
        assert service.scheduler.get_next_fire_time(("a1", "u1")) is None
        assert service.scheduler.pending_count == 2

    @pytest.mark.asyncio
    async def test_unsnooze_reschedules(self, service, alert, clock):
        await service.create_alert(alert)
        await service.snooze_alert("a1", "u1")
        clock.advance(minutes=70)
        await service.unsnooze_alert("a1", "u1")
        assert service.scheduler.get_next_fire_time(("a1", "u1")) == START + timedelta(hours=2)

    @pytest.mark.asyncio
    async def test_unsnooze_without_record(self, service, alert):
        await service.create_alert(alert)
        with pytest.raises(PreferenceNotFoundError):
            await service.unsnooze_alert("a1", "u2")

    @pytest.mark.asyncio
    async def test_unknown_user(self, service, alert):
        await service.create_alert(alert)
        with pytest.raises(UserNotFoundError):
            await service.snooze_alert("a1", "ghost")

    @pytest.mark.asyncio
    async def test_read_does_not_stop_reminders(self, service, alert):
        await service.create_alert(alert)
        pref = service.mark_alert_read("a1", "u1")
        assert pref.read is True
        assert service.scheduler.get_next_fire_time(("a1", "u1")) is not None

        pref = service.mark_alert_unread("a1", "u1")
        assert pref.read is False


class TestUserAlerts:
    @pytest.mark.asyncio
    async def test_view(self, service, alert, alert_factory):
        await service.create_alert(alert)
        await service.create_alert(
            alert_factory(alert_id="sales", visibility=AlertVisibility(teams=["sales"])),
        )
        service.mark_alert_read("a1", "u1")

        views = service.user_alerts("u1")
        assert [v.alert.alert_id for v in views] == ["a1"]
        assert views[0].preference.read is True
        assert views[0].next_reminder_at == START + timedelta(hours=1)
        assert views[0].is_eligible_for_reminder is True
        assert views[0].to_dict()["read"] is True

    @pytest.mark.asyncio
    async def test_snoozed_not_eligible(self, service, alert):
        await service.create_alert(alert)
        await service.snooze_alert("a1", "u1")
        view = service.user_alerts("u1")[0]
        assert view.is_eligible_for_reminder is False
        assert view.next_reminder_at is None

    @pytest.mark.asyncio
    async def test_expired_snooze_reset_on_read(self, service, alert, clock):
        await service.create_alert(alert)
        await service.snooze_alert("a1", "u1")
        clock.advance(days=1)
        view = service.user_alerts("u1")[0]
        assert view.preference.snoozed_until is None
        assert view.is_eligible_for_reminder is True

    def test_unknown_user(self, service):
        with pytest.raises(UserNotFoundError):
            service.user_alerts("ghost")


class TestTriggerReminders:
    @pytest.mark.asyncio
    async def test_skips_snoozed(self, service, alert):
        await service.create_alert(alert)
        await service.snooze_alert("a1", "u1")

        assert await service.trigger_reminders() == 2
        assert len(service.get_delivery_log()) == 5

    @pytest.mark.asyncio
    async def test_partial_failure_still_counted(self, service, alert_factory):
        await service.create_alert(alert_factory(delivery_channels=["inapp", "email"]))
        triggered = service.reminder_log.of_type(ReminderEventType.TRIGGERED)
        assert len(triggered) == 3
        assert all(e.success is False for e in triggered)


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_simulated_day(self, service, alert, clock):
        await service.create_alert(alert)
        service.mark_alert_read("a1", "u1")

        for _ in range(4):
            clock.advance(hours=1)
            await service.scheduler.run_pending()

        # 3 immediate + 3 users x 4 hourly cycles
        assert len(service.get_delivery_log()) == 15
        report = service.get_detailed_analytics()
        assert report.delivered_count == 15
        assert report.read_count == 1

    @pytest.mark.asyncio
    async def test_stop_clears_timers(self, service, alert):
        await service.create_alert(alert)
        await service.stop()
        assert service.scheduler.pending_count == 0


class TestReminderLog:
    def test_counts_start_at_zero(self):
        assert ReminderLog().counts() == {"scheduled": 0, "triggered": 0, "error": 0}
