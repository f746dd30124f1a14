"""Tests for reminder read/snooze preferences."""

from datetime import date, datetime, timedelta, timezone

import pytest

from src.reminders.config import ReminderConfig
from src.reminders.errors import ErrorCode, PreferenceNotFoundError
from src.reminders.models import Preference
from src.reminders.preferences import PreferenceStore


@pytest.fixture
def store(clock):
    return PreferenceStore(clock=clock)


class TestReadAxis:
    def test_mark_as_read_creates_record(self, store, clock):
        assert store.get_preference("a1", "u1") is None
        pref = store.mark_as_read("a1", "u1")
        assert pref.read is True
        assert pref.read_at == clock()
        assert store.get_preference("a1", "u1") == pref

    def test_read_at_keeps_first_read(self, store, clock):
        first = store.mark_as_read("a1", "u1").read_at
        clock.advance(minutes=10)
        assert store.mark_as_read("a1", "u1").read_at == first

    def test_mark_as_unread_clears_read_at(self, store):
        store.mark_as_read("a1", "u1")
        pref = store.mark_as_unread("a1", "u1")
        assert pref.read is False
        assert pref.read_at is None

    def test_unread_on_new_key_creates_record(self, store):
        pref = store.mark_as_unread("a2", "u1")
        assert pref.read is False
        assert len(store.all_preferences()) == 1

    def test_previous_snapshot_unchanged(self, store):
        before = store.mark_as_unread("a1", "u1")
        store.mark_as_read("a1", "u1")
        assert before.read is False


class TestSnoozeAxis:
    def test_snooze_until_end_of_day(self, store):
        pref = store.snooze_for_day("a1", "u1")
        assert pref.snoozed_until == datetime(
            2024, 1, 1, 23, 59, 59, 999999, tzinfo=timezone.utc,
        )
        assert pref.last_snoozed_day == date(2024, 1, 1)
        assert store.is_snoozed_for_today("a1", "u1") is True

    def test_snooze_uses_configured_timezone(self, clock):
        store = PreferenceStore(
            clock=clock, config=ReminderConfig(snooze_timezone="America/New_York"),
        )
        # 09:00 UTC is 04:00 in New York; local midnight is 05:00 UTC next day
        pref = store.snooze_for_day("a1", "u1")
        assert pref.last_snoozed_day == date(2024, 1, 1)
        assert pref.snoozed_until > datetime(2024, 1, 2, 4, 59, tzinfo=timezone.utc)
        assert pref.snoozed_until < datetime(2024, 1, 2, 5, 0, tzinfo=timezone.utc)

    def test_not_snoozed_without_record(self, store):
        assert store.is_snoozed_for_today("a1", "u1") is False

    def test_unsnooze_clears_fields(self, store):
        store.snooze_for_day("a1", "u1")
        pref = store.unsnooze("a1", "u1")
        assert pref.snoozed_until is None
        assert pref.last_snoozed_day is None
        assert store.is_snoozed_for_today("a1", "u1") is False

    def test_unsnooze_missing_record_raises(self, store):
        with pytest.raises(PreferenceNotFoundError) as exc_info:
            store.unsnooze("a1", "u1")
        assert exc_info.value.error_code == ErrorCode.PREFERENCE_NOT_FOUND
        assert exc_info.value.message == "Preference not found"

    def test_should_reset_snooze_next_day(self, store, clock):
        store.snooze_for_day("a1", "u1")
        assert store.should_reset_snooze("a1", "u1") is False
        clock.advance(days=1)
        assert store.should_reset_snooze("a1", "u1") is True

    def test_should_reset_without_snooze(self, store):
        store.mark_as_read("a1", "u1")
        assert store.should_reset_snooze("a1", "u1") is False


class TestSnoozeSweep:
    def test_expired_snoozes_reset(self, store, clock):
        store.snooze_for_day("a1", "u1")
        store.snooze_for_day("a2", "u1")
        clock.set(datetime(2024, 1, 2, 0, 0, 1, tzinfo=timezone.utc))

        assert store.reset_expired_snoozes() == 2
        for pref in store.all_preferences():
            assert pref.snoozed_until is None
            assert pref.last_snoozed_day is None

    def test_active_snoozes_kept(self, store, clock):
        store.snooze_for_day("a1", "u1")
        clock.advance(hours=1)
        assert store.reset_expired_snoozes() == 0
        assert store.is_snoozed_for_today("a1", "u1") is True

    def test_sweep_keeps_read_state(self, store, clock):
        store.mark_as_read("a1", "u1")
        store.snooze_for_day("a1", "u1")
        clock.advance(days=1)
        store.reset_expired_snoozes()
        assert store.get_preference("a1", "u1").read is True


class TestAxisIndependence:
    def test_snooze_keeps_read(self, store):
        store.mark_as_read("a1", "u1")
        pref = store.snooze_for_day("a1", "u1")
        assert pref.read is True

    def test_unread_keeps_snooze(self, store):
        store.snooze_for_day("a1", "u1")
        pref = store.mark_as_unread("a1", "u1")
        assert pref.snoozed_until is not None

    def test_unsnooze_keeps_read(self, store):
        store.mark_as_read("a1", "u1")
        store.snooze_for_day("a1", "u1")
        pref = store.unsnooze("a1", "u1")
        assert pref.read is True


class TestQueries:
    def test_filters(self, store):
        store.mark_as_read("a1", "u1")
        store.mark_as_read("a1", "u2")
        store.mark_as_read("a2", "u1")
        assert {p.alert_id for p in store.user_preferences("u1")} == {"a1", "a2"}
        assert {p.user_id for p in store.alert_preferences("a1")} == {"u1", "u2"}

    def test_load_replaces_by_key(self, clock):
        store = PreferenceStore([Preference(alert_id="a1", user_id="u1")], clock=clock)
        count = store.load([Preference(alert_id="a1", user_id="u1", read=True)])
        assert count == 1
        assert len(store.all_preferences()) == 1
        assert store.get_preference("a1", "u1").read is True

    def test_is_snoozed_boundary(self, clock):
        pref = Preference(
            alert_id="a1", user_id="u1", snoozed_until=clock() + timedelta(seconds=1),
        )
        assert pref.is_snoozed(clock()) is True
        assert pref.is_snoozed(clock() + timedelta(seconds=1)) is False
