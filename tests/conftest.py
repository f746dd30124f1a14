"""Pytest configuration and shared fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.reminders.clock import SimulatedClock  # noqa: E402
from src.reminders.config import AlertSeverity  # noqa: E402
from src.reminders.models import Alert, AlertVisibility, User  # noqa: E402
from src.reminders.service import build_reminder_service  # noqa: E402
from src.settings import Settings  # noqa: E402

START = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def make_alert(start: datetime = START, **overrides) -> Alert:
    """Active, org-wide, in-app alert with hourly reminders."""
    fields = dict(
        title="Maintenance window",
        message="Systems go read-only at 18:00.",
        severity=AlertSeverity.WARNING,
        visibility=AlertVisibility(org=True),
        reminder_frequency_minutes=60,
        start_time=start,
        expiry_time=start + timedelta(days=2),
        created_at=start,
    )
    fields.update(overrides)
    return Alert(**fields)


@pytest.fixture
def clock():
    return SimulatedClock(START)


@pytest.fixture
def alert():
    return make_alert(alert_id="a1")


@pytest.fixture
def user():
    return User(user_id="u1", name="Ada", team_id="ops")


@pytest.fixture
def users():
    return [
        User(user_id="u1", name="Ada", team_id="ops"),
        User(user_id="u2", name="Grace", team_id="ops"),
        User(user_id="u3", name="Linus", team_id="sales"),
    ]


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def service(clock, users, settings):
    svc = build_reminder_service(settings=settings, clock=clock)
    for u in users:
        svc.catalog.add_user(u)
    return svc


@pytest.fixture
def alert_factory():
    return make_alert
