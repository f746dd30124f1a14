"""CLI entry point: python main.py --hours 6 --users 3"""

import argparse
import asyncio
import json
from datetime import datetime, timedelta, timezone

from src.logging_config import LogFormat, LoggingConfig, LogLevel, configure_logging
from src.reminders import (
    Alert,
    AlertSeverity,
    AlertVisibility,
    SimulatedClock,
    User,
    build_reminder_service,
)
from src.settings import get_settings

START = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
STEP_MINUTES = 15


def build_alerts(now: datetime, hours: int) -> list[Alert]:
    expiry = now + timedelta(hours=hours + 24)
    return [
        Alert(
            title="Database failover drill",
            message="Primary database fails over at 14:00 UTC.",
            severity=AlertSeverity.WARNING,
            visibility=AlertVisibility(org=True),
            reminder_frequency_minutes=120,
            start_time=now,
            expiry_time=expiry,
            created_at=now,
        ),
        Alert(
            title="Payment gateway degraded",
            message="Card payments are failing intermittently.",
            severity=AlertSeverity.CRITICAL,
            visibility=AlertVisibility(teams=["ops"]),
            delivery_channels=["inapp", "email"],
            reminder_frequency_minutes=60,
            start_time=now,
            expiry_time=expiry,
            created_at=now,
        ),
        Alert(
            title="New expense policy",
            message="Please review the updated expense policy.",
            severity=AlertSeverity.INFO,
            visibility=AlertVisibility(org=True),
            reminder_frequency_minutes=240,
            start_time=now,
            expiry_time=expiry,
            created_at=now,
        ),
    ]


async def run_session(hours: int, users: int) -> dict:
    clock = SimulatedClock(START)
    service = build_reminder_service(clock=clock)

    for i in range(users):
        team = "ops" if i % 2 == 0 else "sales"
        service.catalog.add_user(User(user_id=f"u{i + 1}", name=f"User {i + 1}", team_id=team))

    alerts = build_alerts(clock(), hours)
    for alert in alerts:
        await service.create_alert(alert)

    # First user reads the first alert after an hour; the last user snoozes the third
    end = START + timedelta(hours=hours)
    while clock() < end:
        clock.advance(minutes=STEP_MINUTES)
        await service.scheduler.run_pending()
        if clock() == START + timedelta(hours=1):
            service.mark_alert_read(alerts[0].alert_id, "u1")
            await service.snooze_alert(alerts[2].alert_id, f"u{users}")

    summary = {
        "simulated_hours": hours,
        "users": users,
        "events": service.reminder_log.counts(),
        "deliveries": len(service.get_delivery_log()),
        "pending_reminders": service.scheduler.pending_count,
        "analytics": service.get_detailed_analytics().to_dict(),
    }
    await service.stop()
    return summary


def main():
    parser = argparse.ArgumentParser(
        description="Alert reminders - simulated reminder session"
    )
    parser.add_argument(
        "--hours", type=int, default=6,
        help="Simulated hours to run (default: 6)"
    )
    parser.add_argument(
        "--users", type=int, default=3,
        help="Number of simulated users (default: 3)"
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Show reminder logs on the console"
    )
    args = parser.parse_args()

    if args.hours < 1 or args.users < 1:
        parser.error("--hours and --users must be at least 1")

    settings = get_settings()
    config = LoggingConfig.from_settings(settings)
    config.format = LogFormat.CONSOLE
    config.level = LogLevel.DEBUG if args.verbose else LogLevel.WARNING
    configure_logging(config)

    summary = asyncio.run(run_session(args.hours, args.users))
    print(json.dumps(summary, indent=2, default=str))
    return summary


if __name__ == "__main__":
    main()
