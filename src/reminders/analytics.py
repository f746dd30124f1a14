"""Reminder analytics.

Point-in-time and windowed metrics derived from the alert catalog, the
delivery log, and the preference store. Nothing is cached: every call
takes a fresh snapshot of its inputs and recomputes.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Protocol

import pandas as pd

from src.reminders.clock import Clock, utc_now
from src.reminders.config import DEFAULT_REMINDER_CONFIG, ReminderConfig
from src.reminders.dispatcher import DeliveryLog
from src.reminders.models import Alert, DeliveryRecord, Preference
from src.reminders.preferences import PreferenceStore

logger = logging.getLogger(__name__)

DELIVERY_COLUMNS = ["record_id", "alert_id", "user_id", "channel", "delivered", "delivered_at", "error"]
PREFERENCE_COLUMNS = ["alert_id", "user_id", "read", "read_at", "snoozed"]


class AlertSource(Protocol):
    """Anything that can list the alert catalog."""

    def list_alerts(self) -> list[Alert]: ...


@dataclass
class AnalyticsData:
    """Basic counts."""
    total_alerts_created: int = 0
    alerts_active: int = 0
    delivered_count: int = 0
    read_count: int = 0
    snooze_counts_per_alert: dict[str, int] = field(default_factory=dict)
    severity_breakdown: dict[str, int] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "total_alerts_created": self.total_alerts_created,
            "alerts_active": self.alerts_active,
            "delivered_count": self.delivered_count,
            "read_count": self.read_count,
            "snooze_counts_per_alert": dict(self.snooze_counts_per_alert),
            "severity_breakdown": dict(self.severity_breakdown),
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass
class ResponseTimeMetrics:
    """Minutes between first successful delivery and the read."""
    average: float = 0.0
    median: float = 0.0
    fastest: float = 0.0
    slowest: float = 0.0
    samples: int = 0

    def to_dict(self) -> dict:
        return {
            "average": self.average,
            "median": self.median,
            "fastest": self.fastest,
            "slowest": self.slowest,
            "samples": self.samples,
        }


@dataclass
class ChannelPerformance:
    sent: int = 0
    delivered: int = 0
    failed: int = 0
    success_rate: int = 0

    def to_dict(self) -> dict:
        return {
            "sent": self.sent,
            "delivered": self.delivered,
            "failed": self.failed,
            "success_rate": self.success_rate,
        }


@dataclass
class TimeBasedMetrics:
    alerts_last_7_days: int = 0
    alerts_last_30_days: int = 0
    average_alerts_per_day: float = 0.0

    def to_dict(self) -> dict:
        return {
            "alerts_last_7_days": self.alerts_last_7_days,
            "alerts_last_30_days": self.alerts_last_30_days,
            "average_alerts_per_day": self.average_alerts_per_day,
        }


@dataclass
class UserEngagement:
    total: int = 0
    read: int = 0
    snoozed: int = 0

    @property
    def read_rate(self) -> float:
        return self.read / self.total * 100 if self.total else 0.0

    def to_dict(self) -> dict:
        return {"total": self.total, "read": self.read, "snoozed": self.snoozed}


@dataclass
class UserEngagementMetrics:
    total_active_users: int = 0
    average_engagement_rate: float = 0.0
    high_engagement_users: int = 0
    low_engagement_users: int = 0
    per_user: dict[str, UserEngagement] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_active_users": self.total_active_users,
            "average_engagement_rate": self.average_engagement_rate,
            "high_engagement_users": self.high_engagement_users,
            "low_engagement_users": self.low_engagement_users,
            "per_user": {uid: s.to_dict() for uid, s in self.per_user.items()},
        }


@dataclass
class AlertEffectiveness:
    alert_id: str
    title: str = ""
    severity: str = ""
    total_recipients: int = 0
    read_count: int = 0
    snooze_count: int = 0
    read_rate: float = 0.0
    snooze_rate: float = 0.0

    def to_dict(self) -> dict:
        return {
            "alert_id": self.alert_id,
            "title": self.title,
            "severity": self.severity,
            "total_recipients": self.total_recipients,
            "read_count": self.read_count,
            "snooze_count": self.snooze_count,
            "read_rate": self.read_rate,
            "snooze_rate": self.snooze_rate,
        }


@dataclass
class AlertEffectivenessMetrics:
    alert_stats: list[AlertEffectiveness] = field(default_factory=list)
    most_effective: list[AlertEffectiveness] = field(default_factory=list)
    least_effective: list[AlertEffectiveness] = field(default_factory=list)
    average_read_rate: float = 0.0

    def to_dict(self) -> dict:
        return {
            "alert_stats": [s.to_dict() for s in self.alert_stats],
            "most_effective": [s.to_dict() for s in self.most_effective],
            "least_effective": [s.to_dict() for s in self.least_effective],
            "average_read_rate": self.average_read_rate,
        }


@dataclass
class DetailedAnalyticsData(AnalyticsData):
    """Basic counts plus engagement, channel, time and effectiveness metrics."""
    engagement_rate: float = 0.0
    response_time_metrics: ResponseTimeMetrics = field(default_factory=ResponseTimeMetrics)
    channel_performance: dict[str, ChannelPerformance] = field(default_factory=dict)
    time_based_metrics: TimeBasedMetrics = field(default_factory=TimeBasedMetrics)
    user_engagement_metrics: UserEngagementMetrics = field(default_factory=UserEngagementMetrics)
    alert_effectiveness: AlertEffectivenessMetrics = field(default_factory=AlertEffectivenessMetrics)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "engagement_rate": self.engagement_rate,
            "response_time_metrics": self.response_time_metrics.to_dict(),
            "channel_performance": {
                ch: perf.to_dict() for ch, perf in self.channel_performance.items()
            },
            "time_based_metrics": self.time_based_metrics.to_dict(),
            "user_engagement_metrics": self.user_engagement_metrics.to_dict(),
            "alert_effectiveness": self.alert_effectiveness.to_dict(),
        })
        return data


class AnalyticsAggregator:
    """Computes reminder analytics on demand.

    Read-only over its inputs; each call works on one snapshot of the
    catalog, log, and preference store, so concurrent writers only make
    results slightly stale, never inconsistent within a report.

    Example:
        aggregator = AnalyticsAggregator(catalog, dispatcher.delivery_log, preferences)
        report = aggregator.generate_detailed_analytics()
        print(report.engagement_rate)
    """

    def __init__(
        self,
        alerts: AlertSource,
        delivery_log: DeliveryLog,
        preferences: PreferenceStore,
        clock: Optional[Clock] = None,
        config: Optional[ReminderConfig] = None,
    ):
        self.config = config or DEFAULT_REMINDER_CONFIG
        self._alerts = alerts
        self._log = delivery_log
        self._preferences = preferences
        self._clock = clock or utc_now

    def generate_analytics(self) -> AnalyticsData:
        alerts, records, prefs = self._snapshot()
        return self._basic(alerts, records, prefs, self._clock())

    def generate_detailed_analytics(self) -> DetailedAnalyticsData:
        now = self._clock()
        alerts, records, prefs = self._snapshot()
        basic = self._basic(alerts, records, prefs, now)

        engagement = 0.0
        if basic.delivered_count > 0:
            engagement = round(basic.read_count / basic.delivered_count * 100, 2)

        deliveries = self.delivery_frame(records)
        preferences = self.preference_frame(prefs)

        report = DetailedAnalyticsData(
            **basic.__dict__,
            engagement_rate=engagement,
            response_time_metrics=self._response_times(deliveries, preferences),
            channel_performance=self._channel_performance(deliveries),
            time_based_metrics=self._time_based(alerts, now),
            user_engagement_metrics=self._user_engagement(preferences),
            alert_effectiveness=self._alert_effectiveness(alerts, preferences),
        )
        logger.debug(
            "Analytics generated: %d alerts, %d deliveries, %d preferences",
            len(alerts), len(records), len(prefs),
        )
        return report

    # ── Frames ────────────────────────────────────────────────────────

    @staticmethod
    def delivery_frame(records: list[DeliveryRecord]) -> pd.DataFrame:
        """Delivery log as a DataFrame, one row per attempt."""
        return pd.DataFrame(
            [
                {
                    "record_id": r.record_id,
                    "alert_id": r.alert_id,
                    "user_id": r.user_id,
                    "channel": r.channel,
                    "delivered": bool(r.delivered),
                    "delivered_at": r.delivered_at,
                    "error": r.error,
                }
                for r in records
            ],
            columns=DELIVERY_COLUMNS,
        ).astype({"delivered": bool})

    @staticmethod
    def preference_frame(prefs: list[Preference]) -> pd.DataFrame:
        """Preferences as a DataFrame; ``snoozed`` means snoozed_until is set."""
        return pd.DataFrame(
            [
                {
                    "alert_id": p.alert_id,
                    "user_id": p.user_id,
                    "read": bool(p.read),
                    "read_at": p.read_at,
                    "snoozed": p.snoozed_until is not None,
                }
                for p in prefs
            ],
            columns=PREFERENCE_COLUMNS,
        ).astype({"read": bool, "snoozed": bool})

    # ── Sections ──────────────────────────────────────────────────────

    def _snapshot(self) -> tuple[list[Alert], list[DeliveryRecord], list[Preference]]:
        return (
            list(self._alerts.list_alerts()),
            self._log.records(),
            self._preferences.all_preferences(),
        )

    def _basic(
        self,
        alerts: list[Alert],
        records: list[DeliveryRecord],
        prefs: list[Preference],
        now: datetime,
    ) -> AnalyticsData:
        return AnalyticsData(
            total_alerts_created=len(alerts),
            alerts_active=sum(1 for a in alerts if a.is_active(now)),
            delivered_count=sum(1 for r in records if r.delivered),
            read_count=sum(1 for p in prefs if p.read),
            snooze_counts_per_alert=dict(Counter(
                p.alert_id for p in prefs if p.snoozed_until is not None
            )),
            severity_breakdown=dict(Counter(a.severity.value for a in alerts)),
            generated_at=now,
        )

    def _response_times(
        self, deliveries: pd.DataFrame, preferences: pd.DataFrame,
    ) -> ResponseTimeMetrics:
        if preferences.empty or deliveries.empty:
            return ResponseTimeMetrics()

        reads = preferences[preferences["read"] & preferences["read_at"].notna()]
        delivered = deliveries[deliveries["delivered"]]
        if reads.empty or delivered.empty:
            return ResponseTimeMetrics()

        merged = reads[["alert_id", "user_id", "read_at"]].merge(
            delivered[["alert_id", "user_id", "delivered_at"]],
            on=["alert_id", "user_id"],
        )
        merged = merged[merged["delivered_at"] <= merged["read_at"]]
        if merged.empty:
            return ResponseTimeMetrics()

        # First delivery before the read, per (alert, user)
        first = merged.groupby(["alert_id", "user_id"]).agg(
            read_at=("read_at", "first"),
            delivered_at=("delivered_at", "min"),
        )
        minutes = (
            pd.to_datetime(first["read_at"], utc=True)
            - pd.to_datetime(first["delivered_at"], utc=True)
        ).dt.total_seconds() / 60.0

        return ResponseTimeMetrics(
            average=round(float(minutes.mean()), 2),
            median=round(float(minutes.median()), 2),
            fastest=round(float(minutes.min()), 2),
            slowest=round(float(minutes.max()), 2),
            samples=int(len(minutes)),
        )

    def _channel_performance(self, deliveries: pd.DataFrame) -> dict[str, ChannelPerformance]:
        if deliveries.empty:
            return {}

        grouped = deliveries.groupby("channel", sort=False)["delivered"].agg(["count", "sum"])
        performance: dict[str, ChannelPerformance] = {}
        for channel, row in grouped.iterrows():
            sent = int(row["count"])
            delivered = int(row["sum"])
            performance[str(channel)] = ChannelPerformance(
                sent=sent,
                delivered=delivered,
                failed=sent - delivered,
                success_rate=round(delivered / sent * 100) if sent else 0,
            )
        return performance

    def _time_based(self, alerts: list[Alert], now: datetime) -> TimeBasedMetrics:
        short_days, long_days = self.config.rolling_windows_days
        short_start = now - timedelta(days=short_days)
        long_start = now - timedelta(days=long_days)

        last_short = sum(1 for a in alerts if a.created_at >= short_start)
        last_long = sum(1 for a in alerts if a.created_at >= long_start)

        return TimeBasedMetrics(
            alerts_last_7_days=last_short,
            alerts_last_30_days=last_long,
            average_alerts_per_day=round(last_long / long_days, 2),
        )

    def _user_engagement(self, preferences: pd.DataFrame) -> UserEngagementMetrics:
        if preferences.empty:
            return UserEngagementMetrics()

        grouped = preferences.groupby("user_id", sort=False).agg(
            total=("alert_id", "count"),
            read=("read", "sum"),
            snoozed=("snoozed", "sum"),
        )
        rates = grouped["read"] / grouped["total"] * 100

        per_user = {
            str(user_id): UserEngagement(
                total=int(row["total"]),
                read=int(row["read"]),
                snoozed=int(row["snoozed"]),
            )
            for user_id, row in grouped.iterrows()
        }
        return UserEngagementMetrics(
            total_active_users=len(grouped),
            average_engagement_rate=round(float(rates.mean()), 2),
            high_engagement_users=int((rates > self.config.high_engagement_threshold).sum()),
            low_engagement_users=int((rates < self.config.low_engagement_threshold).sum()),
            per_user=per_user,
        )

    def _alert_effectiveness(
        self, alerts: list[Alert], preferences: pd.DataFrame,
    ) -> AlertEffectivenessMetrics:
        counts: dict[str, dict] = {}
        if not preferences.empty:
            counts = preferences.groupby("alert_id").agg(
                total=("user_id", "count"),
                read=("read", "sum"),
                snoozed=("snoozed", "sum"),
            ).to_dict("index")

        stats = []
        for alert in alerts:
            row = counts.get(alert.alert_id, {})
            total = int(row.get("total", 0))
            read = int(row.get("read", 0))
            snoozed = int(row.get("snoozed", 0))
            stats.append(AlertEffectiveness(
                alert_id=alert.alert_id,
                title=alert.title,
                severity=alert.severity.value,
                total_recipients=total,
                read_count=read,
                snooze_count=snoozed,
                read_rate=read / total * 100 if total else 0.0,
                snooze_rate=snoozed / total * 100 if total else 0.0,
            ))

        # Stable sort keeps catalog order among ties
        top_n = self.config.effectiveness_top_n
        ranked = sorted(stats, key=lambda s: s.read_rate, reverse=True)
        average = sum(s.read_rate for s in stats) / len(stats) if stats else 0.0

        return AlertEffectivenessMetrics(
            alert_stats=stats,
            most_effective=ranked[:top_n],
            least_effective=list(reversed(ranked[-top_n:])) if top_n else [],
            average_read_rate=average,
        )
