"""SQLAlchemy persistence for reminder state.

Tables:
- preferences: per (alert, user) read and snooze state
- deliveries: append-only delivery attempts

The in-memory stores stay authoritative at runtime; these helpers save
and restore full snapshots of them.
"""

import logging
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from src.reminders.clock import ensure_utc
from src.reminders.dispatcher import DeliveryLog
from src.reminders.models import DeliveryRecord, Preference
from src.reminders.preferences import PreferenceStore
from src.settings import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


class PreferenceRow(Base):
    """Read/snooze state for one alert and user."""

    __tablename__ = "preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    preference_id = Column(String(40), unique=True, nullable=False)
    alert_id = Column(String(64), nullable=False)
    user_id = Column(String(64), nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True))
    snoozed_until = Column(DateTime(timezone=True))
    last_snoozed_day = Column(Date)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("alert_id", "user_id", name="uq_preference_alert_user"),
        Index("ix_preferences_user", "user_id"),
    )


class DeliveryRow(Base):
    """One delivery attempt on one channel."""

    __tablename__ = "deliveries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(String(64), unique=True, nullable=False)
    alert_id = Column(String(64), nullable=False)
    user_id = Column(String(64), nullable=False)
    channel = Column(String(32), nullable=False)
    delivered = Column(Boolean, nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=False)
    error = Column(Text)

    __table_args__ = (
        Index("ix_deliveries_alert_user", "alert_id", "user_id"),
    )


def _aware(value):
    return ensure_utc(value) if value is not None else None


def get_engine(url: Optional[str] = None) -> Engine:
    """Create an engine and make sure both tables exist."""
    engine = create_engine(url or get_settings().database_url)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


def save_snapshot(session: Session, store: PreferenceStore, log: DeliveryLog) -> tuple[int, int]:
    """Upsert every preference and insert deliveries not yet stored.

    Returns:
        (preferences written, deliveries inserted)
    """
    existing = {
        (row.alert_id, row.user_id): row
        for row in session.query(PreferenceRow).all()
    }
    prefs = store.all_preferences()
    for pref in prefs:
        row = existing.get((pref.alert_id, pref.user_id))
        if row is None:
            row = PreferenceRow(
                preference_id=pref.preference_id,
                alert_id=pref.alert_id,
                user_id=pref.user_id,
            )
            session.add(row)
        row.read = pref.read
        row.read_at = pref.read_at
        row.snoozed_until = pref.snoozed_until
        row.last_snoozed_day = pref.last_snoozed_day
        row.updated_at = pref.updated_at

    stored_ids = {rid for (rid,) in session.query(DeliveryRow.record_id).all()}
    inserted = 0
    for record in log.records():
        if record.record_id in stored_ids:
            continue
        session.add(DeliveryRow(
            record_id=record.record_id,
            alert_id=record.alert_id,
            user_id=record.user_id,
            channel=record.channel,
            delivered=record.delivered,
            delivered_at=record.delivered_at,
            error=record.error,
        ))
        inserted += 1

    session.commit()
    logger.info("Saved %d preference(s) and %d new delivery record(s)", len(prefs), inserted)
    return len(prefs), inserted


def load_snapshot(session: Session, store: PreferenceStore, log: DeliveryLog) -> tuple[int, int]:
    """Restore stored state into the in-memory store and log.

    Datetimes come back as UTC-aware even from backends that drop the
    timezone. Deliveries are restored in timestamp order.

    Returns:
        (preferences loaded, deliveries appended)
    """
    prefs = [
        Preference(
            alert_id=row.alert_id,
            user_id=row.user_id,
            preference_id=row.preference_id,
            read=bool(row.read),
            read_at=_aware(row.read_at),
            snoozed_until=_aware(row.snoozed_until),
            last_snoozed_day=row.last_snoozed_day,
            updated_at=_aware(row.updated_at),
        )
        for row in session.query(PreferenceRow).all()
    ]
    records = [
        DeliveryRecord(
            alert_id=row.alert_id,
            user_id=row.user_id,
            channel=row.channel,
            delivered=bool(row.delivered),
            delivered_at=_aware(row.delivered_at),
            error=row.error,
            record_id=row.record_id,
        )
        for row in session.query(DeliveryRow).order_by(DeliveryRow.delivered_at, DeliveryRow.id)
    ]

    loaded = store.load(prefs)
    appended = log.extend(records)
    logger.info("Loaded %d preference(s) and %d delivery record(s)", loaded, appended)
    return loaded, appended
