"""In-memory alert and user catalog.

Stands in for the external catalog that owns alerts and users. The
reminder core only reads from it; visibility is decided by an
injectable resolver.
"""

import logging
import threading
from dataclasses import replace
from typing import Callable, Iterable, Optional

from src.reminders.clock import Clock, utc_now
from src.reminders.errors import AlertNotFoundError, UserNotFoundError
from src.reminders.models import Alert, User

logger = logging.getLogger(__name__)

VisibilityResolver = Callable[[Alert, User], bool]


def default_visibility(alert: Alert, user: User) -> bool:
    """Org-wide alerts reach everyone; otherwise match team or user id."""
    visibility = alert.visibility
    return (
        visibility.org
        or user.team_id in visibility.teams
        or user.user_id in visibility.users
    )


class AlertCatalog:
    """Keyed store of alerts and users."""

    def __init__(
        self,
        alerts: Optional[Iterable[Alert]] = None,
        users: Optional[Iterable[User]] = None,
        visibility: Optional[VisibilityResolver] = None,
        clock: Optional[Clock] = None,
    ):
        self._alerts: dict[str, Alert] = {a.alert_id: a for a in alerts or []}
        self._users: dict[str, User] = {u.user_id: u for u in users or []}
        self._visibility = visibility or default_visibility
        self._clock = clock or utc_now
        self._lock = threading.Lock()

    def add_alert(self, alert: Alert) -> Alert:
        with self._lock:
            self._alerts[alert.alert_id] = alert
        return alert

    def add_user(self, user: User) -> User:
        with self._lock:
            self._users[user.user_id] = user
        return user

    def get_alert(self, alert_id: str) -> Alert:
        alert = self._alerts.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert

    def get_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def update_alert(self, alert_id: str, **changes) -> Alert:
        """Replace an alert with an updated copy.

        Raises:
            AlertNotFoundError: unknown alert id.
            InvalidAlertError: the updated alert violates its invariants.
        """
        with self._lock:
            existing = self._alerts.get(alert_id)
            if existing is None:
                raise AlertNotFoundError(alert_id)
            updated = replace(existing, **{**changes, "updated_at": self._clock()})
            self._alerts[alert_id] = updated
        logger.info("Updated alert %s (%s)", alert_id, ", ".join(sorted(changes)))
        return updated

    def list_alerts(self) -> list[Alert]:
        with self._lock:
            return list(self._alerts.values())

    def list_users(self) -> list[User]:
        with self._lock:
            return list(self._users.values())

    def eligible_users(self, alert: Alert) -> list[User]:
        """Users allowed to see the alert."""
        return [u for u in self.list_users() if self._visibility(alert, u)]

    def visible_alerts(self, user: User) -> list[Alert]:
        return [a for a in self.list_alerts() if self._visibility(a, user)]
