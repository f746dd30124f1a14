"""Reminder Context Management.

Binds the (alert, user) pair being processed to every log entry emitted
while a reminder is delivered. Uses contextvars, so concurrent reminder
tasks each see their own values.
"""

import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any


_alert_id_var: ContextVar[str] = ContextVar("alert_id", default="")
_user_id_var: ContextVar[str] = ContextVar("user_id", default="")
_cycle_id_var: ContextVar[str] = ContextVar("cycle_id", default="")


def generate_cycle_id() -> str:
    """Short unique id for one reminder delivery cycle."""
    return uuid.uuid4().hex[:12]


def get_context_dict() -> dict[str, Any]:
    """Get all bound context values for log enrichment."""
    ctx = {}
    for name, var in (
        ("alert_id", _alert_id_var),
        ("user_id", _user_id_var),
        ("cycle_id", _cycle_id_var),
    ):
        value = var.get()
        if value:
            ctx[name] = value
    return ctx


@dataclass
class ReminderContext:
    """Context manager binding reminder identity to log records.

    Restores the previous values on exit, so contexts can nest.

    Example:
        with ReminderContext(alert_id="a1", user_id="u2"):
            logger.info("delivering")  # includes alert_id, user_id, cycle_id
    """

    alert_id: str = ""
    user_id: str = ""
    cycle_id: str = ""

    _tokens: list[Token] = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.cycle_id:
            self.cycle_id = generate_cycle_id()

    def __enter__(self) -> "ReminderContext":
        self._tokens = [
            _alert_id_var.set(self.alert_id),
            _user_id_var.set(self.user_id),
            _cycle_id_var.set(self.cycle_id),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in zip(
            (_alert_id_var, _user_id_var, _cycle_id_var), self._tokens,
        ):
            var.reset(token)
        self._tokens = []
