"""Structured Logging.

JSON/console log formatting and reminder-scoped context binding
for the alert reminder service.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import ReminderContext, generate_cycle_id, get_context_dict
from src.logging_config.setup import ConsoleFormatter, StructuredFormatter, configure_logging

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "ReminderContext",
    "generate_cycle_id",
    "get_context_dict",
    "ConsoleFormatter",
    "StructuredFormatter",
    "configure_logging",
]
