"""Logging Setup.

One-call configuration for structured logging. JSON output for
deployments, colored console output for local runs.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from src.logging_config.config import DEFAULT_LOGGING_CONFIG, LogFormat, LoggingConfig
from src.logging_config.context import get_context_dict


class StructuredFormatter(logging.Formatter):
    """JSON log formatter.

    One object per line: timestamp, level, logger, message, service,
    plus the bound reminder context (alert_id, user_id, cycle_id).
    """

    def __init__(self, service_name: str = "alert-reminders", include_caller: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_caller = include_caller

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        if self.include_caller:
            entry["function"] = record.funcName
            entry["line"] = record.lineno

        entry.update(get_context_dict())

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored, human-readable formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S.%f")[:-3]

        ctx = get_context_dict()
        ctx_str = ""
        if ctx:
            ctx_str = " [" + ", ".join(f"{k}={v}" for k, v in ctx.items()) + "]"

        line = (
            f"{color}{stamp} {record.levelname:8s}{self.RESET} "
            f"{record.name}: {record.getMessage()}{ctx_str}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(config: Optional[LoggingConfig] = None) -> logging.Handler:
    """Configure the root logger. Call once at startup.

    Args:
        config: Logging configuration. Use ``LoggingConfig.from_settings``
                to honour REMINDERS_LOG_LEVEL / REMINDERS_LOG_FORMAT.

    Returns:
        The installed handler.
    """
    config = config or DEFAULT_LOGGING_CONFIG

    if config.format == LogFormat.JSON:
        formatter = StructuredFormatter(
            service_name=config.service_name,
            include_caller=config.include_caller,
        )
    else:
        formatter = ConsoleFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.level.value))

    for noisy in config.quiet_loggers:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return handler
