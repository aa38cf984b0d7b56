"""
Log Formatters

- DevFormatter: colored console text
- FileFormatter: plain text for the rotating file
- JsonFormatter: one JSON object per line (LOG_FORMAT=json)

Lines logged inside a MonitorContext carry the monitor id:

    2026-01-11 12:00:00 | INFO  | MonitorRegistry           | [mon_ab12cd34] 3 new articles
    {"timestamp": "2026-01-11T12:00:00.000Z", "level": "INFO", "logger": "MonitorRegistry", "monitor_id": "mon_ab12cd34", "message": "3 new articles"}
"""

import json
import logging
from datetime import datetime, timezone

from newswire.core.logging.context import get_monitor_id

# LogRecord attributes; anything else on a record came from `extra=`
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "taskName"}

LOGGER_NAME_WIDTH = 25


def _monitor_prefix() -> str:
    monitor_id = get_monitor_id()
    return f"[{monitor_id}] " if monitor_id else ""


def _message(formatter: logging.Formatter, record: logging.LogRecord) -> str:
    message = record.getMessage()
    if record.exc_info:
        message = f"{message}\n{formatter.formatException(record.exc_info)}"
    return message


class DevFormatter(logging.Formatter):
    """{timestamp} | {level} | {logger} | [{monitor_id}] {message}"""

    COLORS = {
        "DEBUG": "\x1b[38;5;244m",       # gray
        "INFO": "\x1b[38;5;39m",         # blue
        "WARNING": "\x1b[38;5;208m",     # orange
        "ERROR": "\x1b[38;5;196m",       # red
        "CRITICAL": "\x1b[38;5;196;1m",  # bold red
    }
    RESET = "\x1b[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        name = record.name
        if len(name) > LOGGER_NAME_WIDTH:
            name = "..." + name[-(LOGGER_NAME_WIDTH - 3):]

        line = (
            f"{timestamp} | {record.levelname.ljust(5)} | {name.ljust(LOGGER_NAME_WIDTH)} | "
            f"{_monitor_prefix()}{_message(self, record)}"
        )
        if self.use_colors:
            line = f"{self.COLORS.get(record.levelname, '')}{line}{self.RESET}"
        return line


class FileFormatter(logging.Formatter):
    """Like DevFormatter without colors or truncation, with milliseconds"""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S,%f")[:23]
        return (
            f"{timestamp} | {record.levelname.ljust(8)} | {record.name} | "
            f"{_monitor_prefix()}{_message(self, record)}"
        )


class JsonFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        monitor_id = get_monitor_id()
        if monitor_id:
            entry["monitor_id"] = monitor_id

        if record.exc_info:
            entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "traceback": self.formatException(record.exc_info),
            }

        extra = {k: v for k, v in vars(record).items() if k not in _RESERVED_ATTRS}
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, ensure_ascii=False, default=str)
