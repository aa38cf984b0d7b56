"""
Logging Configuration
====================

Settings (newswire.config, read from the environment / .env):
---------------------------------------------------------------
- LOG_LEVEL: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
- LOG_FORMAT: "json" for production, "text" for development (default)
- LOG_DIR: When set, also write to {LOG_DIR}/newswire.log rotated daily
- LOG_RETENTION_DAYS: Rotated files to keep (default: 15)
- LOG_CONSOLE: Console output (default: true)
- ENV_STATE: "production" forces JSON

Usage:
------
```python
from newswire.core.logging import setup_logging, get_logger

# Initialize at app startup (once)
setup_logging()

logger = get_logger("newswire.monitor")
logger.info("Monitor started")
```
"""

import sys
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from newswire.config import Settings, get_settings
from newswire.core.logging.formatters import DevFormatter, JsonFormatter, FileFormatter


# Cache for configured loggers
_configured_loggers: Dict[str, logging.Logger] = {}
_logging_initialized = False


def get_config(settings: Optional[Settings] = None) -> dict:
    """Get logging configuration from Settings."""
    settings = settings or get_settings()
    return {
        "level": settings.LOG_LEVEL.upper(),
        "format": settings.LOG_FORMAT.lower(),
        "log_dir": settings.LOG_DIR,
        "retention_days": settings.LOG_RETENTION_DAYS,
        "console_enabled": settings.LOG_CONSOLE,
        "is_production": settings.ENV_STATE.lower() == "production",
    }


def _create_file_handler(log_dir: str, use_json: bool, retention_days: int) -> logging.Handler:
    """Daily rotating file handler under log_dir."""
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)

    handler = TimedRotatingFileHandler(
        filename=str(path / "newswire.log"),
        when="midnight",
        backupCount=retention_days,
        encoding="utf-8",
    )
    handler.setFormatter(JsonFormatter() if use_json else FileFormatter())
    return handler


def setup_logging(
    level: Optional[str] = None,
    use_json: Optional[bool] = None,
    console: Optional[bool] = None,
    settings: Optional[Settings] = None,
) -> None:
    """
    Initialize the logging system.

    Call this once at application startup.

    Args:
        level: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Override format (True for JSON, False for text)
        console: Override console output (True to enable)
        settings: Settings to read (defaults to get_settings())
    """
    global _logging_initialized

    if _logging_initialized:
        return

    config = get_config(settings)

    # Apply overrides
    if level:
        config["level"] = level.upper()
    if use_json is not None:
        config["format"] = "json" if use_json else "text"
    if console is not None:
        config["console_enabled"] = console

    log_level = getattr(logging, config["level"], logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    use_json_format = config["format"] == "json" or config["is_production"]

    if config["console_enabled"]:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        if use_json_format:
            console_handler.setFormatter(JsonFormatter())
        else:
            console_handler.setFormatter(DevFormatter(use_colors=sys.stdout.isatty()))
        root_logger.addHandler(console_handler)

    if config["log_dir"]:
        root_logger.addHandler(
            _create_file_handler(config["log_dir"], use_json_format, config["retention_days"])
        )

    # Configure third-party loggers to reduce noise
    _configure_third_party_loggers(log_level)

    _logging_initialized = True

    root_logger.info(
        f"Logging initialized: level={config['level']}, "
        f"format={'json' if use_json_format else 'text'}, "
        f"dir={config['log_dir'] or '-'}"
    )


def _configure_third_party_loggers(level: int) -> None:
    """Configure third-party library loggers to reduce noise."""
    noisy_loggers = [
        "httpx",
        "httpcore",
        "asyncio",
        "redis",
        "apscheduler",
        "apscheduler.scheduler",
        "apscheduler.executors.default",
    ]

    for name in noisy_loggers:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger.

    Args:
        name: Logger name (e.g., module name). If None, uses "newswire"
    """
    if not _logging_initialized:
        setup_logging()

    if name is None:
        name = "newswire"

    if name in _configured_loggers:
        return _configured_loggers[name]

    logger = logging.getLogger(name)
    _configured_loggers[name] = logger
    return logger


def shutdown_logging() -> None:
    """
    Shutdown the logging system.

    Call this at application shutdown to ensure all logs are flushed.
    """
    global _logging_initialized

    logging.shutdown()
    _configured_loggers.clear()
    _logging_initialized = False
