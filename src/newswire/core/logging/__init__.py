"""
Logging System
==============

- Console output, colored text in development, JSON in production
- Optional daily-rotated file output (LOG_DIR)
- Monitor ID tracing via contextvars

Usage:
------
```python
from newswire.core.logging import setup_logging, get_logger, MonitorContext

setup_logging()
logger = get_logger(__name__)

with MonitorContext(monitor_id="mon_ab12cd34"):
    logger.info("Checking")  # Includes [mon_ab12cd34] in log
```
"""

from newswire.core.logging.config import setup_logging, get_logger, shutdown_logging
from newswire.core.logging.context import (
    MonitorContext,
    get_monitor_id,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "shutdown_logging",
    "MonitorContext",
    "get_monitor_id",
]
