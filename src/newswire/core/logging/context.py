"""
Monitor Context Management
=========================

Provides monitor_id tracing across all log messages using contextvars.
Every line logged while a monitor check is running carries the monitor id,
including lines emitted by providers and the aggregator it calls.

Usage:
------
```python
from newswire.core.logging.context import MonitorContext, get_monitor_id

async with MonitorContext("mon_ab12cd34"):
    # All logs within this context will include [mon_ab12cd34]
    logger.info("Check started")
    await aggregator.aggregate(query)
```
"""

from contextvars import ContextVar
from typing import Optional

# Context variable for monitor ID - thread-safe and async-safe
_monitor_id_var: ContextVar[Optional[str]] = ContextVar("monitor_id", default=None)


def get_monitor_id() -> Optional[str]:
    """Get the current monitor ID from context."""
    return _monitor_id_var.get()


class MonitorContext:
    """
    Context manager for monitor ID scoping.

    Resets the previous value on exit, even if exceptions occur.
    """

    def __init__(self, monitor_id: str):
        self.monitor_id = monitor_id
        self._token = None

    def __enter__(self):
        self._token = _monitor_id_var.set(self.monitor_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _monitor_id_var.reset(self._token)
        return False  # Don't suppress exceptions

    async def __aenter__(self):
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return self.__exit__(exc_type, exc_val, exc_tb)
