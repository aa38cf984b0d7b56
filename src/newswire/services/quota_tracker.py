# src/newswire/services/quota_tracker.py
"""
Quota Tracker
Per-provider request budgets with calendar reset windows

Windows reset lazily: the first access after a window boundary starts the
new window. There is no background timer.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional

from newswire.utils.time import utc_now

logger = logging.getLogger(__name__)


class QuotaWindow(str, Enum):
    MONTHLY = "monthly"
    DAILY = "daily"


def window_start_for(moment: datetime, window: QuotaWindow) -> datetime:
    """Start of the calendar window (UTC) containing `moment`"""
    start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if window == QuotaWindow.MONTHLY:
        start = start.replace(day=1)
    return start


@dataclass
class ProviderQuota:
    provider_id: str
    limit: Optional[int]           # None = unlimited
    window: QuotaWindow
    window_start: datetime
    used: int = 0

    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(0, self.limit - self.used)

    def to_dict(self) -> dict:
        return {
            "provider_id": self.provider_id,
            "limit": self.limit,
            "used": self.used,
            "remaining": self.remaining(),
            "window": self.window.value,
            "window_start": self.window_start.isoformat(),
        }


class QuotaTracker:
    """
    Authoritative request counters for rate-limited providers.

    reserve() books one request before a provider call and refuses once the
    budget is spent. record() books any extra upstream requests the call
    made. Counters are never clamped or corrected downwards.

    Thread-safe: every read-modify-write happens under one lock, so concurrent
    rounds and monitors sharing a provider cannot race past the limit.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or utc_now
        self._quotas: Dict[str, ProviderQuota] = {}
        self._lock = threading.Lock()

    def register(
        self,
        provider_id: str,
        limit: Optional[int],
        window: QuotaWindow = QuotaWindow.MONTHLY,
    ) -> None:
        """Declare a provider's budget. Re-registering keeps the current usage."""
        with self._lock:
            existing = self._quotas.get(provider_id)
            if existing:
                existing.limit = limit
                existing.window = window
                return
            self._quotas[provider_id] = ProviderQuota(
                provider_id=provider_id,
                limit=limit,
                window=window,
                window_start=window_start_for(self._clock(), window),
            )

    def _get(self, provider_id: str) -> ProviderQuota:
        """Lookup plus lazy window rollover. Caller holds the lock."""
        quota = self._quotas.get(provider_id)
        if quota is None:
            # Unknown providers are unlimited
            quota = ProviderQuota(
                provider_id=provider_id,
                limit=None,
                window=QuotaWindow.MONTHLY,
                window_start=window_start_for(self._clock(), QuotaWindow.MONTHLY),
            )
            self._quotas[provider_id] = quota

        current_start = window_start_for(self._clock(), quota.window)
        if current_start > quota.window_start:
            logger.info(
                f"[Quota] {provider_id}: window rolled over "
                f"({quota.window_start.date()} -> {current_start.date()}), used={quota.used} reset"
            )
            quota.window_start = current_start
            quota.used = 0
        return quota

    def reset_if_window_elapsed(self, provider_id: str) -> None:
        with self._lock:
            self._get(provider_id)

    def reserve(self, provider_id: str) -> bool:
        """
        Book one request for `provider_id`.

        Returns:
            False when the budget for the current window is spent
        """
        with self._lock:
            quota = self._get(provider_id)
            if quota.limit is not None and quota.used >= quota.limit:
                logger.warning(
                    f"[Quota] {provider_id}: exhausted ({quota.used}/{quota.limit}), refusing call"
                )
                return False
            quota.used += 1
            return True

    def record(self, provider_id: str, used: int) -> None:
        """
        Report that a reserved call made `used` upstream requests.

        The first request was booked by reserve(); only the excess is added.
        """
        if used <= 1:
            return
        with self._lock:
            quota = self._get(provider_id)
            quota.used += used - 1
            logger.debug(f"[Quota] {provider_id}: +{used - 1} extra requests, used={quota.used}")

    def remaining(self, provider_id: str) -> Optional[int]:
        """Requests left in the window; None for unlimited providers"""
        with self._lock:
            return self._get(provider_id).remaining()

    def reset(self, provider_id: Optional[str] = None) -> None:
        """Zero the counters (one provider or all)"""
        with self._lock:
            targets = [provider_id] if provider_id else list(self._quotas)
            for pid in targets:
                if pid in self._quotas:
                    self._quotas[pid].used = 0

    def snapshot(self) -> Dict[str, dict]:
        with self._lock:
            return {pid: self._get(pid).to_dict() for pid in list(self._quotas)}
