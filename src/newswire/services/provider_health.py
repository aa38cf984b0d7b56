import time
import threading
import logging
from enum import Enum
from typing import Callable, Dict, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime


class CircuitState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"       # Normal - provider is called
    OPEN = "open"           # Failing - provider is skipped
    HALF_OPEN = "half_open" # Testing - one round allowed through


@dataclass
class ProviderHealthStats:
    """Health and performance record for a single provider"""
    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    total_requests: int = 0
    failed_requests: int = 0
    total_rejections: int = 0
    avg_response_time_ms: float = 1000.0
    last_failure_time: Optional[float] = None
    last_error: Optional[str] = None
    last_state_change: float = field(default_factory=time.time)

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 1.0
        return (self.total_requests - self.failed_requests) / self.total_requests

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/monitoring"""
        return {
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
            "total_rejections": self.total_rejections,
            "success_rate": round(self.success_rate, 3),
            "avg_response_time_ms": round(self.avg_response_time_ms, 1),
            "last_error": self.last_error,
            "last_failure": datetime.fromtimestamp(self.last_failure_time).isoformat()
                if self.last_failure_time else None,
        }


class ProviderHealth:
    """
    Per-provider circuit breaker.

    A provider that fails `failure_threshold` rounds in a row is skipped
    until `reset_timeout` seconds pass, then one round is let through
    (HALF_OPEN). Success closes the circuit, failure reopens it.

    Also keeps a running average response time used by the `speed`
    ordering policy.

    Args:
        failure_threshold: Consecutive failures before opening the circuit
        reset_timeout: Seconds before trying to recover (OPEN -> HALF_OPEN)
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        reset_timeout: float = 300.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock or time.time
        self._stats: Dict[str, ProviderHealthStats] = {}
        self._half_open_inflight: Dict[str, bool] = {}
        self._lock = threading.RLock()
        self.logger = logging.getLogger(__name__)

    def _get(self, provider_id: str) -> ProviderHealthStats:
        if provider_id not in self._stats:
            self._stats[provider_id] = ProviderHealthStats(last_state_change=self._clock())
        return self._stats[provider_id]

    def allow_request(self, provider_id: str) -> bool:
        """
        Returns:
            True if the provider should be called this round
        """
        with self._lock:
            stats = self._get(provider_id)
            if stats.state == CircuitState.CLOSED:
                return True

            if stats.state == CircuitState.OPEN:
                elapsed = self._clock() - stats.last_state_change
                if elapsed >= self.reset_timeout:
                    self._transition_to(provider_id, CircuitState.HALF_OPEN)
                    self._half_open_inflight[provider_id] = True
                    self.logger.info(
                        f"[ProviderHealth] {provider_id}: OPEN -> HALF_OPEN "
                        f"(testing recovery after {elapsed:.1f}s)"
                    )
                    return True
                stats.total_rejections += 1
                return False

            # HALF_OPEN: only one trial request at a time
            if not self._half_open_inflight.get(provider_id):
                self._half_open_inflight[provider_id] = True
                return True
            stats.total_rejections += 1
            return False

    def release(self, provider_id: str) -> None:
        """Give back a HALF_OPEN trial slot that was granted but not used"""
        with self._lock:
            self._half_open_inflight.pop(provider_id, None)

    def record_success(self, provider_id: str, response_time_ms: Optional[int] = None) -> None:
        with self._lock:
            stats = self._get(provider_id)
            stats.total_requests += 1
            stats.consecutive_failures = 0
            if response_time_ms is not None:
                # Running mean over all requests
                stats.avg_response_time_ms += (
                    response_time_ms - stats.avg_response_time_ms
                ) / stats.total_requests
            if stats.state != CircuitState.CLOSED:
                self._transition_to(provider_id, CircuitState.CLOSED)
                self._half_open_inflight.pop(provider_id, None)
                self.logger.info(f"[ProviderHealth] {provider_id}: recovered, circuit CLOSED")

    def record_failure(self, provider_id: str, error: Optional[str] = None) -> None:
        with self._lock:
            stats = self._get(provider_id)
            stats.total_requests += 1
            stats.failed_requests += 1
            stats.consecutive_failures += 1
            stats.last_failure_time = self._clock()
            stats.last_error = error

            if stats.state == CircuitState.HALF_OPEN:
                self._transition_to(provider_id, CircuitState.OPEN)
                self._half_open_inflight.pop(provider_id, None)
                self.logger.warning(
                    f"[ProviderHealth] {provider_id}: HALF_OPEN -> OPEN (recovery test failed). Error: {error}"
                )
            elif (
                stats.state == CircuitState.CLOSED
                and stats.consecutive_failures >= self.failure_threshold
            ):
                self._transition_to(provider_id, CircuitState.OPEN)
                self.logger.warning(
                    f"[ProviderHealth] {provider_id}: CLOSED -> OPEN "
                    f"({stats.consecutive_failures} consecutive failures). Error: {error}"
                )

    def _transition_to(self, provider_id: str, new_state: CircuitState) -> None:
        stats = self._get(provider_id)
        stats.state = new_state
        stats.last_state_change = self._clock()

    def get_state(self, provider_id: str) -> CircuitState:
        with self._lock:
            return self._get(provider_id).state

    def avg_response_time_ms(self, provider_id: str) -> float:
        with self._lock:
            return self._get(provider_id).avg_response_time_ms

    def get_stats(self, provider_id: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            if provider_id:
                return {provider_id: self._get(provider_id).to_dict()}
            return {pid: stats.to_dict() for pid, stats in self._stats.items()}

    def reset(self, provider_id: Optional[str] = None) -> None:
        """Reset circuit(s) to closed state"""
        with self._lock:
            if provider_id:
                self._stats.pop(provider_id, None)
                self._half_open_inflight.pop(provider_id, None)
            else:
                self._stats.clear()
                self._half_open_inflight.clear()
            self.logger.info(f"[ProviderHealth] Reset {provider_id or 'all providers'}")
