"""
Custom exceptions for the newswire engine.

Only programmer errors (MonitorNotFoundError, ConfigurationError) cross the
public boundary. Everything else is caught where it happens and reported
through result metadata, monitor stats or logs.
"""

from typing import Optional


class NewswireError(Exception):
    """Base exception for all newswire errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(NewswireError):
    """Raised when a provider or engine is configured inconsistently."""
    pass


class ProviderError(NewswireError):
    """Raised inside a provider when the upstream request fails.

    BaseNewsProvider.fetch converts it into an error ProviderResult, so it
    never escapes a provider call.
    """

    def __init__(self, provider_id: str, message: str, status_code: Optional[int] = None):
        super().__init__(message, {"provider_id": provider_id, "status_code": status_code})
        self.provider_id = provider_id
        self.status_code = status_code


class AggregationEmptyError(NewswireError):
    """Raised inside a monitor tick when every provider failed or was excluded."""

    def __init__(self, sources: dict):
        super().__init__(
            "All providers failed or were excluded",
            {"sources": sources},
        )


class MonitorTickError(NewswireError):
    """Wraps any failure raised while running one monitor check."""

    def __init__(self, monitor_id: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, {"monitor_id": monitor_id})
        self.monitor_id = monitor_id
        self.cause = cause


class MonitorNotFoundError(NewswireError, KeyError):
    """Raised when a monitor id was never issued by this registry."""

    def __init__(self, monitor_id: str):
        super().__init__(f"Unknown monitor id: {monitor_id!r}", {"monitor_id": monitor_id})
        self.monitor_id = monitor_id

    def __str__(self) -> str:
        return self.message


class WebhookDeliveryError(NewswireError):
    """Describes a failed webhook POST. Logged, never raised to callers."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(message, {"url": url, "status_code": status_code})
        self.url = url
        self.status_code = status_code
