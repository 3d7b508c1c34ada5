"""Exception types shared by the azan scheduler modules."""
from __future__ import annotations

from typing import Optional


class AzanSchedulerError(RuntimeError):
    """Base class for scheduler errors."""


class ConfigError(AzanSchedulerError, ValueError):
    """Raised when a configuration value is invalid."""

    def __init__(self, field_name: str, message: str) -> None:
        self.field_name = field_name
        self.message = message
        super().__init__(f"{field_name}: {message}")


class ConfigUnavailable(AzanSchedulerError):
    """Prayer data or settings could not be loaded."""


class InvalidTimeInput(AzanSchedulerError, ValueError):
    """A time string could not be parsed as HH:MM."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Invalid time string: {value!r}")


class NotificationDeliveryFailure(AzanSchedulerError):
    """The external notification endpoint rejected or failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)
