"""Domain-specific exceptions for the time-to-event simulation engine."""

from __future__ import annotations

from typing import Optional


class RTTEError(RuntimeError):
    """Base class for per-subject simulation errors."""


class ConfigurationError(RTTEError):
    """Raised when parameters, schedules or solver settings are invalid."""


class DomainError(RTTEError):
    """Raised when the right-hand side hits an undefined operation."""


class InvalidStateError(RTTEError):
    """Raised when a mass compartment goes negative beyond tolerance."""


class IntegrationDivergedError(RTTEError):
    """Raised when step-size control cannot meet the error tolerance."""

    def __init__(self, message: str, *, last_time: Optional[float] = None):
        if last_time is not None:
            message = f"{message} (last valid t={last_time:g})"
        super().__init__(message)
        self.last_time = last_time


__all__ = [
    "RTTEError",
    "ConfigurationError",
    "DomainError",
    "InvalidStateError",
    "IntegrationDivergedError",
]
