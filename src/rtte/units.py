"""Unit conversion helpers for parameter catalogues.

Model time runs in hours, volumes in decilitres and flows in dL/h (the
``pk2cmt`` convention).  Catalogue entries may carry other units; these
helpers convert them before the values reach a :class:`ParameterSet`.
"""

from __future__ import annotations

from typing import Literal

from .errors import ConfigurationError

TimeUnit = Literal["hour"]
VolumeUnit = Literal["deciliter"]

HOURS_PER_DAY = 24.0
HOURS_PER_YEAR = 24.0 * 365.0


def _normalize(unit: str) -> str:
    return (unit or "").strip().lower().replace(" ", "")


_VOLUME_FACTORS = {
    "dl": 1.0,
    "deciliter": 1.0,
    "decilitre": 1.0,
    "l": 10.0,
    "liter": 10.0,
    "litre": 10.0,
    "ml": 1e-2,
    "milliliter": 1e-2,
    "millilitre": 1e-2,
}

_RATE_FACTORS = {
    "1/h": 1.0,
    "1/hr": 1.0,
    "1/hour": 1.0,
    "1/time": 1.0,
    "1/min": 60.0,
    "1/minute": 60.0,
    "1/day": 1.0 / HOURS_PER_DAY,
    "1/d": 1.0 / HOURS_PER_DAY,
    "1/week": 1.0 / (7.0 * HOURS_PER_DAY),
    "1/year": 1.0 / HOURS_PER_YEAR,
    "1/yr": 1.0 / HOURS_PER_YEAR,
}

_TIME_FACTORS = {
    "h": 1.0,
    "hr": 1.0,
    "hour": 1.0,
    "min": 1.0 / 60.0,
    "minute": 1.0 / 60.0,
    "day": HOURS_PER_DAY,
    "d": HOURS_PER_DAY,
    "week": 7.0 * HOURS_PER_DAY,
    "year": HOURS_PER_YEAR,
}


def convert_volume(value: float, unit: str) -> float:
    norm = _normalize(unit)
    if not norm:
        return value
    factor = _VOLUME_FACTORS.get(norm)
    if factor is None:
        raise ConfigurationError(f"Unsupported volume unit '{unit}'")
    return value * factor


def convert_rate(value: float, unit: str) -> float:
    """Convert a first-order rate constant to 1/h."""
    norm = _normalize(unit)
    if not norm:
        return value
    factor = _RATE_FACTORS.get(norm)
    if factor is None:
        raise ConfigurationError(f"Unsupported rate unit '{unit}'")
    return value * factor


def convert_time(value: float, unit: str) -> float:
    norm = _normalize(unit)
    if not norm:
        return value
    factor = _TIME_FACTORS.get(norm)
    if factor is None:
        raise ConfigurationError(f"Unsupported time unit '{unit}'")
    return value * factor


def convert_flow(value: float, unit: str) -> float:
    """Convert a clearance or flow (volume/time) to dL/h."""
    norm = _normalize(unit)
    if not norm:
        return value
    if "/" not in norm:
        raise ConfigurationError(f"Unsupported flow unit '{unit}'")
    volume_unit, time_unit = norm.split("/", 1)
    return convert_volume(value, volume_unit) / convert_time(1.0, time_unit)


def convert_parameter_value(value: float, unit: str) -> float:
    """Dispatch on the shape of *unit*; concentrations and amounts pass through."""
    norm = _normalize(unit)
    if not norm or norm in {"dimensionless", "mass", "mass/volume", "mass/time"}:
        return value
    if norm in _VOLUME_FACTORS:
        return convert_volume(value, norm)
    if norm in _RATE_FACTORS:
        return convert_rate(value, norm)
    if norm.startswith("1/"):
        raise ConfigurationError(f"Unsupported rate unit '{unit}'")
    head = norm.split("/", 1)[0]
    if "/" in norm and head in _VOLUME_FACTORS:
        return convert_flow(value, norm)
    return value


__all__ = [
    "HOURS_PER_DAY",
    "HOURS_PER_YEAR",
    "convert_flow",
    "convert_parameter_value",
    "convert_rate",
    "convert_time",
    "convert_volume",
]
