"""Core dataclasses shared across the simulation engine."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import ConfigurationError


SEMANTICS_VERSION = "1.0"

COMPARTMENTS: Tuple[str, ...] = ("EV1", "CENT", "PERIPH", "EV2", "CHAZARD")
MASS_COMPARTMENTS: Tuple[str, ...] = ("EV1", "CENT", "PERIPH", "EV2")
DOSE_TARGETS: Tuple[str, ...] = MASS_COMPARTMENTS

BOLUS = "bolus"
INFUSION_START = "infusion_start"
INFUSION_STOP = "infusion_stop"
DOSE_KINDS: Tuple[str, ...] = (BOLUS, INFUSION_START, INFUSION_STOP)

# Application order for events sharing a time stamp.
_KIND_PRIORITY = {INFUSION_STOP: 0, INFUSION_START: 1, BOLUS: 2}

TRAJECTORY_HEADER: Tuple[str, ...] = ("time_h",) + COMPARTMENTS + ("CP", "HAZARD")


def compartment_index(name: str) -> int:
    try:
        return COMPARTMENTS.index(name)
    except ValueError:
        raise ConfigurationError(f"Unknown compartment '{name}'; expected one of {COMPARTMENTS}") from None


def initial_state(amounts: Optional[Dict[str, float]] = None) -> np.ndarray:
    """Return a state vector of zeros with optional caller-supplied amounts."""
    state = np.zeros(len(COMPARTMENTS), dtype=float)
    for name, value in (amounts or {}).items():
        value = float(value)
        if not math.isfinite(value):
            raise ConfigurationError(f"Initial amount for '{name}' is not finite")
        if name in MASS_COMPARTMENTS and value < 0.0:
            raise ConfigurationError(f"Initial amount for '{name}' must be non-negative, got {value:g}")
        if name == "CHAZARD" and value < 0.0:
            raise ConfigurationError("Initial cumulative hazard must be non-negative")
        state[compartment_index(name)] = value
    return state


@dataclass(frozen=True)
class DosingEvent:
    """A discrete perturbation of the state vector.

    ``amount`` is the mass added by a bolus or the total mass delivered by an
    infusion; ``rate`` is the zero-order input (mass/h) an infusion start
    switches on and the matching stop switches off.
    """

    time: float
    target: str
    amount: float = 0.0
    kind: str = BOLUS
    rate: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "time", float(self.time))
        object.__setattr__(self, "amount", float(self.amount))
        object.__setattr__(self, "rate", float(self.rate))
        if self.kind not in DOSE_KINDS:
            raise ConfigurationError(f"Unknown dosing event kind '{self.kind}'")

    @property
    def sort_key(self) -> Tuple[float, int]:
        """Time first, then stop/start/bolus order for simultaneous events."""
        return self.time, _KIND_PRIORITY[self.kind]

    def validate(self) -> "DosingEvent":
        if not math.isfinite(self.time) or self.time < 0.0:
            raise ConfigurationError(f"Dosing event time must be finite and non-negative, got {self.time!r}")
        if self.target not in DOSE_TARGETS:
            raise ConfigurationError(f"Dosing target '{self.target}' is not a mass compartment")
        if not math.isfinite(self.amount) or self.amount < 0.0:
            raise ConfigurationError(f"Dose amount must be finite and non-negative, got {self.amount!r}")
        if self.kind != BOLUS and (not math.isfinite(self.rate) or self.rate <= 0.0):
            raise ConfigurationError(f"Infusion rate must be strictly positive, got {self.rate!r}")
        return self


@dataclass(frozen=True)
class EventTimeOutcome:
    """Sampled event time (or censoring) for one subject."""

    time: float
    censored: bool
    cause: Optional[str]
    draw: float
    target: float


@dataclass(frozen=True)
class TrajectoryRecord:
    """Concentration and hazard series sampled on the output grid."""

    time: np.ndarray
    amounts: np.ndarray
    concentration: np.ndarray
    hazard: np.ndarray
    cumulative_hazard: np.ndarray
    provenance: Dict[str, str] = field(default_factory=dict)
    semantics_version: str = SEMANTICS_VERSION

    def amount(self, name: str) -> np.ndarray:
        return self.amounts[:, compartment_index(name)]

    def to_frame(self) -> pd.DataFrame:
        data = {"time_h": self.time}
        for idx, name in enumerate(COMPARTMENTS):
            data[name] = self.amounts[:, idx]
        data["CP"] = self.concentration
        data["HAZARD"] = self.hazard
        frame = pd.DataFrame(data, columns=list(TRAJECTORY_HEADER))
        frame.attrs["semantics_version"] = self.semantics_version
        if self.provenance:
            frame.attrs["provenance"] = self.provenance
        return frame

    def save_csv(self, path: Path, **to_csv_kwargs) -> None:
        frame = self.to_frame()
        path.parent.mkdir(parents=True, exist_ok=True)
        to_csv_kwargs.setdefault("float_format", "%.17g")
        frame.to_csv(path, index=False, **to_csv_kwargs)


@dataclass(frozen=True)
class SubjectResult:
    subject_id: str
    trajectory: TrajectoryRecord
    outcome: EventTimeOutcome
    events: Tuple[EventTimeOutcome, ...] = ()


def sorted_schedule(events: Sequence[DosingEvent]) -> Tuple[DosingEvent, ...]:
    """Validate and order events by time, then stop/start/bolus priority."""
    validated = [event.validate() for event in events]
    return tuple(sorted(validated, key=lambda event: event.sort_key))


__all__ = [
    "BOLUS",
    "COMPARTMENTS",
    "DOSE_KINDS",
    "DOSE_TARGETS",
    "INFUSION_START",
    "INFUSION_STOP",
    "MASS_COMPARTMENTS",
    "SEMANTICS_VERSION",
    "TRAJECTORY_HEADER",
    "DosingEvent",
    "EventTimeOutcome",
    "SubjectResult",
    "TrajectoryRecord",
    "compartment_index",
    "initial_state",
    "sorted_schedule",
]
