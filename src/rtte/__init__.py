"""Public exports for the exposure-driven time-to-event simulation engine."""

from .batch import BatchResult, SubjectFailure, SubjectSpec, run_batch
from .covariates import CovariateModel
from .entities import (
    COMPARTMENTS,
    SEMANTICS_VERSION,
    DosingEvent,
    EventTimeOutcome,
    SubjectResult,
    TrajectoryRecord,
)
from .errors import (
    ConfigurationError,
    DomainError,
    IntegrationDivergedError,
    InvalidStateError,
    RTTEError,
)
from .integrator import SolverConfig, integrate
from .model import HazardModel, StateOptions, evaluate_rhs
from .parameters import ParameterSet, load_parameter_set
from .sampler import sample_event_time, sample_repeated_events
from .schedule import bolus, expand_regimen, infusion
from .simulation import simulate_subject

__all__ = [
    "COMPARTMENTS",
    "SEMANTICS_VERSION",
    "BatchResult",
    "ConfigurationError",
    "CovariateModel",
    "DomainError",
    "DosingEvent",
    "EventTimeOutcome",
    "HazardModel",
    "IntegrationDivergedError",
    "InvalidStateError",
    "ParameterSet",
    "RTTEError",
    "SolverConfig",
    "StateOptions",
    "SubjectFailure",
    "SubjectResult",
    "SubjectSpec",
    "TrajectoryRecord",
    "bolus",
    "evaluate_rhs",
    "expand_regimen",
    "infusion",
    "integrate",
    "load_parameter_set",
    "run_batch",
    "sample_event_time",
    "sample_repeated_events",
    "simulate_subject",
]
