"""Batch simulation across independent subjects.

Subjects share only the read-only model configuration.  Each subject gets its
own random stream spawned from one :class:`numpy.random.SeedSequence`, so the
draws do not depend on worker count or completion order.  Per-subject
failures are collected next to the successes; cancellation and the batch
timeout are checked between subjects, never inside an integration.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .covariates import CovariateModel
from .entities import DosingEvent, SubjectResult
from .errors import ConfigurationError, IntegrationDivergedError, RTTEError
from .integrator import SolverConfig
from .model import StateOptions
from .parameters import ParameterSet
from .simulation import simulate_subject

logger = logging.getLogger(__name__)

OUTCOME_FIELDS = ("subject_id", "time", "censored", "cause", "draw", "n_events")
FAILURE_FIELDS = ("subject_id", "error_type", "message", "last_time")


@dataclass(frozen=True)
class SubjectSpec:
    """Inputs of one subject as handed over by the dataset layer."""

    subject_id: str
    params: ParameterSet
    schedule: Tuple[DosingEvent, ...] = ()
    covariates: Mapping[str, float] = field(default_factory=dict)
    initial_amounts: Optional[Mapping[str, float]] = None
    draw: Optional[float] = None


@dataclass(frozen=True)
class SubjectFailure:
    subject_id: str
    error_type: str
    message: str
    last_time: Optional[float] = None


@dataclass
class BatchResult:
    results: List[SubjectResult] = field(default_factory=list)
    failures: List[SubjectFailure] = field(default_factory=list)
    cancelled: List[str] = field(default_factory=list)
    timed_out: bool = False

    @property
    def complete(self) -> bool:
        return not self.failures and not self.cancelled

    def outcome_frame(self) -> pd.DataFrame:
        rows = [
            {
                "subject_id": result.subject_id,
                "time": result.outcome.time,
                "censored": result.outcome.censored,
                "cause": result.outcome.cause,
                "draw": result.outcome.draw,
                "n_events": sum(1 for item in result.events if not item.censored),
            }
            for result in self.results
        ]
        return pd.DataFrame(rows, columns=list(OUTCOME_FIELDS))

    def failure_frame(self) -> pd.DataFrame:
        rows = [
            {
                "subject_id": failure.subject_id,
                "error_type": failure.error_type,
                "message": failure.message,
                "last_time": failure.last_time,
            }
            for failure in self.failures
        ]
        return pd.DataFrame(rows, columns=list(FAILURE_FIELDS))

    def trajectory_frame(self) -> pd.DataFrame:
        """Long table of every successful trajectory, keyed by subject."""
        frames = []
        for result in self.results:
            frame = result.trajectory.to_frame()
            frame.insert(0, "subject_id", result.subject_id)
            frames.append(frame)
        if not frames:
            return pd.DataFrame()
        return pd.concat(frames, ignore_index=True)

    def error_summary(self) -> Dict[str, int]:
        summary = dict(Counter(failure.error_type for failure in self.failures))
        if self.cancelled:
            summary["Cancelled"] = len(self.cancelled)
        return summary


def _check_ids(specs: Sequence[SubjectSpec]) -> None:
    seen = set()
    for spec in specs:
        if spec.subject_id in seen:
            raise ConfigurationError(f"Duplicate subject id '{spec.subject_id}' in batch")
        seen.add(spec.subject_id)


def run_batch(
    subjects: Iterable[SubjectSpec],
    output_times: Sequence[float] = (),
    *,
    horizon: float,
    solver: Optional[SolverConfig] = None,
    options: Optional[StateOptions] = None,
    covariate_model: Optional[CovariateModel] = None,
    seed: Optional[int] = None,
    n_jobs: int = 1,
    cancel_event: Optional[threading.Event] = None,
    timeout_s: Optional[float] = None,
    refine_event_time: bool = False,
    max_events: int = 1,
    cause: str = "event",
) -> BatchResult:
    """Simulate every subject and collect outcomes, failures and skips.

    ``n_jobs != 1`` runs subjects on a thread pool via joblib; results keep
    the input order either way.
    """
    specs = list(subjects)
    _check_ids(specs)
    if timeout_s is not None and timeout_s <= 0.0:
        raise ConfigurationError("timeout_s must be positive")
    streams = np.random.SeedSequence(seed).spawn(len(specs))
    deadline = None if timeout_s is None else time.monotonic() + timeout_s
    timeout_hit = threading.Event()

    def run_one(spec: SubjectSpec, stream: np.random.SeedSequence):
        if cancel_event is not None and cancel_event.is_set():
            return "cancelled", spec.subject_id, None
        if deadline is not None and time.monotonic() >= deadline:
            timeout_hit.set()
            return "cancelled", spec.subject_id, None
        try:
            params = spec.params
            if covariate_model is not None:
                params = covariate_model.fold_into(params, spec.covariates)
            result = simulate_subject(
                params,
                spec.schedule,
                output_times,
                horizon=horizon,
                draw=spec.draw,
                rng=np.random.default_rng(stream),
                solver=solver,
                options=options,
                subject_id=spec.subject_id,
                initial_amounts=spec.initial_amounts,
                refine_event_time=refine_event_time,
                max_events=max_events,
                cause=cause,
            )
        except RTTEError as exc:
            last_time = exc.last_time if isinstance(exc, IntegrationDivergedError) else None
            logger.warning("subject=%s failed %s: %s", spec.subject_id, type(exc).__name__, exc)
            failure = SubjectFailure(
                subject_id=spec.subject_id,
                error_type=type(exc).__name__,
                message=str(exc),
                last_time=last_time,
            )
            return "failed", spec.subject_id, failure
        return "ok", spec.subject_id, result

    if n_jobs == 1:
        rows = [run_one(spec, stream) for spec, stream in zip(specs, streams)]
    else:
        rows = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(run_one)(spec, stream) for spec, stream in zip(specs, streams)
        )

    batch = BatchResult(timed_out=timeout_hit.is_set())
    for status, subject_id, payload in rows:
        if status == "ok":
            batch.results.append(payload)
        elif status == "failed":
            batch.failures.append(payload)
        else:
            batch.cancelled.append(subject_id)
    logger.info(
        "batch subjects=%d ok=%d failed=%d cancelled=%d timed_out=%s",
        len(specs),
        len(batch.results),
        len(batch.failures),
        len(batch.cancelled),
        batch.timed_out,
    )
    if batch.failures:
        logger.warning("batch error summary %s", batch.error_summary())
    return batch


__all__ = [
    "FAILURE_FIELDS",
    "OUTCOME_FIELDS",
    "BatchResult",
    "SubjectFailure",
    "SubjectSpec",
    "run_batch",
]
