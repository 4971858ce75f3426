"""Single-subject simulation driver.

The driver owns one subject's state vector for the duration of a run:

1. validate the parameter set and dosing schedule,
2. merge output times, dose times and the horizon into one breakpoint
   sequence,
3. integrate breakpoint to breakpoint, applying every dosing event scheduled
   at a breakpoint before moving past it,
4. invert the cumulative-hazard trajectory against the subject's draw(s).
"""

from __future__ import annotations

import logging
from typing import Callable, List, Mapping, Optional, Sequence, Union

import numpy as np

from .entities import (
    BOLUS,
    INFUSION_START,
    COMPARTMENTS,
    EventTimeOutcome,
    DosingEvent,
    SubjectResult,
    TrajectoryRecord,
    compartment_index,
    initial_state,
)
from .errors import ConfigurationError
from .integrator import SolverConfig, integrate
from .model import CHAZARD, HazardModel, StateOptions
from .parameters import ParameterSet
from .sampler import sample_event_time, sample_repeated_events
from .schedule import TIME_TOL, breakpoints, group_by_time, output_grid, prepare_schedule

logger = logging.getLogger(__name__)

Draws = Union[float, Sequence[float], None]


def _bind(model: HazardModel, inputs: np.ndarray) -> Callable[[float, np.ndarray], np.ndarray]:
    frozen_inputs = inputs.copy() if np.any(inputs) else None

    def rhs(t: float, y: np.ndarray) -> np.ndarray:
        return model.rhs(t, y, frozen_inputs)

    return rhs


def _apply_events(
    events: Sequence[DosingEvent],
    state: np.ndarray,
    inputs: np.ndarray,
    time_point: float,
) -> None:
    for event in events:
        idx = compartment_index(event.target)
        if event.kind == BOLUS:
            state[idx] += event.amount
            logger.debug("dose_event time=%g target=%s amount=%g", time_point, event.target, event.amount)
        elif event.kind == INFUSION_START:
            inputs[idx] += event.rate
            logger.debug("infusion_start time=%g target=%s rate=%g", time_point, event.target, event.rate)
        else:
            inputs[idx] = max(inputs[idx] - event.rate, 0.0)
            if inputs[idx] <= TIME_TOL * max(event.rate, 1.0):
                inputs[idx] = 0.0
            logger.debug("infusion_stop time=%g target=%s rate=%g", time_point, event.target, event.rate)


def _resolve_draws(draw: Draws, rng: Optional[np.random.Generator], max_events: int) -> List[float]:
    if max_events < 1:
        raise ConfigurationError("max_events must be at least 1")
    if draw is None:
        generator = rng if rng is not None else np.random.default_rng()
        return [float(value) for value in generator.random(max_events)]
    if np.ndim(draw) == 0:
        values = [float(draw)]  # type: ignore[arg-type]
    else:
        values = [float(value) for value in draw]  # type: ignore[union-attr]
    if not values:
        raise ConfigurationError("At least one uniform draw is required")
    if len(values) < max_events and rng is not None:
        values.extend(float(value) for value in rng.random(max_events - len(values)))
    return values[:max_events]


def _grid_rows(grid: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Index into *points* for every output time (merged within TIME_TOL)."""
    rows = np.searchsorted(points, grid - TIME_TOL, side="left")
    rows = np.clip(rows, 0, points.size - 1)
    if np.any(np.abs(points[rows] - grid) > TIME_TOL):
        raise ConfigurationError("Output grid is not aligned with the breakpoint sequence")
    return rows


def simulate_subject(
    params: ParameterSet,
    schedule: Sequence[DosingEvent] = (),
    output_times: Sequence[float] = (),
    *,
    horizon: float,
    draw: Draws = None,
    rng: Optional[np.random.Generator] = None,
    solver: Optional[SolverConfig] = None,
    options: Optional[StateOptions] = None,
    subject_id: str = "1",
    initial_amounts: Optional[Mapping[str, float]] = None,
    refine_event_time: bool = False,
    max_events: int = 1,
    cause: str = "event",
) -> SubjectResult:
    """Simulate one subject from t=0 to *horizon* (hours).

    The trajectory is reported on *output_times* (every breakpoint when the
    grid is empty).  Event times are sampled from the cumulative hazard at
    every breakpoint, so dosing times sharpen the inversion as well.
    """
    solver_config = solver or SolverConfig()
    model = HazardModel.from_parameters(params, options)
    events = prepare_schedule(schedule)
    horizon = float(horizon)
    grid = output_grid(output_times, horizon)
    points = breakpoints(grid, horizon, events)
    draws = _resolve_draws(draw, rng, max_events)

    batches = group_by_time(events)
    batch_index = 0
    state = initial_state(dict(initial_amounts or {}))
    inputs = np.zeros(len(COMPARTMENTS), dtype=float)

    def apply_due(time_point: float) -> None:
        nonlocal batch_index
        while batch_index < len(batches) and batches[batch_index][0] <= time_point + TIME_TOL:
            _apply_events(batches[batch_index][1], state, inputs, time_point)
            batch_index += 1

    apply_due(float(points[0]))
    bp_states: List[np.ndarray] = [state.copy()]
    segment_rhs: List[Callable[[float, np.ndarray], np.ndarray]] = []
    steps = 0
    current = float(points[0])
    for target in points[1:]:
        target = float(target)
        rhs = _bind(model, inputs)
        segment_rhs.append(rhs)
        result = integrate(rhs, state, current, target, solver_config)
        steps += result.steps
        state[:] = model.enforce_state(result.state, target)
        current = target
        apply_due(current)
        bp_states.append(state.copy())

    states = np.vstack(bp_states)
    cumhaz = states[:, CHAZARD]

    refine = None
    if refine_event_time:
        def refine(j: int, t: float) -> float:
            if t <= points[j - 1]:
                return float(cumhaz[j - 1])
            segment = integrate(segment_rhs[j - 1], bp_states[j - 1], float(points[j - 1]), t, solver_config)
            return float(segment.state[CHAZARD])

    if max_events > 1:
        outcomes = sample_repeated_events(points, cumhaz, draws, cause=cause, refine=refine)
    else:
        outcomes = (sample_event_time(points, cumhaz, draws[0], cause=cause, refine=refine),)
    outcome: EventTimeOutcome = outcomes[0]

    report_times = grid if grid.size else points
    rows = _grid_rows(report_times, points)
    amounts = states[rows]
    concentration = np.array([model.concentration(vec) for vec in amounts], dtype=float)
    hazard = np.array([model.hazard(float(t), vec) for t, vec in zip(report_times, amounts)], dtype=float)

    trajectory = TrajectoryRecord(
        time=np.asarray(report_times, dtype=float),
        amounts=amounts,
        concentration=concentration,
        hazard=hazard,
        cumulative_hazard=amounts[:, CHAZARD].copy(),
        provenance={
            "subject_id": str(subject_id),
            "solver_method": solver_config.method,
            "solver_hash": solver_config.identity(),
            "integrator_steps": str(steps),
        },
    )
    logger.info(
        "subject=%s event_time=%g censored=%s events=%d H(horizon)=%.6g",
        subject_id,
        outcome.time,
        outcome.censored,
        sum(1 for item in outcomes if not item.censored),
        float(cumhaz[-1]),
    )
    return SubjectResult(subject_id=str(subject_id), trajectory=trajectory, outcome=outcome, events=tuple(outcomes))


__all__ = ["simulate_subject"]
