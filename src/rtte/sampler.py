"""Event-time sampling by inversion of the cumulative hazard.

With survival ``S(t) = exp(-H(t))`` and a uniform draw ``U``, the event time
solves ``H(t*) = -ln(U)``.  The trajectory is walked segment by segment; the
first segment whose end reaches the target brackets ``t*``, which is then
located by linear interpolation or, given an exact ``H`` evaluator for the
segment, by Brent's method.  A target above ``H(horizon)`` censors the
subject at the horizon.
"""

from __future__ import annotations

import math
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import brentq

from .entities import EventTimeOutcome
from .errors import ConfigurationError

# refine(j, t) -> H(t) for t inside the segment [times[j-1], times[j]].
RefineFn = Callable[[int, float], float]

_MONOTONE_RTOL = 1e-12
_BRENT_XTOL = 1e-12


def hazard_target(draw: float) -> float:
    """``-ln(U)``; ``inf`` for ``U == 0`` and ``0`` for ``U == 1``."""
    u = float(draw)
    if not (0.0 <= u <= 1.0):
        raise ConfigurationError(f"Uniform draw must lie in [0, 1], got {draw!r}")
    if u == 0.0:
        return math.inf
    return -math.log(u)


def _check_trajectory(times: np.ndarray, cumhaz: np.ndarray) -> None:
    if times.ndim != 1 or times.shape != cumhaz.shape:
        raise ConfigurationError("times and cumulative hazard must be 1-D arrays of equal length")
    if times.size == 0:
        raise ConfigurationError("Cannot sample an event time from an empty trajectory")
    if not (np.all(np.isfinite(times)) and np.all(np.isfinite(cumhaz))):
        raise ConfigurationError("Trajectory contains non-finite values")
    if np.any(np.diff(times) <= 0.0):
        raise ConfigurationError("Trajectory times must be strictly increasing")
    drops = np.diff(cumhaz)
    allowance = _MONOTONE_RTOL * np.maximum(np.abs(cumhaz[1:]), 1.0)
    if np.any(drops < -allowance):
        raise ConfigurationError("Cumulative hazard decreases along the trajectory")


def _locate(
    times: np.ndarray,
    cumhaz: np.ndarray,
    target: float,
    start_index: int,
    refine: Optional[RefineFn],
) -> Optional[Tuple[float, int]]:
    """First ``(t*, j)`` with ``H(t*) == target`` at or after *start_index*."""
    reached = np.nonzero(cumhaz[start_index:] >= target)[0]
    if reached.size == 0:
        return None
    j = start_index + int(reached[0])
    if cumhaz[j] == target or j == start_index:
        return float(times[j]), j
    t_lo, t_hi = float(times[j - 1]), float(times[j])
    h_lo, h_hi = float(cumhaz[j - 1]), float(cumhaz[j])
    if refine is not None:
        residual_lo = refine(j, t_lo) - target
        residual_hi = refine(j, t_hi) - target
        if residual_lo < 0.0 < residual_hi:
            root = brentq(lambda t: refine(j, t) - target, t_lo, t_hi, xtol=_BRENT_XTOL)
            return float(min(max(root, t_lo), t_hi)), j
        if residual_hi == 0.0:
            return t_hi, j
    fraction = (target - h_lo) / (h_hi - h_lo)
    return t_lo + fraction * (t_hi - t_lo), j


def sample_event_time(
    times: Sequence[float],
    cumulative_hazard: Sequence[float],
    draw: float,
    *,
    cause: str = "event",
    refine: Optional[RefineFn] = None,
) -> EventTimeOutcome:
    """Invert the cumulative hazard against one uniform draw.

    Ties resolve to the earliest time at which the target is reached.  A draw
    of 0 yields an event at the first trajectory time, a draw of 1 always
    censors.
    """
    t_arr = np.asarray(times, dtype=float)
    h_arr = np.asarray(cumulative_hazard, dtype=float)
    _check_trajectory(t_arr, h_arr)
    target = hazard_target(draw)
    if math.isinf(target):
        return EventTimeOutcome(time=float(t_arr[0]), censored=False, cause=cause, draw=float(draw), target=target)
    located = None if target == 0.0 else _locate(t_arr, h_arr, target, 0, refine)
    if located is None:
        return EventTimeOutcome(time=float(t_arr[-1]), censored=True, cause=None, draw=float(draw), target=target)
    return EventTimeOutcome(time=located[0], censored=False, cause=cause, draw=float(draw), target=target)


def sample_repeated_events(
    times: Sequence[float],
    cumulative_hazard: Sequence[float],
    draws: Sequence[float],
    *,
    cause: str = "event",
    refine: Optional[RefineFn] = None,
) -> Tuple[EventTimeOutcome, ...]:
    """Repeated time-to-event sampling.

    After an event at ``t_k`` the next event solves
    ``H(t) = H(t_k) - ln(U_{k+1})``; the first threshold is ``-ln(U_1)``, as
    in :func:`sample_event_time`.  The first unmet threshold produces a
    censoring entry at the horizon and ends the sequence.
    """
    t_arr = np.asarray(times, dtype=float)
    h_arr = np.asarray(cumulative_hazard, dtype=float)
    _check_trajectory(t_arr, h_arr)
    outcomes: List[EventTimeOutcome] = []
    base = 0.0
    start_index = 0
    for draw in draws:
        increment = hazard_target(draw)
        target = base + increment
        if math.isinf(increment):
            event_time = float(t_arr[start_index]) if not outcomes else outcomes[-1].time
            outcomes.append(EventTimeOutcome(time=event_time, censored=False, cause=cause, draw=float(draw), target=target))
            continue
        located = None if increment == 0.0 else _locate(t_arr, h_arr, target, start_index, refine)
        if located is None:
            outcomes.append(EventTimeOutcome(time=float(t_arr[-1]), censored=True, cause=None, draw=float(draw), target=target))
            break
        event_time, j = located
        outcomes.append(EventTimeOutcome(time=event_time, censored=False, cause=cause, draw=float(draw), target=target))
        base = target
        # Resume from the segment holding the event; earlier samples sit below the new base.
        start_index = max(j - 1, 0) if event_time < t_arr[j] else j
    return tuple(outcomes)


__all__ = ["hazard_target", "sample_event_time", "sample_repeated_events"]
