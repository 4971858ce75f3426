"""Runge-Kutta integration between mandatory breakpoints.

Three families share one entry point, :func:`integrate`:

* ``"rk4"`` - classical fourth-order Runge-Kutta on a fixed grid.  The step is
  shrunk so an integer number of equal steps lands exactly on the segment end.
* ``"rk4_adaptive"`` - RK4 with step-doubling error control.  A full step is
  compared against two half steps; the step is halved on rejection and doubled
  after ``grow_after`` consecutive acceptances, within ``[min_step, max_step]``.
* any :func:`scipy.integrate.solve_ivp` method (``"LSODA"``, ``"BDF"``, ...)
  for stiff parameterisations.

Every path returns the state at exactly ``t1`` and, when asked, at exactly
each requested sample time inside the segment.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.integrate import solve_ivp

from .errors import ConfigurationError, IntegrationDivergedError

logger = logging.getLogger(__name__)

StateVector = np.ndarray
RhsFn = Callable[[float, StateVector], StateVector]

FIXED_METHODS = ("rk4",)
ADAPTIVE_METHODS = ("rk4_adaptive",)
SCIPY_METHODS = ("RK45", "RK23", "DOP853", "Radau", "BDF", "LSODA")

# Richardson factor for a fourth-order method: (2**4 - 1).
_RICHARDSON = 15.0
_LANDING_RTOL = 1e-12


@dataclass(frozen=True)
class SolverConfig:
    """Configuration of the step-size policy."""

    method: str = "rk4"
    step_size: float = 0.1
    rtol: float = 1e-6
    atol: float = 1e-9
    min_step: float = 1e-10
    max_step: float = 24.0
    grow_after: int = 4
    max_steps: int = 10_000_000
    max_attempts: int = 8

    def __post_init__(self) -> None:
        if self.method not in FIXED_METHODS + ADAPTIVE_METHODS + SCIPY_METHODS:
            raise ConfigurationError(f"Unknown integration method '{self.method}'")
        for name in ("step_size", "rtol", "atol", "min_step", "max_step"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0.0:
                raise ConfigurationError(f"SolverConfig.{name} must be finite and positive, got {value!r}")
        if self.min_step > self.max_step:
            raise ConfigurationError("SolverConfig.min_step exceeds max_step")
        if self.grow_after < 1 or self.max_steps < 1 or self.max_attempts < 1:
            raise ConfigurationError("grow_after, max_steps and max_attempts must be >= 1")

    @property
    def adaptive(self) -> bool:
        return self.method not in FIXED_METHODS

    def as_dict(self) -> Dict[str, object]:
        return {
            "method": self.method,
            "step_size": self.step_size,
            "rtol": self.rtol,
            "atol": self.atol,
            "min_step": self.min_step,
            "max_step": self.max_step,
            "grow_after": self.grow_after,
        }

    def identity(self) -> str:
        payload = json.dumps(self.as_dict(), sort_keys=True)
        return hashlib.sha256(payload.encode("utf8")).hexdigest()


@dataclass(frozen=True)
class SegmentResult:
    state: StateVector
    time: float
    steps: int
    rejected: int = 0
    samples: Tuple[Tuple[float, StateVector], ...] = field(default_factory=tuple)


def rk4_step(rhs: RhsFn, t: float, y: StateVector, h: float) -> StateVector:
    k1 = rhs(t, y)
    k2 = rhs(t + 0.5 * h, y + 0.5 * h * k1)
    k3 = rhs(t + 0.5 * h, y + 0.5 * h * k2)
    k4 = rhs(t + h, y + h * k3)
    return y + (h / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)


def _check_finite(y: StateVector, t: float, stage: str) -> None:
    if not np.all(np.isfinite(y)):
        raise IntegrationDivergedError(f"Non-finite state after {stage}", last_time=t)


def _fixed_segment(rhs: RhsFn, y0: StateVector, t0: float, t1: float, config: SolverConfig) -> Tuple[StateVector, int, int]:
    span = t1 - t0
    n_steps = max(1, int(math.ceil(span / config.step_size - _LANDING_RTOL)))
    if n_steps > config.max_steps:
        raise IntegrationDivergedError(
            f"Fixed-step segment needs {n_steps} steps (max_steps={config.max_steps})",
            last_time=t0,
        )
    h = span / n_steps
    y = y0
    t = t0
    for idx in range(n_steps):
        y_next = rk4_step(rhs, t, y, h)
        _check_finite(y_next, t, "fixed RK4 step")
        y = y_next
        # Recompute from t0 so rounding does not accumulate along the grid.
        t = t0 + (idx + 1) * h
    return y, n_steps, 0


def _adaptive_segment(rhs: RhsFn, y0: StateVector, t0: float, t1: float, config: SolverConfig) -> Tuple[StateVector, int, int]:
    h = min(config.step_size, config.max_step)
    y = y0
    t = t0
    steps = 0
    rejected = 0
    streak = 0
    while t < t1:
        remaining = t1 - t
        last = h >= remaining * (1.0 - _LANDING_RTOL)
        step = remaining if last else h

        full = rk4_step(rhs, t, y, step)
        half = rk4_step(rhs, t, y, 0.5 * step)
        double = rk4_step(rhs, t + 0.5 * step, half, 0.5 * step)
        scale = config.atol + config.rtol * np.maximum(np.abs(y), np.abs(double))
        err = float(np.max(np.abs(double - full) / (_RICHARDSON * scale)))

        if math.isfinite(err) and err <= 1.0:
            y = double + (double - full) / _RICHARDSON
            _check_finite(y, t, "adaptive RK4 step")
            t = t1 if last else t + step
            steps += 1
            streak += 1
            if streak >= config.grow_after:
                h = min(2.0 * h, config.max_step)
                streak = 0
        else:
            rejected += 1
            streak = 0
            h = 0.5 * step
            if h < config.min_step:
                raise IntegrationDivergedError(
                    f"Step size {h:.3g} fell below min_step={config.min_step:g} (error ratio {err:.3g})",
                    last_time=t,
                )
        if steps + rejected > config.max_steps:
            raise IntegrationDivergedError(f"Exceeded max_steps={config.max_steps}", last_time=t)
    return y, steps, rejected


def _looks_like_step_failure(message: str) -> bool:
    text = (message or "").lower()
    return ("step size" in text) or ("strictly increasing" in text)


def _scipy_segment(rhs: RhsFn, y0: StateVector, t0: float, t1: float, config: SolverConfig) -> Tuple[StateVector, int, int]:
    attempt_max = min(config.max_step, t1 - t0)
    min_cap = max((t1 - t0) * 1e-6, config.min_step)
    rejected = 0
    while True:
        result = solve_ivp(
            rhs,
            (t0, t1),
            y0,
            method=config.method,
            rtol=config.rtol,
            atol=config.atol,
            max_step=attempt_max,
            first_step=min(config.step_size, attempt_max),
            dense_output=False,
        )
        if result.success or not _looks_like_step_failure(result.message or ""):
            break
        rejected += 1
        if rejected >= config.max_attempts:
            break
        attempt_max = max(attempt_max * 0.5, min_cap)
    if not result.success or not result.y.size:
        last_time = float(result.t[-1]) if result.t.size else t0
        raise IntegrationDivergedError(f"{config.method} integration failed: {result.message}", last_time=last_time)
    y = np.asarray(result.y[:, -1], dtype=float)
    _check_finite(y, float(result.t[-1]), f"{config.method} integration")
    return y, int(result.t.size - 1), rejected


def _segment(rhs: RhsFn, y0: StateVector, t0: float, t1: float, config: SolverConfig) -> Tuple[StateVector, int, int]:
    if config.method in FIXED_METHODS:
        return _fixed_segment(rhs, y0, t0, t1, config)
    if config.method in ADAPTIVE_METHODS:
        return _adaptive_segment(rhs, y0, t0, t1, config)
    return _scipy_segment(rhs, y0, t0, t1, config)


def integrate(
    rhs: RhsFn,
    y0: StateVector,
    t0: float,
    t1: float,
    config: Optional[SolverConfig] = None,
    *,
    sample_times: Optional[Sequence[float]] = None,
) -> SegmentResult:
    """Advance ``y' = rhs(t, y)`` from *t0* to exactly *t1*.

    Sample times strictly inside ``(t0, t1]`` are treated as extra
    breakpoints and returned in :attr:`SegmentResult.samples`.
    """
    cfg = config or SolverConfig()
    start = float(t0)
    stop = float(t1)
    if not (math.isfinite(start) and math.isfinite(stop)):
        raise ConfigurationError(f"Integration bounds must be finite, got ({t0!r}, {t1!r})")
    if stop < start:
        raise ConfigurationError(f"Cannot integrate backwards from t={start:g} to t={stop:g}")
    state = np.array(y0, dtype=float, copy=True)
    _check_finite(state, start, "initial state")
    if stop == start:
        return SegmentResult(state=state, time=stop, steps=0)

    stops: List[float] = sorted({float(s) for s in (sample_times or ()) if start < float(s) < stop})
    stops.append(stop)
    wanted = {float(s) for s in (sample_times or ())}
    samples: List[Tuple[float, StateVector]] = []
    steps = 0
    rejected = 0
    current = start
    for target in stops:
        state, seg_steps, seg_rejected = _segment(rhs, state, current, target, cfg)
        steps += seg_steps
        rejected += seg_rejected
        current = target
        if target in wanted:
            samples.append((target, state.copy()))
    if rejected:
        logger.debug("segment [%g, %g] accepted=%d rejected=%d", start, stop, steps, rejected)
    return SegmentResult(state=state, time=stop, steps=steps, rejected=rejected, samples=tuple(samples))


__all__ = [
    "ADAPTIVE_METHODS",
    "FIXED_METHODS",
    "SCIPY_METHODS",
    "SegmentResult",
    "SolverConfig",
    "integrate",
    "rk4_step",
]
