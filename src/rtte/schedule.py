"""Dosing schedules and the merged breakpoint sequence.

Every time the integrator must land on exactly (output samples, dosing
events, the horizon) is folded into one sorted, de-duplicated sequence which
the driver consumes left to right.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .entities import BOLUS, INFUSION_START, INFUSION_STOP, DosingEvent, sorted_schedule
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

TIME_TOL = 1e-9


def bolus(time: float, target: str, amount: float) -> DosingEvent:
    return DosingEvent(time=time, target=target, amount=amount, kind=BOLUS)


def infusion(time: float, target: str, amount: float, duration: float) -> Tuple[DosingEvent, DosingEvent]:
    """Return the start/stop pair delivering *amount* over *duration* hours."""
    duration = float(duration)
    if not math.isfinite(duration) or duration <= 0.0:
        raise ConfigurationError(f"Infusion duration must be strictly positive, got {duration!r}")
    rate = float(amount) / duration
    start = DosingEvent(time=time, target=target, amount=amount, kind=INFUSION_START, rate=rate)
    stop = DosingEvent(time=float(time) + duration, target=target, amount=0.0, kind=INFUSION_STOP, rate=rate)
    return start, stop


def _enumerate_dose_times(start: float, interval: float, repeat_count: int, horizon: Optional[float]) -> List[float]:
    repeat = max(int(repeat_count), 0)
    times: List[float] = []
    for occurrence in range(repeat + 1):
        time_point = float(start) + occurrence * float(interval)
        if horizon is not None and time_point > horizon + TIME_TOL:
            break
        times.append(time_point)
        if interval <= TIME_TOL:
            break
    return times


def expand_regimen(
    amount: float,
    target: str,
    *,
    start: float = 0.0,
    interval: float = 0.0,
    repeat_count: int = 0,
    duration: Optional[float] = None,
    horizon: Optional[float] = None,
) -> List[DosingEvent]:
    """Enumerate ``1 + repeat_count`` doses every *interval* hours.

    With *duration* each dose becomes a zero-order infusion; otherwise a
    bolus.  Doses after *horizon* are dropped.
    """
    if repeat_count and interval <= 0.0:
        raise ConfigurationError("Repeated doses need a strictly positive interval")
    events: List[DosingEvent] = []
    for time_point in _enumerate_dose_times(start, interval, repeat_count, horizon):
        if duration is None:
            events.append(bolus(time_point, target, amount))
        else:
            events.extend(infusion(time_point, target, amount, duration))
    return events


def coalesce_boluses(events: Sequence[DosingEvent]) -> List[DosingEvent]:
    """Merge boluses that share a target within one same-time batch."""
    totals: Dict[str, float] = {}
    merged: List[DosingEvent] = []
    for event in events:
        if event.kind != BOLUS:
            merged.append(event)
            continue
        totals[event.target] = totals.get(event.target, 0.0) + event.amount
    time_point = events[0].time if events else 0.0
    for target, amount in totals.items():
        merged.append(bolus(time_point, target, amount))
    return merged


def check_infusions(schedule: Sequence[DosingEvent]) -> None:
    """Every infusion stop must close a running infusion on its target."""
    running: Dict[str, List[float]] = {}
    for event in schedule:
        if event.kind == INFUSION_START:
            running.setdefault(event.target, []).append(event.rate)
        elif event.kind == INFUSION_STOP:
            rates = running.get(event.target, [])
            match = next((idx for idx, rate in enumerate(rates) if math.isclose(rate, event.rate)), None)
            if match is None:
                raise ConfigurationError(
                    f"Infusion stop at t={event.time:g} on '{event.target}' has no matching start"
                )
            rates.pop(match)


def prepare_schedule(events: Iterable[DosingEvent]) -> Tuple[DosingEvent, ...]:
    schedule = sorted_schedule(list(events))
    check_infusions(schedule)
    return schedule


def group_by_time(schedule: Sequence[DosingEvent], tol: float = TIME_TOL) -> List[Tuple[float, List[DosingEvent]]]:
    """Batch events sharing a time stamp, preserving application order."""
    batches: List[Tuple[float, List[DosingEvent]]] = []
    for event in schedule:
        if batches and abs(event.time - batches[-1][0]) <= tol:
            batches[-1][1].append(event)
        else:
            batches.append((event.time, [event]))
    return [(time_point, coalesce_boluses(batch)) for time_point, batch in batches]


def merge_close_times(times: np.ndarray, tol: float = TIME_TOL) -> np.ndarray:
    """Sort and merge time stamps closer than *tol*, keeping the earliest."""
    if times.size == 0:
        return times
    ordered = np.sort(np.asarray(times, dtype=float))
    merged = [ordered[0]]
    for current in ordered[1:]:
        if current - merged[-1] <= tol:
            continue
        merged.append(current)
    return np.asarray(merged, dtype=float)


def output_grid(output_times: Sequence[float], horizon: float) -> np.ndarray:
    """Validated, sorted output grid clipped to ``[0, horizon]``."""
    grid = np.asarray(list(output_times), dtype=float)
    if grid.size and not np.all(np.isfinite(grid)):
        raise ConfigurationError("Output times must be finite")
    if grid.size and grid.min() < 0.0:
        raise ConfigurationError("Output times must be non-negative")
    beyond = grid[grid > horizon + TIME_TOL]
    if beyond.size:
        logger.debug("dropping %d output times beyond horizon %g", beyond.size, horizon)
    return merge_close_times(grid[grid <= horizon + TIME_TOL])


def breakpoints(
    output_times: Sequence[float],
    horizon: float,
    schedule: Sequence[DosingEvent] = (),
    *,
    start: float = 0.0,
) -> np.ndarray:
    """Merged must-stop-here sequence: start, outputs, dose times, horizon."""
    if not math.isfinite(horizon) or horizon <= start:
        raise ConfigurationError(f"Horizon must be finite and after t={start:g}, got {horizon!r}")
    candidates = [start, horizon]
    candidates.extend(float(t) for t in output_grid(output_times, horizon))
    candidates.extend(event.time for event in schedule if event.time <= horizon + TIME_TOL)
    merged = merge_close_times(np.asarray(candidates, dtype=float))
    merged = merged[merged >= start]
    # Snap the tail so the last breakpoint is the horizon itself.
    merged[-1] = horizon
    return merged


__all__ = [
    "TIME_TOL",
    "bolus",
    "breakpoints",
    "check_infusions",
    "coalesce_boluses",
    "expand_regimen",
    "group_by_time",
    "infusion",
    "merge_close_times",
    "output_grid",
    "prepare_schedule",
]
