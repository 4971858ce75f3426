from __future__ import annotations

import math

import numpy as np
import pytest

from src.rtte.errors import ConfigurationError
from src.rtte.sampler import hazard_target, sample_event_time, sample_repeated_events


def test_linear_cumulative_hazard_inverts_exactly() -> None:
    times = np.linspace(0.0, 10.0, 11)
    outcome = sample_event_time(times, 0.2 * times, 0.5)
    assert not outcome.censored
    assert outcome.cause == "event"
    assert outcome.time == pytest.approx(math.log(2.0) / 0.2)
    assert outcome.target == pytest.approx(math.log(2.0))


def test_unmet_target_censors_at_horizon() -> None:
    times = np.array([0.0, 5.0, 10.0])
    outcome = sample_event_time(times, np.array([0.0, 0.1, 0.2]), 0.5)
    assert outcome.censored
    assert outcome.cause is None
    assert outcome.time == 10.0


def test_boundary_draws() -> None:
    times = np.array([0.0, 1.0, 2.0])
    cumhaz = np.array([0.0, 1.0, 2.0])
    first = sample_event_time(times, cumhaz, 0.0)
    assert not first.censored
    assert first.time == 0.0
    assert sample_event_time(times, cumhaz, 1.0).censored
    assert hazard_target(0.0) == math.inf
    assert hazard_target(1.0) == 0.0


def test_invalid_draw_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        sample_event_time([0.0, 1.0], [0.0, 1.0], 1.5)
    with pytest.raises(ConfigurationError):
        hazard_target(-0.1)


def test_flat_stretch_resolves_to_earliest_time() -> None:
    target = -math.log(0.3)
    times = np.array([0.0, 1.0, 2.0, 3.0])
    cumhaz = np.array([0.0, target, target, 2.0])
    outcome = sample_event_time(times, cumhaz, 0.3)
    assert outcome.time == 1.0


def test_decreasing_cumulative_hazard_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        sample_event_time([0.0, 1.0, 2.0], [0.0, 0.5, 0.4], 0.5)
    with pytest.raises(ConfigurationError):
        sample_event_time([0.0, 1.0, 1.0], [0.0, 0.5, 0.6], 0.5)


def test_refine_uses_exact_segment_evaluator() -> None:
    times = np.array([0.0, 1.0, 2.0])
    cumhaz = times ** 2
    draw = math.exp(-2.0)

    linear = sample_event_time(times, cumhaz, draw)
    refined = sample_event_time(times, cumhaz, draw, refine=lambda j, t: t * t)

    assert linear.time == pytest.approx(1.0 + 1.0 / 3.0)
    assert refined.time == pytest.approx(math.sqrt(2.0), abs=1e-9)


def test_repeated_events_restart_from_previous_threshold() -> None:
    times = np.linspace(0.0, 4.0, 5)
    cumhaz = times.copy()
    draws = [math.exp(-1.0), math.exp(-2.0), math.exp(-5.0)]
    outcomes = sample_repeated_events(times, cumhaz, draws, cause="bleed")

    assert [item.censored for item in outcomes] == [False, False, True]
    assert outcomes[0].time == pytest.approx(1.0)
    assert outcomes[1].time == pytest.approx(3.0)
    assert outcomes[1].cause == "bleed"
    assert outcomes[2].time == 4.0
    assert outcomes[2].cause is None


def test_repeated_events_without_censoring_when_all_draws_hit() -> None:
    times = np.linspace(0.0, 10.0, 11)
    outcomes = sample_repeated_events(times, times * 1.0, [math.exp(-1.0)] * 3)
    assert [item.time for item in outcomes] == pytest.approx([1.0, 2.0, 3.0])
    assert not any(item.censored for item in outcomes)


def test_repeated_events_start_from_same_threshold_as_single_event() -> None:
    times = np.linspace(0.0, 20.0, 21)
    cumhaz = 1.0 + 0.1 * times
    draw = math.exp(-1.5)
    single = sample_event_time(times, cumhaz, draw)
    repeated = sample_repeated_events(times, cumhaz, [draw, math.exp(-0.5)])
    assert single.time == pytest.approx(5.0)
    assert repeated[0].time == pytest.approx(single.time)
    assert repeated[1].time == pytest.approx(10.0)
