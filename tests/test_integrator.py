from __future__ import annotations

import math

import numpy as np
import pytest

from src.rtte.errors import ConfigurationError, IntegrationDivergedError
from src.rtte.integrator import SolverConfig, integrate, rk4_step


def _decay(k: float):
    def rhs(t: float, y: np.ndarray) -> np.ndarray:
        return -k * y

    return rhs


def test_fixed_rk4_matches_exponential_decay() -> None:
    result = integrate(_decay(0.5), [1.0], 0.0, 10.0, SolverConfig(step_size=0.03125))
    assert result.state[0] == pytest.approx(math.exp(-5.0), rel=1e-8)
    assert result.time == 10.0
    assert result.steps == 320


def test_fixed_step_shrinks_to_land_on_segment_end() -> None:
    seen = []

    def rhs(t: float, y: np.ndarray) -> np.ndarray:
        seen.append(t)
        return np.ones_like(y)

    result = integrate(rhs, [0.0], 0.0, 1.0, SolverConfig(step_size=0.3))
    assert result.steps == 4
    assert result.state[0] == pytest.approx(1.0)
    assert max(seen) == pytest.approx(1.0)
    assert max(seen) <= 1.0


def test_rk4_step_is_exact_for_cubic_polynomials() -> None:
    def rhs(t: float, y: np.ndarray) -> np.ndarray:
        return np.array([3.0 * t * t])

    y = rk4_step(rhs, 0.0, np.array([0.0]), 2.0)
    assert y[0] == pytest.approx(8.0)


def test_adaptive_rejects_and_still_meets_tolerance() -> None:
    config = SolverConfig(method="rk4_adaptive", step_size=1.0, rtol=1e-8, atol=1e-12)
    result = integrate(_decay(50.0), [1.0], 0.0, 0.2, config)
    assert result.rejected > 0
    assert result.state[0] == pytest.approx(math.exp(-10.0), rel=1e-5)
    assert result.time == 0.2


def test_adaptive_raises_when_step_underflows() -> None:
    def blowup(t: float, y: np.ndarray) -> np.ndarray:
        return y * y

    config = SolverConfig(method="rk4_adaptive", step_size=0.1, min_step=1e-6)
    with pytest.raises(IntegrationDivergedError) as excinfo:
        integrate(blowup, [1.0], 0.0, 2.0, config)
    assert excinfo.value.last_time is not None
    assert excinfo.value.last_time < 1.0


def test_scipy_method_handles_stiff_decay() -> None:
    result = integrate(_decay(1000.0), [1.0, 0.0], 0.0, 1.0, SolverConfig(method="LSODA", step_size=1e-4, rtol=1e-8, atol=1e-12))
    assert result.state[0] == pytest.approx(0.0, abs=1e-8)
    assert result.time == 1.0


def test_backwards_integration_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        integrate(_decay(1.0), [1.0], 2.0, 1.0)


def test_zero_span_returns_copy() -> None:
    y0 = np.array([1.0, 2.0])
    result = integrate(_decay(1.0), y0, 3.0, 3.0)
    assert np.array_equal(result.state, y0)
    assert result.state is not y0
    assert result.steps == 0


def test_sample_times_are_hit_exactly() -> None:
    result = integrate(_decay(1.0), [1.0], 0.0, 2.0, SolverConfig(step_size=0.01), sample_times=[0.5, 1.0, 3.0])
    times = [t for t, _ in result.samples]
    assert times == [0.5, 1.0]
    assert result.samples[1][1][0] == pytest.approx(math.exp(-1.0), rel=1e-8)


def test_split_integration_matches_single_segment() -> None:
    config = SolverConfig(step_size=0.01)
    whole = integrate(_decay(0.3), [2.0], 0.0, 4.0, config)
    first = integrate(_decay(0.3), [2.0], 0.0, 1.7, config)
    second = integrate(_decay(0.3), first.state, 1.7, 4.0, config)
    assert second.state[0] == pytest.approx(whole.state[0], rel=1e-9)


def test_non_finite_state_is_reported() -> None:
    def nan_rhs(t: float, y: np.ndarray) -> np.ndarray:
        return np.full_like(y, np.nan)

    with pytest.raises(IntegrationDivergedError):
        integrate(nan_rhs, [1.0], 0.0, 1.0)


def test_solver_config_validation_and_identity() -> None:
    with pytest.raises(ConfigurationError):
        SolverConfig(method="euler")
    with pytest.raises(ConfigurationError):
        SolverConfig(step_size=0.0)
    with pytest.raises(ConfigurationError):
        SolverConfig(min_step=1.0, max_step=0.5)
    assert SolverConfig().identity() == SolverConfig().identity()
    assert SolverConfig().identity() != SolverConfig(step_size=0.2).identity()
    assert SolverConfig(method="BDF").adaptive
    assert not SolverConfig().adaptive


def test_scipy_method_failure_raises_after_retries() -> None:
    def blowup(t: float, y: np.ndarray) -> np.ndarray:
        return y * y

    config = SolverConfig(method="RK45", step_size=0.01, max_attempts=2)
    with pytest.raises(IntegrationDivergedError) as excinfo:
        integrate(blowup, [1.0], 0.0, 2.0, config)
    assert "RK45 integration failed" in str(excinfo.value)
    assert excinfo.value.last_time < 1.0 + 1e-6
