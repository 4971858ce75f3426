from __future__ import annotations

import json

import pytest

from src.rtte.errors import ConfigurationError
from src.rtte.parameters import ParameterSet, load_parameter_set
from src.rtte.units import HOURS_PER_YEAR, convert_flow, convert_rate


BASE = {"CL": 1.0, "VC": 20.0, "LAMBDA": 0.01}


def test_parameter_set_behaves_like_mapping_with_defaults() -> None:
    params = ParameterSet(BASE)
    assert dict(params) == BASE
    assert params.value("Q") == 0.0
    assert params.value("NU") == 1.0
    assert params.resolved()["KM"] == 1.0
    with pytest.raises(ConfigurationError):
        params.value("UNKNOWN")


def test_with_overrides_returns_new_set() -> None:
    params = ParameterSet(BASE, drug_effect="stimulatory")
    updated = params.with_overrides(NU=2.0)
    assert updated["NU"] == 2.0
    assert "NU" not in params
    assert updated.drug_effect == "stimulatory"


@pytest.mark.parametrize(
    "overrides",
    [
        {"VC": 0.0},
        {"CL": -1.0},
        {"KA1": -0.1},
        {"Q": 1.0, "VP": 0.0},
        {"Q": 2.0},
        {"LAMBDA": float("nan")},
        {"NU": 0.0},
    ],
)
def test_validate_rejects_invalid_values(overrides) -> None:
    with pytest.raises(ConfigurationError):
        ParameterSet({**BASE, **overrides}).validate()


def test_validate_requires_core_parameters() -> None:
    with pytest.raises(ConfigurationError, match="LAMBDA"):
        ParameterSet({"CL": 1.0, "VC": 1.0}).validate()


def test_validate_checks_switch_dependent_constants() -> None:
    with pytest.raises(ConfigurationError, match="KM"):
        ParameterSet({**BASE, "KM": 0.0}, nonlinear_clearance=True).validate()
    ParameterSet({**BASE, "KM": 0.0}).validate()
    with pytest.raises(ConfigurationError, match="IMAX"):
        ParameterSet({**BASE, "IMAX": 1.5}, drug_effect="inhibitory").validate()
    with pytest.raises(ConfigurationError, match="EC50"):
        ParameterSet({**BASE, "EC50": 0.0}, drug_effect="stimulatory").validate()
    with pytest.raises(ConfigurationError):
        ParameterSet(BASE, drug_effect="sigmoid").validate()


def test_peripheral_volume_irrelevant_without_exchange() -> None:
    ParameterSet({**BASE, "Q": 0.0, "VP": 0.0}).validate()


def test_load_parameter_set_converts_units(tmp_path) -> None:
    path = tmp_path / "params.json"
    path.write_text(
        json.dumps(
            {
                "nonlinear_clearance": True,
                "drug_effect": "inhibitory",
                "parameters": [
                    {"name": "CL", "value": 1.0, "units": "dL/hr", "description": "Clearance"},
                    {"name": "VC", "value": 2.0, "units": "L"},
                    {"name": "KM", "value": 2.0, "units": "mass/volume"},
                    {"name": "LAMBDA", "value": 2.96, "units": "1/year"},
                    {"name": "GAMMA", "value": -0.566, "units": "1/year"},
                    {"name": "IC50", "value": 10.2},
                ],
            }
        )
    )
    params = load_parameter_set(path)
    assert params.nonlinear_clearance is True
    assert params.drug_effect == "inhibitory"
    assert params["CL"] == pytest.approx(1.0)
    assert params["VC"] == pytest.approx(20.0)
    assert params["LAMBDA"] == pytest.approx(2.96 / HOURS_PER_YEAR)
    assert params["GAMMA"] == pytest.approx(-0.566)
    assert params.metadata("CL").description == "Clearance"
    params.validate()


def test_load_parameter_set_accepts_flat_mapping(tmp_path) -> None:
    path = tmp_path / "flat.json"
    path.write_text(json.dumps({"CL": 1, "VC": 2.44, "LAMBDA": 0.0217, "drug_effect": "stimulatory"}))
    params = load_parameter_set(str(path))
    assert params["VC"] == pytest.approx(2.44)
    assert params.drug_effect == "stimulatory"


def test_load_parameter_set_rejects_bad_entries(tmp_path) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps([{"name": "CL", "value": None}]))
    with pytest.raises(ConfigurationError):
        load_parameter_set(path)
    path.write_text(json.dumps([{"name": "KA1", "value": 1.0, "units": "1/fortnight"}]))
    with pytest.raises(ConfigurationError):
        load_parameter_set(path)


def test_unit_helpers() -> None:
    assert convert_rate(24.0, "1/day") == pytest.approx(1.0)
    assert convert_flow(1.0, "L/day") == pytest.approx(10.0 / 24.0)
    assert convert_flow(3.0, "mL/min") == pytest.approx(3.0 * 1e-2 * 60.0)
