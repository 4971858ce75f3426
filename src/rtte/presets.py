"""Reference parameterisations of the two source models.

``pk2cmt_hazard_parameters`` is the two-compartment model with dual
first-order absorption, optional Michaelis-Menten clearance and an
inhibitory, time-trended hazard.  ``one_compartment_emax_parameters`` is the
single-depot model whose hazard is stimulated by exposure and scaled by
ECOG/age covariates (:data:`DAY1_COVARIATES`).
"""

from __future__ import annotations

from .covariates import CovariateModel
from .parameters import ParameterSet
from .units import HOURS_PER_YEAR

DAY1_COVARIATES = CovariateModel({"ECOG1": 0.095, "ECOG2": 0.223, "cAGE": 0.095})


def pk2cmt_hazard_parameters(*, nonlinear_clearance: bool = False, **overrides: float) -> ParameterSet:
    values = {
        "CL": 1.0,
        "VC": 20.0,
        "Q": 2.0,
        "VP": 10.0,
        "KA1": 1.0,
        "KA2": 1.0,
        "VMAX": 0.0,
        "KM": 2.0,
        "LAMBDA": 2.96 / HOURS_PER_YEAR,
        "GAMMA": -0.566,
        "IMAX": 1.0,
        "IC50": 10.2,
    }
    values.update(overrides)
    return ParameterSet(values, nonlinear_clearance=nonlinear_clearance, drug_effect="inhibitory")


def one_compartment_emax_parameters(**overrides: float) -> ParameterSet:
    values = {
        "VC": 2.44,
        "KA1": 0.92,
        "CL": 1.0,
        "LAMBDA": 0.0217,
        "EMAX": 0.692,
        "EC50": 4.956,
    }
    values.update(overrides)
    return ParameterSet(values, drug_effect="stimulatory")


__all__ = ["DAY1_COVARIATES", "one_compartment_emax_parameters", "pk2cmt_hazard_parameters"]
