"""Covariate-dependent hazard multipliers.

Covariates enter the hazard through one scalar per subject,
``NU = exp(sum(beta_i * x_i))``, folded into the parameter set before the run
so the right-hand side stays generic across covariate schemes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Mapping

import pandas as pd

from .errors import ConfigurationError
from .parameters import ParameterSet


@dataclass(frozen=True)
class CovariateModel:
    coefficients: Mapping[str, float] = field(default_factory=dict)

    def linear_predictor(self, covariates: Mapping[str, float]) -> float:
        total = 0.0
        for name, beta in self.coefficients.items():
            if name not in covariates:
                raise ConfigurationError(f"Covariate '{name}' missing for hazard multiplier")
            value = float(covariates[name])
            if not math.isfinite(value):
                raise ConfigurationError(f"Covariate '{name}' is not finite ({value!r})")
            total += float(beta) * value
        return total

    def multiplier(self, covariates: Mapping[str, float]) -> float:
        return math.exp(self.linear_predictor(covariates))

    def fold_into(self, params: ParameterSet, covariates: Mapping[str, float]) -> ParameterSet:
        """Return *params* with ``NU`` scaled by this subject's multiplier."""
        if not self.coefficients:
            return params
        return params.with_overrides(NU=params.value("NU") * self.multiplier(covariates))

    def multipliers_from_frame(self, frame: pd.DataFrame, id_column: str = "ID") -> pd.Series:
        """Per-subject multipliers for a covariate table (one row per subject)."""
        missing = [name for name in self.coefficients if name not in frame.columns]
        if missing:
            raise ConfigurationError(f"Covariate table lacks columns {sorted(missing)!r}")
        if id_column not in frame.columns:
            raise ConfigurationError(f"Covariate table lacks id column '{id_column}'")
        if frame[id_column].duplicated().any():
            raise ConfigurationError(f"Duplicate subject ids in column '{id_column}'")
        values: Dict[str, float] = {}
        for row in frame.to_dict(orient="records"):
            values[str(row[id_column])] = self.multiplier(row)
        return pd.Series(values, name="NU", dtype=float)


def covariate_records(frame: pd.DataFrame, id_column: str = "ID") -> Dict[str, Dict[str, float]]:
    """Map subject id to its covariate values."""
    if id_column not in frame.columns:
        raise ConfigurationError(f"Covariate table lacks id column '{id_column}'")
    records: Dict[str, Dict[str, float]] = {}
    for row in frame.to_dict(orient="records"):
        subject = str(row.pop(id_column))
        try:
            records[subject] = {str(key): float(value) for key, value in row.items()}
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Non-numeric covariate for subject {subject}: {exc}") from exc
    return records


__all__ = ["CovariateModel", "covariate_records"]
