r"""Parameter sets for the exposure-driven hazard model.

A :class:`ParameterSet` is the typed hand-off from whatever layer defines the
model (a catalogue file, a population sampler, a covariate table) to the
numerical core.  It behaves like a read-only mapping from parameter name to
float and carries the two declared switches of the model: whether the
Michaelis–Menten clearance pathway is active and which drug-effect shape
modulates the hazard.

Catalogues follow the same JSON shape as the annotated ``$PARAM`` blocks of
the reference models: a list of ``{"name", "value", "units", "description"}``
entries, or simply ``{"name": value}``.  Units are converted to the model's
hour/decilitre convention on load.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Mapping, MutableMapping, Optional

from .errors import ConfigurationError
from .units import HOURS_PER_YEAR, convert_parameter_value, convert_rate

DRUG_EFFECTS = ("none", "stimulatory", "inhibitory")

REQUIRED = ("CL", "VC", "LAMBDA")

DEFAULTS: Dict[str, float] = {
    "Q": 0.0,
    "VP": 1.0,
    "KA1": 0.0,
    "KA2": 0.0,
    "VMAX": 0.0,
    "KM": 1.0,
    "GAMMA": 0.0,
    "EMAX": 0.0,
    "EC50": 1.0,
    "IMAX": 1.0,
    "IC50": 1.0,
    "NU": 1.0,
}

_VOLUMES = ("VC", "VP")
_NON_NEGATIVE = ("CL", "Q", "KA1", "KA2", "VMAX", "LAMBDA", "EMAX")
# Rates expressed per year of model time rather than per hour.
_PER_YEAR = ("GAMMA",)


@dataclass(frozen=True)
class Parameter:
    """Container describing a resolved catalogue entry."""

    name: str
    value: float
    units: str = ""
    description: str = ""


class ParameterSet(Mapping[str, float]):
    """Mapping-like wrapper around a subject's resolved parameters."""

    def __init__(
        self,
        values: Mapping[str, float],
        *,
        nonlinear_clearance: bool = False,
        drug_effect: str = "none",
        metadata: Optional[Mapping[str, Parameter]] = None,
    ):
        self._values = {str(name): float(value) for name, value in values.items()}
        self.nonlinear_clearance = bool(nonlinear_clearance)
        self.drug_effect = str(drug_effect).lower()
        self._metadata = dict(metadata or {})

    def __getitem__(self, key: str) -> float:  # type: ignore[override]
        return self._values[key]

    def __iter__(self) -> Iterator[str]:  # type: ignore[override]
        return iter(self._values)

    def __len__(self) -> int:  # type: ignore[override]
        return len(self._values)

    def __repr__(self) -> str:
        return (
            f"ParameterSet({self._values!r}, nonlinear_clearance={self.nonlinear_clearance}, "
            f"drug_effect={self.drug_effect!r})"
        )

    def value(self, name: str) -> float:
        """Return *name*, falling back to the documented optional default."""
        if name in self._values:
            return self._values[name]
        if name in DEFAULTS:
            return DEFAULTS[name]
        raise ConfigurationError(f"Required parameter '{name}' missing from parameter set")

    def metadata(self, name: str) -> Parameter:
        """Return the full :class:`Parameter` record for *name*."""
        if name in self._metadata:
            return self._metadata[name]
        return Parameter(name=name, value=self.value(name))

    def resolved(self) -> Dict[str, float]:
        """Every model parameter with defaults filled in."""
        merged = dict(DEFAULTS)
        merged.update(self._values)
        return merged

    def with_overrides(self, **values: float) -> "ParameterSet":
        merged = dict(self._values)
        merged.update({name: float(value) for name, value in values.items()})
        return ParameterSet(
            merged,
            nonlinear_clearance=self.nonlinear_clearance,
            drug_effect=self.drug_effect,
            metadata=self._metadata,
        )

    def validate(self) -> "ParameterSet":
        """Check the invariants the right-hand side relies on.

        Raises :class:`ConfigurationError` on the first violation; returns
        ``self`` so calls can be chained.
        """
        for name in REQUIRED:
            if name not in self._values:
                raise ConfigurationError(f"Required parameter '{name}' missing from parameter set")
        for name, value in self._values.items():
            if not math.isfinite(value):
                raise ConfigurationError(f"Parameter '{name}' is not finite ({value!r})")
        if self.drug_effect not in DRUG_EFFECTS:
            raise ConfigurationError(
                f"Unknown drug effect '{self.drug_effect}'; expected one of {DRUG_EFFECTS}"
            )
        values = self.resolved()
        if values["Q"] > 0.0 and "VP" not in self._values:
            raise ConfigurationError("Peripheral volume 'VP' is required when Q > 0")
        for name in _VOLUMES:
            if name == "VP" and values["Q"] == 0.0:
                continue
            if values[name] <= 0.0:
                raise ConfigurationError(f"Volume '{name}' must be strictly positive, got {values[name]:g}")
        for name in _NON_NEGATIVE:
            if values[name] < 0.0:
                raise ConfigurationError(f"Parameter '{name}' must be non-negative, got {values[name]:g}")
        if self.nonlinear_clearance and values["KM"] <= 0.0:
            raise ConfigurationError("KM must be strictly positive when nonlinear clearance is enabled")
        if self.drug_effect == "stimulatory" and values["EC50"] <= 0.0:
            raise ConfigurationError("EC50 must be strictly positive for a stimulatory drug effect")
        if self.drug_effect == "inhibitory":
            if values["IC50"] <= 0.0:
                raise ConfigurationError("IC50 must be strictly positive for an inhibitory drug effect")
            if not 0.0 <= values["IMAX"] <= 1.0:
                raise ConfigurationError(f"IMAX must lie in [0, 1], got {values['IMAX']:g}")
        if values["NU"] <= 0.0:
            raise ConfigurationError(f"Hazard multiplier NU must be positive, got {values['NU']:g}")
        return self


def _convert_entry(name: str, value: float, units: str) -> float:
    if name in _PER_YEAR and units:
        return convert_rate(value, units) * HOURS_PER_YEAR
    return convert_parameter_value(value, units)


def parameter_set_from_payload(payload: object) -> ParameterSet:
    """Build a :class:`ParameterSet` from a decoded JSON catalogue."""

    switches: Dict[str, object] = {}
    entries: list
    if isinstance(payload, Mapping):
        switches = {
            key: payload[key] for key in ("nonlinear_clearance", "drug_effect") if key in payload
        }
        if "parameters" in payload:
            entries = list(payload["parameters"])
        else:
            entries = [
                {"name": key, "value": value}
                for key, value in payload.items()
                if key not in switches
            ]
    else:
        entries = list(payload)  # type: ignore[arg-type]

    resolved: MutableMapping[str, Parameter] = {}
    for entry in entries:
        name = str(entry.get("name", "")).strip()
        if not name:
            raise ConfigurationError("Parameter entry without a name")
        if name in resolved:
            raise ConfigurationError(f"Parameter '{name}' defined more than once")
        if entry.get("value") is None:
            raise ConfigurationError(f"Parameter '{name}' has no value")
        units = str(entry.get("units", "") or "")
        try:
            raw = float(entry["value"])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Parameter '{name}' value is not numeric: {entry['value']!r}") from exc
        resolved[name] = Parameter(
            name=name,
            value=_convert_entry(name, raw, units),
            units=units,
            description=str(entry.get("description", "") or ""),
        )

    return ParameterSet(
        {name: item.value for name, item in resolved.items()},
        nonlinear_clearance=bool(switches.get("nonlinear_clearance", False)),
        drug_effect=str(switches.get("drug_effect", "none")),
        metadata=resolved,
    )


def load_parameter_set(path: Path | str) -> ParameterSet:
    """Load a JSON parameter catalogue.

    Parameters
    ----------
    path:
        Path to the JSON file.  The function accepts either a :class:`Path`
        instance or a raw string for convenience.
    """

    with Path(path).open("r", encoding="utf8") as handle:
        payload = json.load(handle)
    return parameter_set_from_payload(payload)


__all__ = [
    "DEFAULTS",
    "DRUG_EFFECTS",
    "REQUIRED",
    "Parameter",
    "ParameterSet",
    "load_parameter_set",
    "parameter_set_from_payload",
]
