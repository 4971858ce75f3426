"""Right-hand side of the PK/hazard system.

State layout follows :data:`~src.rtte.entities.COMPARTMENTS`::

    EV1, CENT, PERIPH, EV2, CHAZARD

Two first-order depots feed the central compartment, which exchanges with a
peripheral compartment and is cleared linearly and, optionally, through a
saturable Michaelis–Menten pathway.  The last component integrates the
instantaneous hazard

    h(t, CP) = LAMBDA * exp(GAMMA * (t/8760 - 1)) * E(CP) * NU

where ``E`` is 1, a stimulatory Emax term or an inhibitory Imax term.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .entities import COMPARTMENTS, MASS_COMPARTMENTS, compartment_index
from .errors import ConfigurationError, DomainError, InvalidStateError
from .parameters import ParameterSet
from .units import HOURS_PER_YEAR

logger = logging.getLogger(__name__)

EV1, CENT, PERIPH, EV2, CHAZARD = (compartment_index(name) for name in COMPARTMENTS)
_MASS_IDX = np.array([compartment_index(name) for name in MASS_COMPARTMENTS], dtype=int)

STATE_POLICIES = ("clamp", "raise")


@dataclass(frozen=True)
class StateOptions:
    """How negative mass from integrator overshoot is handled."""

    state_policy: str = "clamp"
    negative_tolerance: float = 1e-9

    def __post_init__(self) -> None:
        if self.state_policy not in STATE_POLICIES:
            raise ConfigurationError(
                f"Unknown state policy '{self.state_policy}'; expected one of {STATE_POLICIES}"
            )
        if not self.negative_tolerance >= 0.0:
            raise ConfigurationError("negative_tolerance must be non-negative")


@dataclass(frozen=True)
class HazardModel:
    """Parameters of one subject bound to the right-hand side.

    Instances are immutable; :meth:`rhs` has no side effects and may be
    called any number of times per step.
    """

    cl: float
    vc: float
    q: float
    vp: float
    ka1: float
    ka2: float
    vmax: float
    km: float
    lam: float
    gamma: float
    emax: float
    ec50: float
    imax: float
    ic50: float
    nu: float
    nonlinear_clearance: bool = False
    drug_effect: str = "none"
    options: StateOptions = StateOptions()

    @classmethod
    def from_parameters(cls, params: ParameterSet, options: Optional[StateOptions] = None) -> "HazardModel":
        params.validate()
        values = params.resolved()
        return cls(
            cl=values["CL"],
            vc=values["VC"],
            q=values["Q"],
            vp=values["VP"],
            ka1=values["KA1"],
            ka2=values["KA2"],
            vmax=values["VMAX"],
            km=values["KM"],
            lam=values["LAMBDA"],
            gamma=values["GAMMA"],
            emax=values["EMAX"],
            ec50=values["EC50"],
            imax=values["IMAX"],
            ic50=values["IC50"],
            nu=values["NU"],
            nonlinear_clearance=params.nonlinear_clearance,
            drug_effect=params.drug_effect,
            options=options or StateOptions(),
        )

    def _central_amount(self, cent: float) -> float:
        if cent >= 0.0:
            return cent
        if self.options.state_policy == "raise" and cent < -self.options.negative_tolerance:
            raise InvalidStateError(f"Central amount went negative ({cent:g})")
        return 0.0

    def concentration(self, y: np.ndarray) -> float:
        """Plasma concentration ``CP = CENT/VC`` with overshoot clamped."""
        return self._central_amount(float(y[CENT])) / self.vc

    def drug_effect_factor(self, cp: float) -> float:
        if self.drug_effect == "stimulatory":
            denom = self.ec50 + cp
            if denom == 0.0:
                raise DomainError("EC50 + CP == 0 in stimulatory drug effect")
            return 1.0 + self.emax * cp / denom
        if self.drug_effect == "inhibitory":
            denom = self.ic50 + cp
            if denom == 0.0:
                raise DomainError("IC50 + CP == 0 in inhibitory drug effect")
            return 1.0 - self.imax * cp / denom
        return 1.0

    def baseline_hazard(self, t: float) -> float:
        if self.gamma == 0.0:
            return self.lam
        return self.lam * math.exp(self.gamma * (t / HOURS_PER_YEAR - 1.0))

    def hazard(self, t: float, y: np.ndarray) -> float:
        """Instantaneous hazard at time *t* (1/h), never negative."""
        cp = self.concentration(y)
        value = self.baseline_hazard(t) * self.drug_effect_factor(cp) * self.nu
        return max(value, 0.0)

    def rhs(self, t: float, y: np.ndarray, inputs: Optional[np.ndarray] = None) -> np.ndarray:
        """Derivative of every state component.

        *inputs* holds zero-order infusion rates per compartment (mass/h).
        """
        ev1 = float(y[EV1])
        ev2 = float(y[EV2])
        cp = self.concentration(y)
        ct = float(y[PERIPH]) / self.vp if self.q else 0.0

        clnl = 0.0
        if self.nonlinear_clearance and self.vmax:
            denom = self.km + cp
            if denom == 0.0:
                raise DomainError("KM + CP == 0 in Michaelis-Menten clearance")
            clnl = self.vmax / denom

        absorbed_1 = self.ka1 * ev1
        absorbed_2 = self.ka2 * ev2
        dxdt = np.empty(len(COMPARTMENTS), dtype=float)
        dxdt[EV1] = -absorbed_1
        dxdt[EV2] = -absorbed_2
        dxdt[CENT] = absorbed_1 + absorbed_2 - (self.cl + clnl + self.q) * cp + self.q * ct
        dxdt[PERIPH] = self.q * cp - self.q * ct
        dxdt[CHAZARD] = max(self.baseline_hazard(t) * self.drug_effect_factor(cp) * self.nu, 0.0)
        if inputs is not None:
            dxdt += inputs
        return dxdt

    def enforce_state(self, y: np.ndarray, t: float) -> np.ndarray:
        """Clamp (or reject) negative mass in place; returns *y*."""
        masses = y[_MASS_IDX]
        negative = masses < 0.0
        if not np.any(negative):
            return y
        worst = float(masses.min())
        if worst < -self.options.negative_tolerance:
            if self.options.state_policy == "raise":
                raise InvalidStateError(f"Negative mass {worst:g} at t={t:g}")
            logger.warning("clamping negative mass %.3g at t=%g", worst, t)
        y[_MASS_IDX[negative]] = 0.0
        return y


def evaluate_rhs(
    t: float,
    y: np.ndarray,
    params: ParameterSet,
    inputs: Optional[np.ndarray] = None,
    options: Optional[StateOptions] = None,
) -> np.ndarray:
    """Stateless convenience wrapper: ``(t, y, params) -> dy/dt``."""
    return HazardModel.from_parameters(params, options).rhs(t, np.asarray(y, dtype=float), inputs)


__all__ = ["HazardModel", "STATE_POLICIES", "StateOptions", "evaluate_rhs"]
