"""Code-differential corrections from a reference (base) station."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Protocol

import numpy as np

from gnss_pvt.carrier import Carrier
from gnss_pvt.config import Method
from gnss_pvt.meas.combinations import iono_free_code, iono_free_phase
from gnss_pvt.meas.pseudorange import geometric_range_m
from gnss_pvt.models import Candidate, Observation


class BaseStation(Protocol):
    """Reference receiver at a known position."""

    @property
    def position_ecef(self) -> np.ndarray: ...

    def observe(self, t: float, sv_id: str, carrier: Carrier) -> Optional[Observation]: ...


class RecordedBaseStation:
    """Base station replaying stored candidates keyed by epoch."""

    def __init__(self, position_ecef: np.ndarray, epochs: Mapping[float, Iterable[Candidate]] | None = None) -> None:
        self._position = np.asarray(position_ecef, dtype=float)
        self._observations: dict[tuple[float, str], Mapping[Carrier, Observation]] = {}
        for t, candidates in (epochs or {}).items():
            self.record(t, candidates)

    @property
    def position_ecef(self) -> np.ndarray:
        return self._position

    def record(self, t: float, candidates: Iterable[Candidate]) -> None:
        for cand in candidates:
            self._observations[(float(t), cand.sv_id)] = cand.observations

    def observe(self, t: float, sv_id: str, carrier: Carrier) -> Optional[Observation]:
        observations = self._observations.get((float(t), sv_id))
        if observations is None:
            return None
        return observations.get(carrier)


@dataclass(frozen=True)
class BaseCorrection:
    """Base observable minus base geometric range, per rover row."""

    code_m: float
    phase_m: float | None = None


def base_corrections(
    base: BaseStation,
    t: float,
    candidates: Iterable[Candidate],
    method: Method,
    earth_rotation: bool = True,
) -> dict[str, BaseCorrection]:
    """Return corrections for every candidate the base also observed.

    The base observation is taken on the same carrier(s) the rover row uses,
    so satellite clock, orbit and common-mode atmosphere cancel.
    """

    corrections: dict[str, BaseCorrection] = {}
    for cand in candidates:
        if cand.sv_state is None:
            continue
        rover_obs = _rover_observables(cand, method)
        if rover_obs is None:
            continue
        base_obs = [base.observe(t, cand.sv_id, obs.carrier) for obs in rover_obs]
        if any(obs is None or not obs.has_code for obs in base_obs):
            continue
        rho = geometric_range_m(base.position_ecef, cand.sv_state.pos_ecef_m, earth_rotation)
        if method is Method.SPP:
            corrections[cand.sv_id] = BaseCorrection(code_m=float(base_obs[0].pseudorange_m) - rho)
            continue
        code = iono_free_code(base_obs[0], base_obs[1]) - rho
        phase = None
        if method is Method.PPP:
            if not (base_obs[0].has_phase and base_obs[1].has_phase):
                continue
            phase = iono_free_phase(base_obs[0], base_obs[1]) - rho
        corrections[cand.sv_id] = BaseCorrection(code_m=code, phase_m=phase)
    return corrections


def _rover_observables(cand: Candidate, method: Method) -> tuple[Observation, ...] | None:
    if method is Method.SPP:
        obs = cand.preferred_code()
        return None if obs is None else (obs,)
    if method is Method.CPP:
        return cand.dual_code()
    return cand.dual_phase()
