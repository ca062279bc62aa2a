"""Synthetic multi-carrier candidate source for a static receiver."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from gnss_pvt.carrier import LIGHT_SPEED_MPS, Carrier, iono_scale
from gnss_pvt.meas.iono_klobuchar import DEFAULT_ALPHA, DEFAULT_BETA, klobuchar_delay_m
from gnss_pvt.meas.pseudorange import line_of_sight
from gnss_pvt.meas.tropo_saastamoinen import niell_mapping, zenith_delays_m
from gnss_pvt.models import Candidate, Observation, SvState
from gnss_pvt.sat.simple_gps import SimpleGpsConstellation
from gnss_pvt.sat.visibility import visible_sv_states
from gnss_pvt.utils.gnss_time import day_of_year
from gnss_pvt.utils.wgs84 import ecef_to_lla


def cn0_from_elevation(elev_deg: float, cn0_zenith_dbhz: float = 47.0, cn0_min_dbhz: float = 25.0) -> float:
    weight = np.sin(np.deg2rad(np.clip(float(elev_deg), 0.0, 90.0)))
    return float(cn0_min_dbhz + (cn0_zenith_dbhz - cn0_min_dbhz) * weight)


@dataclass
class SyntheticCandidateSource:
    """Generate multi-carrier candidates for a static receiver.

    Noise can be scheduled per epoch with ``code_sigma_fn(t)`` to emulate a
    survey whose measurement quality improves over time.
    """

    constellation: SimpleGpsConstellation
    receiver_pos_ecef_m: np.ndarray
    receiver_clock_bias_s: float = 0.0
    receiver_clock_drift_sps: float = 0.0
    carriers: tuple[Carrier, ...] = (Carrier.L1, Carrier.L2)
    elevation_mask_deg: float = 5.0
    max_visible: int | None = None
    sv_ids: tuple[str, ...] | None = None
    frozen_geometry_t: float | None = None
    code_sigma_m: float = 0.0
    code_sigma_fn: Callable[[float], float] | None = None
    phase_sigma_m: float = 0.0
    doppler_sigma_mps: float = 0.0
    include_tropo: bool = False
    include_iono: bool = False
    earth_rotation: bool = True
    with_phase: bool = True
    with_doppler: bool = True
    iono_alpha: tuple[float, float, float, float] = DEFAULT_ALPHA
    iono_beta: tuple[float, float, float, float] = DEFAULT_BETA
    cn0_zenith_dbhz: float = 47.0
    rng: np.random.Generator = field(default_factory=lambda: np.random.default_rng(0))

    _ambiguity_cycles: dict[tuple[str, Carrier], float] = field(init=False, default_factory=dict)
    _rx_lla: tuple[float, float, float] = field(init=False)

    def __post_init__(self) -> None:
        self.receiver_pos_ecef_m = np.asarray(self.receiver_pos_ecef_m, dtype=float)
        # Receiver is static, so cache the LLA conversion.
        self._rx_lla = ecef_to_lla(*self.receiver_pos_ecef_m)

    def clock_bias_at(self, t: float) -> float:
        return self.receiver_clock_bias_s + self.receiver_clock_drift_sps * t

    def visible(self, t: float) -> dict[str, tuple[SvState, float, float]]:
        geometry_t = t if self.frozen_geometry_t is None else self.frozen_geometry_t
        states = self.constellation.get_sv_states(geometry_t)
        if self.sv_ids is not None:
            states = {sv_id: states[sv_id] for sv_id in self.sv_ids}
        visible = visible_sv_states(self.receiver_pos_ecef_m, states, self.elevation_mask_deg)
        if self.max_visible is not None:
            visible = dict(list(visible.items())[: self.max_visible])
        return visible

    def get_candidates(self, t: float) -> list[Candidate]:
        lat_deg, lon_deg, alt_m = self._rx_lla
        code_sigma = self.code_sigma_fn(t) if self.code_sigma_fn is not None else self.code_sigma_m
        rx_clock_m = LIGHT_SPEED_MPS * self.clock_bias_at(t)
        rx_drift_mps = LIGHT_SPEED_MPS * self.receiver_clock_drift_sps
        tropo_zenith = zenith_delays_m(lat_deg, alt_m) if self.include_tropo else (0.0, 0.0)
        doy = day_of_year(t)

        candidates: list[Candidate] = []
        for sv_id, (state, elev_deg, az_deg) in self.visible(t).items():
            rho, unit = line_of_sight(self.receiver_pos_ecef_m, state.pos_ecef_m, self.earth_rotation)
            base_m = rho + rx_clock_m - LIGHT_SPEED_MPS * state.clock_bias_s
            if self.include_tropo:
                m_dry, m_wet = niell_mapping(elev_deg, lat_deg, alt_m, doy)
                base_m += tropo_zenith[0] * m_dry + tropo_zenith[1] * m_wet
            iono_l1_m = 0.0
            if self.include_iono:
                iono_l1_m = klobuchar_delay_m(
                    t, lat_deg, lon_deg, elev_deg, az_deg, alpha=self.iono_alpha, beta=self.iono_beta
                )
            range_rate = 0.0
            if state.vel_ecef_mps is not None:
                range_rate = float(np.dot(state.vel_ecef_mps, unit))
            range_rate += rx_drift_mps - LIGHT_SPEED_MPS * state.clock_drift_sps
            cn0 = cn0_from_elevation(elev_deg, self.cn0_zenith_dbhz)

            observations: dict[Carrier, Observation] = {}
            for carrier in self.carriers:
                scale = iono_scale(carrier.frequency_hz)
                code = base_m + iono_l1_m * scale
                if code_sigma > 0.0:
                    code += float(self.rng.normal(0.0, code_sigma))
                if state.group_delay_s is not None:
                    code += LIGHT_SPEED_MPS * state.group_delay_s * scale
                phase = None
                if self.with_phase:
                    phase = base_m - iono_l1_m * scale + carrier.wavelength_m * self._ambiguity(sv_id, carrier)
                    if self.phase_sigma_m > 0.0:
                        phase += float(self.rng.normal(0.0, self.phase_sigma_m))
                doppler = None
                if self.with_doppler:
                    rate = range_rate
                    if self.doppler_sigma_mps > 0.0:
                        rate += float(self.rng.normal(0.0, self.doppler_sigma_mps))
                    doppler = -rate / carrier.wavelength_m
                observations[carrier] = Observation(
                    carrier=carrier,
                    pseudorange_m=code,
                    phase_range_m=phase,
                    snr_dbhz=cn0,
                    doppler_hz=doppler,
                )
            candidates.append(
                Candidate(
                    sv_id=sv_id,
                    t=t,
                    observations=observations,
                    sv_state=state,
                    elevation_deg=elev_deg,
                    azimuth_deg=az_deg,
                )
            )
        return candidates

    def _ambiguity(self, sv_id: str, carrier: Carrier) -> float:
        key = (sv_id, carrier)
        if key not in self._ambiguity_cycles:
            self._ambiguity_cycles[key] = float(self.rng.integers(-1000, 1000))
        return self._ambiguity_cycles[key]
