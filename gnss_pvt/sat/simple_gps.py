"""Simplified GPS-like constellation model."""

from __future__ import annotations

from dataclasses import dataclass
from math import ceil

import numpy as np

from gnss_pvt.models import SvState

MU_EARTH = 3.986004418e14
OMEGA_EARTH = 7.2921151467e-5


@dataclass(frozen=True)
class SimpleGpsConfig:
    """Configuration for the simplified GPS constellation."""

    num_sats: int = 24
    num_planes: int = 6
    radius_m: float = 26_560_000.0
    inclination_deg: float = 55.0
    seed: int | None = 0
    clock_bias_sigma_s: float = 50e-9
    clock_drift_sigma_sps: float = 1e-10
    group_delay_sigma_s: float = 0.0
    enable_clock: bool = True
    prefix: str = "G"


def _rot_z(angle_rad: float) -> np.ndarray:
    cos_a, sin_a = np.cos(angle_rad), np.sin(angle_rad)
    return np.array([[cos_a, -sin_a, 0.0], [sin_a, cos_a, 0.0], [0.0, 0.0, 1.0]])


def _rot_x(angle_rad: float) -> np.ndarray:
    cos_a, sin_a = np.cos(angle_rad), np.sin(angle_rad)
    return np.array([[1.0, 0.0, 0.0], [0.0, cos_a, -sin_a], [0.0, sin_a, cos_a]])


class SimpleGpsConstellation:
    """Deterministic GPS-like constellation with circular orbits.

    Plays the part of the ephemeris/clock collaborator in tests and demos.
    """

    def __init__(self, config: SimpleGpsConfig | None = None) -> None:
        self.config = config or SimpleGpsConfig()
        rng = np.random.default_rng(self.config.seed)
        count = self.config.num_sats
        planes = max(1, min(self.config.num_planes, count))
        self._radius_m = self.config.radius_m
        self._mean_motion = float(np.sqrt(MU_EARTH / self._radius_m**3))
        self.sv_ids = [f"{self.config.prefix}{idx + 1:02d}" for idx in range(count)]

        raan = np.linspace(0.0, 2.0 * np.pi, planes, endpoint=False)
        offsets = rng.uniform(0.0, 2.0 * np.pi, size=planes)
        per_plane = ceil(count / planes)
        inclination = _rot_x(np.deg2rad(self.config.inclination_deg))
        self._plane_rotations = [_rot_z(raan[idx % planes]) @ inclination for idx in range(count)]
        self._mean_anom = np.array(
            [2.0 * np.pi * (idx // planes) / per_plane + offsets[idx % planes] for idx in range(count)]
        )

        if self.config.enable_clock:
            self._clk_bias = rng.normal(0.0, self.config.clock_bias_sigma_s, size=count)
            self._clk_drift = rng.normal(0.0, self.config.clock_drift_sigma_sps, size=count)
        else:
            self._clk_bias = np.zeros(count)
            self._clk_drift = np.zeros(count)
        if self.config.group_delay_sigma_s > 0.0:
            self._tgd = rng.normal(0.0, self.config.group_delay_sigma_s, size=count)
        else:
            self._tgd = None

    def get_sv_states(self, t: float) -> dict[str, SvState]:
        """Return satellite states keyed by vehicle id at the requested epoch."""

        rot_earth = _rot_z(-OMEGA_EARTH * t)
        omega = np.array([0.0, 0.0, OMEGA_EARTH])
        states: dict[str, SvState] = {}
        for idx, sv_id in enumerate(self.sv_ids):
            theta = self._mean_motion * t + self._mean_anom[idx]
            r_orb = self._radius_m * np.array([np.cos(theta), np.sin(theta), 0.0])
            v_orb = self._radius_m * self._mean_motion * np.array([-np.sin(theta), np.cos(theta), 0.0])
            r_ecef = rot_earth @ (self._plane_rotations[idx] @ r_orb)
            v_ecef = rot_earth @ (self._plane_rotations[idx] @ v_orb) - np.cross(omega, r_ecef)
            states[sv_id] = SvState(
                pos_ecef_m=r_ecef,
                vel_ecef_mps=v_ecef,
                clock_bias_s=float(self._clk_bias[idx] + self._clk_drift[idx] * t),
                clock_drift_sps=float(self._clk_drift[idx]),
                group_delay_s=None if self._tgd is None else float(self._tgd[idx]),
            )
        return states
