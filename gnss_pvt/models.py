"""Core data models for the PVT pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping

import numpy as np

from gnss_pvt.carrier import Carrier
from gnss_pvt.utils.gnss_time import TimeScale
from gnss_pvt.utils.wgs84 import ecef_to_lla


@dataclass(frozen=True)
class Observation:
    """One carrier's observables for a vehicle at an epoch."""

    carrier: Carrier
    pseudorange_m: float | None = None
    phase_range_m: float | None = None  # carrier phase scaled to meters
    snr_dbhz: float | None = None
    doppler_hz: float | None = None

    @property
    def has_code(self) -> bool:
        return self.pseudorange_m is not None and np.isfinite(self.pseudorange_m)

    @property
    def has_phase(self) -> bool:
        return self.phase_range_m is not None and np.isfinite(self.phase_range_m)

    @property
    def pseudorange_rate_mps(self) -> float | None:
        if self.doppler_hz is None:
            return None
        return -float(self.doppler_hz) * self.carrier.wavelength_m


@dataclass(frozen=True)
class SvState:
    """Satellite state supplied by the ephemeris/clock collaborator."""

    pos_ecef_m: np.ndarray
    vel_ecef_mps: np.ndarray | None = None
    clock_bias_s: float = 0.0
    clock_drift_sps: float = 0.0
    group_delay_s: float | None = None
    needs_relativistic_correction: bool = False


@dataclass(frozen=True)
class Candidate:
    """One observed vehicle at one epoch."""

    sv_id: str
    t: float
    observations: Mapping[Carrier, Observation]
    sv_state: SvState | None = None
    elevation_deg: float | None = None
    azimuth_deg: float | None = None

    def code_observations(self) -> list[Observation]:
        """Observations carrying a pseudorange, primary band first then by frequency."""

        coded = [obs for obs in self.observations.values() if obs.has_code]
        return sorted(coded, key=lambda obs: (not obs.carrier.is_primary, -obs.carrier.frequency_hz))

    def preferred_code(self) -> Observation | None:
        """Primary-band pseudorange if present, otherwise the strongest signal."""

        coded = self.code_observations()
        if not coded:
            return None
        if coded[0].carrier.is_primary:
            return coded[0]
        return max(coded, key=lambda obs: obs.snr_dbhz if obs.snr_dbhz is not None else -np.inf)

    def dual_code(self) -> tuple[Observation, Observation] | None:
        """Two pseudoranges on distinct frequencies (primary, secondary)."""

        return _distinct_pair(self.code_observations())

    def dual_phase(self) -> tuple[Observation, Observation] | None:
        """Two observations on distinct frequencies that both carry code and phase."""

        full = [obs for obs in self.code_observations() if obs.has_phase]
        return _distinct_pair(full)

    def with_attitude(self, elevation_deg: float, azimuth_deg: float) -> "Candidate":
        return replace(self, elevation_deg=float(elevation_deg), azimuth_deg=float(azimuth_deg))

    def with_min_snr(self, min_snr_dbhz: float) -> "Candidate | None":
        """Drop observations below the SNR mask; ``None`` if nothing remains.

        Observations without an SNR value are kept.
        """

        kept = {
            carrier: obs
            for carrier, obs in self.observations.items()
            if obs.snr_dbhz is None or obs.snr_dbhz >= min_snr_dbhz
        }
        if not kept:
            return None
        if len(kept) == len(self.observations):
            return self
        return replace(self, observations=kept)


def _distinct_pair(observations: list[Observation]) -> tuple[Observation, Observation] | None:
    if not observations:
        return None
    first = observations[0]
    for other in observations[1:]:
        if abs(other.carrier.frequency_hz - first.carrier.frequency_hz) > 1e6:
            return first, other
    return None


@dataclass(frozen=True)
class TropoComponents:
    """Zenith tropospheric delays plus the mapping applied for one line of sight."""

    zenith_dry_m: float
    zenith_wet_m: float
    mapping_dry: float = 1.0
    mapping_wet: float = 1.0

    @property
    def slant_delay_m(self) -> float:
        return float(self.zenith_dry_m * self.mapping_dry + self.zenith_wet_m * self.mapping_wet)


@dataclass(frozen=True)
class IonoComponents:
    """Ionosphere description: broadcast model coefficients or a vertical L1 delay."""

    klobuchar_alpha: tuple[float, float, float, float] | None = None
    klobuchar_beta: tuple[float, float, float, float] | None = None
    vertical_delay_l1_m: float | None = None
    slant_delay_l1_m: float | None = None


@dataclass(frozen=True)
class DopMetrics:
    """Dilution of precision metrics."""

    gdop: float
    pdop: float
    hdop: float
    vdop: float
    tdop: float


@dataclass(frozen=True)
class ResidualStats:
    """Post-fit code residual summary."""

    rms_m: float
    mean_m: float
    max_m: float
    chi_square: float
    dof: int


@dataclass(frozen=True)
class SvContribution:
    """Per-vehicle bookkeeping for a released solution."""

    elevation_deg: float | None
    azimuth_deg: float | None
    tropo_delay_m: float
    iono_delay_m: float
    residual_m: float | None = None


class ConvergenceStatus(Enum):
    UNINITIALIZED = "uninitialized"
    CONVERGING = "converging"
    CONVERGED = "converged"


@dataclass(frozen=True)
class PvtSolution:
    """Position/velocity/time solution for one epoch."""

    t: float
    pos_ecef: np.ndarray
    vel_ecef: np.ndarray | None
    clock_offset_s: float
    clock_drift_sps: float | None
    timescale: TimeScale
    dop: DopMetrics
    sv_ids: tuple[str, ...]
    sv: Mapping[str, SvContribution]
    covariance: np.ndarray
    residuals: ResidualStats
    method: str
    solution_type: str

    def lat_lon_alt(self) -> tuple[float, float, float]:
        return ecef_to_lla(*self.pos_ecef)

    @property
    def sv_count(self) -> int:
        return len(self.sv_ids)


@dataclass(frozen=True)
class EpochLog:
    """Per-epoch log data."""

    t: float
    solution: PvtSolution | None
    status: ConvergenceStatus
    required_sv: int
    candidates_in: int
    error_kind: str | None = None
    error_message: str = ""
    truth_pos_ecef: np.ndarray | None = None
    extras: Mapping[str, float] = field(default_factory=dict)

    @property
    def candidates_used(self) -> int:
        return self.solution.sv_count if self.solution is not None else 0

    @property
    def position_error_m(self) -> float | None:
        if self.solution is None or self.truth_pos_ecef is None:
            return None
        return float(np.linalg.norm(self.solution.pos_ecef - self.truth_pos_ecef))
