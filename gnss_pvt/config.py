"""Configuration objects for the PVT solver.

All configuration is immutable for the lifetime of a solver instance.
``SolverConfig.validate`` raises ``ConfigurationInvalid`` for combinations the
solver cannot honour; ``config_from_mapping`` loads JSON-style overrides.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Mapping

import numpy as np

from gnss_pvt.carrier import Carrier
from gnss_pvt.errors import ConfigurationInvalid
from gnss_pvt.meas.iono_klobuchar import DEFAULT_ALPHA, DEFAULT_BETA
from gnss_pvt.utils.gnss_time import LEAP_SECONDS, TimeScale


class Method(Enum):
    """Observation-combination strategy."""

    SPP = "spp"  # single-frequency code
    CPP = "cpp"  # dual-frequency ionosphere-free code
    PPP = "ppp"  # dual-frequency ionosphere-free code and phase


class SolutionType(Enum):
    FULL_PVT = "full_pvt"
    FIXED_ALTITUDE = "fixed_altitude"
    TIME_ONLY = "time_only"


class FilterKind(Enum):
    NONE = "none"  # memoryless least squares
    LSQ = "lsq"
    KALMAN = "kalman"


class Positioning(Enum):
    STATIC = "static"
    KINEMATIC = "kinematic"


TROPO_MODELS = ("niell", "cosecant")


@dataclass(frozen=True)
class Modeling:
    """Physical effects compensated while building observation equations."""

    sv_clock_bias: bool = True
    sv_total_group_delay: bool = True
    relativistic_clock_bias: bool = True
    relativistic_path_range: bool = True
    tropo_delay: bool = True
    iono_delay: bool = True
    earth_rotation: bool = True
    solid_tides: bool = True


@dataclass(frozen=True)
class ElevationWeighting:
    """Code noise model sigma(elev) = a + b * exp(-elev / c)."""

    a_m: float = 0.3
    b_m: float = 1.5
    c_deg: float = 10.0
    phase_ratio: float = 0.01

    def sigma_m(self, elev_deg: float | None) -> float:
        elev = 90.0 if elev_deg is None else max(float(elev_deg), 0.0)
        return float(self.a_m + self.b_m * np.exp(-elev / self.c_deg))


@dataclass(frozen=True)
class FilterOpts:
    """Tuning of the navigation filter."""

    max_iterations: int = 10
    convergence_tol_m: float = 1e-4
    max_condition_number: float = 1e10
    weighting: ElevationWeighting = field(default_factory=ElevationWeighting)
    accel_sigma_mps2: float = 0.5
    static_accel_sigma_mps2: float = 1e-3
    clock_bias_sigma_s: float = 5e-4
    clock_drift_sigma_sps: float = 5e-6
    ambiguity_sigma_m: float = 0.0
    initial_position_sigma_m: float = 1e6
    initial_velocity_sigma_mps: float = 5.0
    initial_drift_sigma_sps: float = 5e-5
    initial_ambiguity_sigma_m: float = 100.0
    doppler_sigma_mps: float = 0.5
    fixed_altitude_sigma_m: float = 0.01


@dataclass(frozen=True)
class ConfirmationCriteria:
    """Thresholds a solution must satisfy before release; ``None`` disables a check."""

    max_gdop: float | None = None
    max_pdop: float | None = None
    max_tdop: float | None = None
    max_residual_rms_m: float | None = None
    max_abs_residual_m: float | None = None
    max_covariance_trace_m2: float | None = None
    chi_square_alpha: float | None = None
    discard_first_solution: bool = False


@dataclass(frozen=True)
class SurveyOpts:
    """Convergence tracking for self-initialising surveys."""

    convergence_threshold_m: float = 3.0
    convergence_epochs: int = 10
    reset_on_gap_s: float | None = None


@dataclass(frozen=True)
class SolverConfig:
    """Solver configuration defaults."""

    method: Method = Method.SPP
    solution_type: SolutionType = SolutionType.FULL_PVT
    filter: FilterKind = FilterKind.LSQ
    positioning: Positioning = Positioning.STATIC
    timescale: TimeScale = TimeScale.GPST
    leap_seconds: int = LEAP_SECONDS
    apriori_ecef_m: tuple[float, float, float] | None = None
    fixed_altitude_m: float | None = None
    min_sv_elev_deg: float | None = None
    min_sv_azim_deg: float | None = None
    max_sv_azim_deg: float | None = None
    min_snr_dbhz: float | None = None
    max_sv: int | None = 10
    min_sv_sunlight_rate: float | None = None
    tropo_model: str = "niell"
    iono_alpha: tuple[float, float, float, float] = DEFAULT_ALPHA
    iono_beta: tuple[float, float, float, float] = DEFAULT_BETA
    max_tropo_bias_m: float | None = None
    max_iono_bias_m: float | None = None
    int_delay_s: dict[Carrier, float] = field(default_factory=dict)
    externalref_delay_s: float | None = None
    arp_enu_m: tuple[float, float, float] | None = None
    modeling: Modeling = field(default_factory=Modeling)
    filter_opts: FilterOpts = field(default_factory=FilterOpts)
    criteria: ConfirmationCriteria = field(default_factory=ConfirmationCriteria)
    survey: SurveyOpts = field(default_factory=SurveyOpts)

    @classmethod
    def preset(cls, method: Method, **overrides: Any) -> "SolverConfig":
        """Return a sensible starting point for a navigation method."""

        if method is Method.SPP:
            base = cls(method=method, min_sv_elev_deg=10.0, filter=FilterKind.LSQ)
        elif method is Method.CPP:
            base = cls(method=method, min_sv_elev_deg=10.0, filter=FilterKind.LSQ)
        else:
            base = cls(
                method=method,
                min_sv_elev_deg=10.0,
                filter=FilterKind.KALMAN,
                survey=SurveyOpts(convergence_threshold_m=0.5, convergence_epochs=30),
            )
        return replace(base, **overrides)

    @property
    def apriori_position(self) -> np.ndarray | None:
        if self.apriori_ecef_m is None:
            return None
        return np.array(self.apriori_ecef_m, dtype=float)

    @property
    def iono_free(self) -> bool:
        return self.method is not Method.SPP

    def validate(self) -> "SolverConfig":
        """Raise ``ConfigurationInvalid`` for unusable settings; return self otherwise."""

        if self.fixed_altitude_m is not None:
            if self.solution_type is SolutionType.TIME_ONLY:
                raise ConfigurationInvalid("fixed altitude cannot be combined with a time-only solution")
            if not math.isfinite(self.fixed_altitude_m):
                raise ConfigurationInvalid("fixed altitude must be finite")
        if self.apriori_ecef_m is not None:
            apriori = np.asarray(self.apriori_ecef_m, dtype=float)
            if apriori.shape != (3,) or not np.isfinite(apriori).all():
                raise ConfigurationInvalid("a-priori position must be three finite ECEF coordinates")
            if np.linalg.norm(apriori) < 1e6:
                raise ConfigurationInvalid("a-priori position is not near the Earth's surface")
        if self.min_sv_elev_deg is not None and not 0.0 <= self.min_sv_elev_deg < 90.0:
            raise ConfigurationInvalid(f"elevation mask {self.min_sv_elev_deg} outside [0, 90)")
        if (self.min_sv_azim_deg is None) != (self.max_sv_azim_deg is None):
            raise ConfigurationInvalid("azimuth mask needs both a minimum and a maximum")
        for value in (self.min_sv_azim_deg, self.max_sv_azim_deg):
            if value is not None and not 0.0 <= value <= 360.0:
                raise ConfigurationInvalid(f"azimuth mask bound {value} outside [0, 360]")
        if self.max_sv is not None and self.max_sv < 4:
            raise ConfigurationInvalid("max_sv must be at least 4")
        if self.min_sv_sunlight_rate is not None and not 0.0 <= self.min_sv_sunlight_rate <= 1.0:
            raise ConfigurationInvalid("min_sv_sunlight_rate must be within [0, 1]")
        if self.tropo_model not in TROPO_MODELS:
            raise ConfigurationInvalid(f"unknown troposphere model '{self.tropo_model}'")
        if self.arp_enu_m is not None and len(self.arp_enu_m) != 3:
            raise ConfigurationInvalid("antenna reference point needs east/north/up offsets")
        if self.leap_seconds < 0:
            raise ConfigurationInvalid("leap_seconds must be non-negative")

        opts = self.filter_opts
        if opts.max_iterations < 1:
            raise ConfigurationInvalid("max_iterations must be at least 1")
        if opts.convergence_tol_m <= 0.0 or opts.max_condition_number <= 1.0:
            raise ConfigurationInvalid("filter tolerances must be positive")
        if opts.weighting.c_deg <= 0.0 or opts.weighting.a_m + opts.weighting.b_m <= 0.0:
            raise ConfigurationInvalid("elevation weighting must yield a positive sigma")

        alpha = self.criteria.chi_square_alpha
        if alpha is not None and not 0.0 < alpha < 1.0:
            raise ConfigurationInvalid("chi_square_alpha must be within (0, 1)")

        survey = self.survey
        if survey.convergence_epochs < 1:
            raise ConfigurationInvalid("convergence_epochs must be at least 1")
        if survey.convergence_threshold_m <= 0.0:
            raise ConfigurationInvalid("convergence_threshold_m must be positive")
        if survey.reset_on_gap_s is not None and survey.reset_on_gap_s <= 0.0:
            raise ConfigurationInvalid("reset_on_gap_s must be positive when set")
        return self


_NESTED = {
    "modeling": Modeling,
    "filter_opts": FilterOpts,
    "criteria": ConfirmationCriteria,
    "survey": SurveyOpts,
    "weighting": ElevationWeighting,
}
_ENUMS = {
    "method": Method,
    "solution_type": SolutionType,
    "filter": FilterKind,
    "positioning": Positioning,
    "timescale": TimeScale,
}
_TUPLES = {"apriori_ecef_m", "iono_alpha", "iono_beta", "arp_enu_m"}


def config_from_mapping(data: Mapping[str, Any], base: SolverConfig | None = None) -> SolverConfig:
    """Build a validated ``SolverConfig`` from JSON-style overrides.

    Enum fields accept their string values, nested sections accept mappings and
    ``int_delay_s`` accepts carrier labels as keys. Unknown keys are rejected.
    """

    cfg = _apply_overrides(base or SolverConfig(), data, "config")
    return cfg.validate()


def _apply_overrides(target: Any, data: Mapping[str, Any], where: str) -> Any:
    fields_by_name = {item.name for item in fields(target)}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in fields_by_name:
            raise ConfigurationInvalid(f"Unknown {type(target).__name__} override '{key}' in {where}")
        if key in _NESTED and isinstance(value, Mapping):
            value = _apply_overrides(getattr(target, key), value, f"{where}.{key}")
        elif key in _ENUMS and value is not None:
            try:
                value = _ENUMS[key](value)
            except ValueError:
                raise ConfigurationInvalid(f"Invalid value '{value}' for {where}.{key}") from None
        elif key in _TUPLES and value is not None:
            value = tuple(float(item) for item in value)
        elif key == "int_delay_s":
            try:
                value = {Carrier.from_label(str(label)): float(delay) for label, delay in dict(value).items()}
            except ValueError as exc:
                raise ConfigurationInvalid(str(exc)) from None
        kwargs[key] = value
    return replace(target, **kwargs)
