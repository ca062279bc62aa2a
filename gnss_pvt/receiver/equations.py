"""Linearized observation equations for the navigation filter.

Each navigation method has its own row routine, selected from
``_ROW_BUILDERS``. Rows are linearized at the state vector handed to
``build_equations`` so the filters can relinearize while iterating.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping

import numpy as np

from gnss_pvt.carrier import LIGHT_SPEED_MPS, Carrier, iono_scale
from gnss_pvt.config import Method, SolverConfig
from gnss_pvt.errors import DegenerateGeometry
from gnss_pvt.meas.atmosphere import NO_CORRECTION, AtmosphereCorrection
from gnss_pvt.meas.combinations import iono_free, iono_free_code, iono_free_noise_factor, iono_free_phase
from gnss_pvt.meas.pseudorange import line_of_sight
from gnss_pvt.models import Candidate, SvContribution, SvState
from gnss_pvt.receiver.differential import BaseCorrection
from gnss_pvt.receiver.state import StateLayout
from gnss_pvt.utils.wgs84 import ELLIPSOID, ecef_to_lla, up_unit_vector

CODE = "code"
PHASE = "phase"
DOPPLER = "doppler"
ALTITUDE = "altitude"


@dataclass(frozen=True)
class EquationContext:
    """Everything fixed for one epoch; only the linearization point varies."""

    t: float
    candidates: tuple[Candidate, ...]
    cfg: SolverConfig
    layout: StateLayout
    corrections: Mapping[str, AtmosphereCorrection] = field(default_factory=dict)
    held_pos_ecef_m: np.ndarray | None = None
    fixed_altitude_m: float | None = None
    site_offset_ecef_m: np.ndarray = field(default_factory=lambda: np.zeros(3))
    differential: Mapping[str, BaseCorrection] | None = None
    min_rows: int = 4

    @property
    def sub_decimeter(self) -> bool:
        return self.cfg.method is Method.PPP


@dataclass(frozen=True)
class EquationSystem:
    """Design matrix, prefit residuals and row bookkeeping."""

    h: np.ndarray
    y: np.ndarray
    weights: np.ndarray
    row_sv_ids: tuple[str, ...]
    row_kinds: tuple[str, ...]
    geometry: np.ndarray
    contributions: Mapping[str, SvContribution]

    @property
    def sv_ids(self) -> tuple[str, ...]:
        return tuple(sv for sv, kind in zip(self.row_sv_ids, self.row_kinds) if kind == CODE)

    def rows(self, kind: str) -> np.ndarray:
        return np.array([idx for idx, row_kind in enumerate(self.row_kinds) if row_kind == kind], dtype=int)

    def code_residuals(self) -> dict[str, float]:
        return {self.row_sv_ids[idx]: float(self.y[idx]) for idx in self.rows(CODE)}


@dataclass(frozen=True)
class _Row:
    kind: str
    unit: np.ndarray
    prefit_m: float
    sigma_m: float


@dataclass(frozen=True)
class _Geometry:
    """Receiver-to-vehicle terms shared by all rows of one vehicle."""

    rho_m: float
    unit: np.ndarray
    common_m: float  # modeled range minus geometric range, strategy independent
    tropo_m: float
    correction: AtmosphereCorrection
    base: BaseCorrection | None


def sv_clock_m(state: SvState, cfg: SolverConfig) -> float:
    """Satellite clock correction in meters, including the eccentricity term when asked for."""

    modeling = cfg.modeling
    if not modeling.sv_clock_bias:
        return 0.0
    bias_s = state.clock_bias_s
    if modeling.relativistic_clock_bias and state.needs_relativistic_correction and state.vel_ecef_mps is not None:
        bias_s += -2.0 * float(np.dot(state.pos_ecef_m, state.vel_ecef_mps)) / LIGHT_SPEED_MPS**2
    return LIGHT_SPEED_MPS * bias_s


def shapiro_delay_m(rx_ecef_m: np.ndarray, sv_ecef_m: np.ndarray) -> float:
    """Relativistic path range (Shapiro) delay."""

    r_rx = float(np.linalg.norm(rx_ecef_m))
    r_sv = float(np.linalg.norm(sv_ecef_m))
    rho = float(np.linalg.norm(np.asarray(sv_ecef_m) - rx_ecef_m))
    return 2.0 * ELLIPSOID.gm / LIGHT_SPEED_MPS**2 * float(np.log((r_sv + r_rx + rho) / (r_sv + r_rx - rho)))


def _internal_delay_m(cfg: SolverConfig, carriers: tuple[Carrier, ...]) -> float:
    if not cfg.int_delay_s:
        return 0.0
    delays = [LIGHT_SPEED_MPS * cfg.int_delay_s.get(carrier, 0.0) for carrier in carriers]
    if len(delays) == 1:
        return delays[0]
    return iono_free(delays[0], carriers[0].frequency_hz, delays[1], carriers[1].frequency_hz)


def _geometry(ctx: EquationContext, cand: Candidate, antenna: np.ndarray, clock_m: float) -> _Geometry:
    cfg = ctx.cfg
    state = cand.sv_state
    rho, unit = line_of_sight(antenna, state.pos_ecef_m, cfg.modeling.earth_rotation)
    base = ctx.differential.get(cand.sv_id) if ctx.differential is not None else None
    correction = ctx.corrections.get(cand.sv_id, NO_CORRECTION)

    common = clock_m
    if cfg.externalref_delay_s is not None:
        common += LIGHT_SPEED_MPS * cfg.externalref_delay_s
    if ctx.sub_decimeter and cfg.modeling.relativistic_path_range:
        common += shapiro_delay_m(antenna, state.pos_ecef_m)
    tropo = 0.0
    if base is None:
        common -= sv_clock_m(state, cfg)
        tropo = correction.tropo_delay_m
        common += tropo
    return _Geometry(rho_m=rho, unit=unit, common_m=common, tropo_m=tropo, correction=correction, base=base)


def _code_sigma(ctx: EquationContext, cand: Candidate) -> float:
    return ctx.cfg.filter_opts.weighting.sigma_m(cand.elevation_deg)


def _spp_rows(ctx: EquationContext, cand: Candidate, geo: _Geometry) -> tuple[list[_Row], float]:
    obs = cand.preferred_code()
    cfg = ctx.cfg
    model = geo.rho_m + geo.common_m + _internal_delay_m(cfg, (obs.carrier,))
    iono = 0.0
    if geo.base is not None:
        model += geo.base.code_m
    else:
        scale = iono_scale(obs.carrier.frequency_hz)
        iono = geo.correction.iono_delay_l1_m * scale
        model += iono
        tgd = cand.sv_state.group_delay_s
        if cfg.modeling.sv_total_group_delay and tgd is not None:
            model += LIGHT_SPEED_MPS * tgd * scale
    row = _Row(CODE, geo.unit, float(obs.pseudorange_m) - model, _code_sigma(ctx, cand))
    return [row], iono


def _cpp_rows(ctx: EquationContext, cand: Candidate, geo: _Geometry) -> tuple[list[_Row], float]:
    first, second = cand.dual_code()
    model = geo.rho_m + geo.common_m + _internal_delay_m(ctx.cfg, (first.carrier, second.carrier))
    if geo.base is not None:
        model += geo.base.code_m
    noise = iono_free_noise_factor(first.carrier.frequency_hz, second.carrier.frequency_hz)
    row = _Row(CODE, geo.unit, iono_free_code(first, second) - model, _code_sigma(ctx, cand) * noise)
    return [row], 0.0


def _ppp_rows(ctx: EquationContext, cand: Candidate, geo: _Geometry) -> tuple[list[_Row], float]:
    first, second = cand.dual_phase()
    noise = iono_free_noise_factor(first.carrier.frequency_hz, second.carrier.frequency_hz)
    code_sigma = _code_sigma(ctx, cand) * noise
    code_model = geo.rho_m + geo.common_m + _internal_delay_m(ctx.cfg, (first.carrier, second.carrier))
    phase_model = geo.rho_m + geo.common_m
    if geo.base is not None:
        code_model += geo.base.code_m
        phase_model += geo.base.phase_m or 0.0
    phase_sigma = code_sigma * ctx.cfg.filter_opts.weighting.phase_ratio
    rows = [
        _Row(CODE, geo.unit, iono_free_code(first, second) - code_model, code_sigma),
        _Row(PHASE, geo.unit, iono_free_phase(first, second) - phase_model, phase_sigma),
    ]
    return rows, 0.0


_ROW_BUILDERS: dict[Method, Callable[[EquationContext, Candidate, _Geometry], tuple[list[_Row], float]]] = {
    Method.SPP: _spp_rows,
    Method.CPP: _cpp_rows,
    Method.PPP: _ppp_rows,
}


def _doppler_row(ctx: EquationContext, cand: Candidate, geo: _Geometry, vel: np.ndarray, drift_m: float) -> _Row | None:
    state = cand.sv_state
    if state.vel_ecef_mps is None:
        return None
    rates = [obs.pseudorange_rate_mps for obs in cand.code_observations() if obs.doppler_hz is not None]
    if not rates:
        return None
    predicted = float(np.dot(state.vel_ecef_mps - vel, geo.unit)) + drift_m
    if ctx.cfg.modeling.sv_clock_bias:
        predicted -= LIGHT_SPEED_MPS * state.clock_drift_sps
    return _Row(DOPPLER, geo.unit, float(rates[0]) - predicted, ctx.cfg.filter_opts.doppler_sigma_mps)


def receiver_position(ctx: EquationContext, x: np.ndarray) -> np.ndarray:
    layout = ctx.layout
    if layout.pos is not None:
        return x[layout.pos]
    if ctx.held_pos_ecef_m is None:
        raise DegenerateGeometry("time-only solution without a held receiver position")
    return ctx.held_pos_ecef_m


def build_equations(ctx: EquationContext, x: np.ndarray) -> EquationSystem:
    """Linearize every candidate's rows at state ``x``.

    Raises ``DegenerateGeometry`` when fewer than ``ctx.min_rows`` vehicles
    contribute or the geometry rank cannot observe the state.
    """

    layout = ctx.layout
    pos = receiver_position(ctx, x)
    antenna = pos + ctx.site_offset_ecef_m
    clock_m = float(x[layout.clock])
    vel = x[layout.vel] if layout.vel is not None else np.zeros(3)
    drift_m = float(x[layout.drift]) if layout.drift is not None else 0.0
    builder = _ROW_BUILDERS[ctx.cfg.method]

    rows: list[tuple[str, _Row]] = []
    contributions: dict[str, SvContribution] = {}
    for cand in ctx.candidates:
        if cand.sv_state is None:
            continue
        geo = _geometry(ctx, cand, antenna, clock_m)
        sv_rows, iono_m = builder(ctx, cand, geo)
        if layout.drift is not None:
            doppler = _doppler_row(ctx, cand, geo, vel, drift_m)
            if doppler is not None:
                sv_rows.append(doppler)
        rows.extend((cand.sv_id, row) for row in sv_rows)
        contributions[cand.sv_id] = SvContribution(
            elevation_deg=cand.elevation_deg,
            azimuth_deg=cand.azimuth_deg,
            tropo_delay_m=geo.tropo_m,
            iono_delay_m=iono_m,
            residual_m=sv_rows[0].prefit_m,
        )

    n_vehicles = len(contributions)
    if n_vehicles < ctx.min_rows:
        raise DegenerateGeometry(f"{n_vehicles} vehicle rows, {ctx.min_rows} required")

    altitude_row = ctx.fixed_altitude_m is not None and layout.pos is not None
    n_rows = len(rows) + (1 if altitude_row else 0)
    h = np.zeros((n_rows, layout.size))
    y = np.zeros(n_rows)
    weights = np.zeros(n_rows)
    geometry_rows: list[np.ndarray] = []
    row_sv_ids: list[str] = []
    row_kinds: list[str] = []
    for idx, (sv_id, row) in enumerate(rows):
        if row.kind == DOPPLER:
            if layout.vel is not None:
                h[idx, layout.vel] = -row.unit
            h[idx, layout.drift] = 1.0
        else:
            if layout.pos is not None:
                h[idx, layout.pos] = -row.unit
            h[idx, layout.clock] = 1.0
        if row.kind == PHASE:
            h[idx, layout.ambiguity(sv_id)] = 1.0
            y[idx] = row.prefit_m - float(x[layout.ambiguity(sv_id)])
        else:
            y[idx] = row.prefit_m
        weights[idx] = 1.0 / max(row.sigma_m, 1e-4) ** 2
        row_sv_ids.append(sv_id)
        row_kinds.append(row.kind)
        if row.kind == CODE:
            geometry_rows.append(np.append(-row.unit, 1.0) if layout.pos is not None else np.ones(1))

    if altitude_row:
        lat_deg, lon_deg, alt_m = ecef_to_lla(*pos)
        up = up_unit_vector(lat_deg, lon_deg)
        h[-1, layout.pos] = up
        y[-1] = ctx.fixed_altitude_m - alt_m
        weights[-1] = 1.0 / ctx.cfg.filter_opts.fixed_altitude_sigma_m**2
        row_sv_ids.append("")
        row_kinds.append(ALTITUDE)
        geometry_rows.append(np.append(up, 0.0))

    geometry = np.vstack(geometry_rows)
    needed_rank = min(ctx.min_rows, geometry.shape[1])
    if np.linalg.matrix_rank(geometry) < needed_rank:
        raise DegenerateGeometry(f"geometry rank below {needed_rank}")

    return EquationSystem(
        h=h,
        y=y,
        weights=weights,
        row_sv_ids=tuple(row_sv_ids),
        row_kinds=tuple(row_kinds),
        geometry=geometry,
        contributions=contributions,
    )
