"""Per-epoch PVT orchestration.

``Solver.resolve`` runs one epoch through masking, atmosphere correction,
equation building, the navigation filter, DOP and validation. It never
mutates the ``SolverState`` it is given: a successful epoch returns a new
state, a failed one raises a ``PvtError`` and the caller keeps the old state.

``PvtSession`` wraps a solver and keeps the state for callers that process a
single stream of epochs.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from functools import partial
from typing import Iterable, Sequence

import numpy as np

from gnss_pvt.carrier import LIGHT_SPEED_MPS
from gnss_pvt.config import Method, SolutionType, SolverConfig
from gnss_pvt.errors import InsufficientCandidates, InvalidationCause, PvtError, ValidationRejected
from gnss_pvt.integrity.dop import compute_dop
from gnss_pvt.integrity.validator import SolutionValidator
from gnss_pvt.meas.atmosphere import AtmosphereCorrection, AtmosphereCorrector, IonoProvider, ReceiverContext, TropoProvider
from gnss_pvt.meas.combinations import iono_free_code, iono_free_phase
from gnss_pvt.meas.site_displacement import solid_tide_displacement
from gnss_pvt.models import Candidate, ConvergenceStatus, DopMetrics, PvtSolution, ResidualStats
from gnss_pvt.receiver.bancroft import bancroft_fix
from gnss_pvt.receiver.differential import BaseCorrection, BaseStation, base_corrections
from gnss_pvt.receiver.equations import EquationContext, build_equations
from gnss_pvt.receiver.gating import evaluate_candidates, min_required_sv
from gnss_pvt.receiver.nav_filter import FilterUpdate, make_filter
from gnss_pvt.receiver.state import (
    CLOCK_KEY,
    DRIFT_KEY,
    POSITION_KEYS,
    VELOCITY_KEYS,
    FilterState,
    StateLayout,
    ambiguity_key,
    relayout,
)
from gnss_pvt.receiver.wls_pvt import doppler_velocity
from gnss_pvt.runtime.state_machine import SurveyState, SurveyStateMachine
from gnss_pvt.utils.gnss_time import clock_offset_in_scale
from gnss_pvt.utils.logging import get_logger
from gnss_pvt.utils.wgs84 import ecef_delta_from_enu, ecef_to_lla, with_altitude

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class SolverState:
    """Caller-owned snapshot carried from one epoch to the next."""

    filter_state: FilterState
    survey: SurveyState
    last_solution: PvtSolution | None = None
    first_solution_discarded: bool = False

    @property
    def status(self) -> ConvergenceStatus:
        return self.survey.status


@dataclass(frozen=True)
class EpochResult:
    solution: PvtSolution
    state: SolverState


class Solver:
    """Stateless-per-call PVT solver bound to one configuration."""

    def __init__(
        self,
        cfg: SolverConfig,
        apriori: Sequence[float] | np.ndarray | None = None,
        *,
        tropo_provider: TropoProvider | None = None,
        iono_provider: IonoProvider | None = None,
        base_station: BaseStation | None = None,
    ) -> None:
        if apriori is not None:
            cfg = replace(cfg, apriori_ecef_m=tuple(float(value) for value in apriori))
        self.cfg = cfg.validate()
        self.filter = make_filter(self.cfg)
        self.atmosphere = AtmosphereCorrector(self.cfg, tropo_provider, iono_provider)
        self.validator = SolutionValidator(self.cfg.criteria)
        self.survey = SurveyStateMachine(self.cfg.survey, has_apriori=self.cfg.apriori_ecef_m is not None)
        self.base_station = base_station
        if self.cfg.min_sv_sunlight_rate is not None and self.cfg.method is Method.SPP:
            LOGGER.warning("eclipse filtering only matters for phase-based positioning; method is %s", self.cfg.method.value)

    def initial_state(self) -> SolverState:
        layout = self.filter.layout(estimate_position=True)
        filter_state = replace(FilterState.empty(layout), held_pos_ecef_m=self.cfg.apriori_position)
        return SolverState(filter_state=filter_state, survey=self.survey.initial())

    def required_sv(self, state: SolverState) -> int:
        return min_required_sv(self.cfg, state.status)

    def reject(self, state: SolverState, error: PvtError) -> SolverState:
        """State to carry forward after a failed epoch: only the survey counter is reset."""

        discarded = state.first_solution_discarded
        if isinstance(error, ValidationRejected) and error.cause is InvalidationCause.FIRST_SOLUTION:
            discarded = True
        return replace(state, survey=self.survey.on_failure(state.survey), first_solution_discarded=discarded)

    def reset(self, state: SolverState) -> SolverState:
        return replace(state, survey=self.survey.reset(state.survey))

    def resolve(self, state: SolverState, t: float, candidates: Iterable[Candidate]) -> EpochResult:
        """Solve one epoch; raises a ``PvtError`` subclass when no solution can be released."""

        try:
            return self._resolve(state, float(t), tuple(candidates))
        except PvtError as exc:
            LOGGER.info("t=%.1f no solution (%s): %s", t, exc.kind.value, exc)
            raise

    def _resolve(self, state: SolverState, t: float, candidates: tuple[Candidate, ...]) -> EpochResult:
        cfg = self.cfg
        survey = self.survey.before_epoch(state.survey, t)
        profile_active = self._profile_active(survey)
        solution_type = cfg.solution_type if profile_active else SolutionType.FULL_PVT
        time_only = solution_type is SolutionType.TIME_ONLY
        reference = self._reference(survey)

        rx_guess = reference if time_only else state.filter_state.pos_ecef_m
        gating = evaluate_candidates(candidates, cfg, survey.status, t=t, rx_pos_ecef=rx_guess)
        clock_guess = 0.0
        if rx_guess is None:
            # Masks that need the line of sight are applied once a rough fix exists.
            rx_guess, clock_guess = bancroft_fix(gating.kept, cfg.modeling.sv_clock_bias)
            gating = evaluate_candidates(candidates, cfg, survey.status, t=t, rx_pos_ecef=rx_guess)
        kept = list(gating.kept)
        rx_guess = np.array(rx_guess, dtype=float)

        differential: dict[str, BaseCorrection] | None = None
        if self.base_station is not None:
            differential = base_corrections(self.base_station, t, kept, cfg.method, cfg.modeling.earth_rotation)
            kept = [cand for cand in kept if cand.sv_id in differential]
            _require(kept, gating.required, "base station pairing")

        lat_deg, lon_deg, alt_m = ecef_to_lla(*rx_guess)
        corrections: dict[str, AtmosphereCorrection] = {}
        if differential is None:
            rx = ReceiverContext(t=t, lat_deg=lat_deg, lon_deg=lon_deg, alt_m=alt_m)
            corrections = {cand.sv_id: self.atmosphere.correct(cand, rx) for cand in kept}
            kept = self._reject_atmosphere_outliers(kept, corrections)
            _require(kept, gating.required, "atmosphere outlier rejection")

        ambiguity_ids = tuple(cand.sv_id for cand in kept) if cfg.method is Method.PPP else ()
        layout = self.filter.layout(estimate_position=not time_only, ambiguity_sv_ids=ambiguity_ids)
        held = reference if time_only else None
        defaults = self._defaults(layout, rx_guess, clock_guess, kept, differential)
        prior = replace(relayout(state.filter_state, layout, defaults), held_pos_ecef_m=held)

        ctx = EquationContext(
            t=t,
            candidates=tuple(kept),
            cfg=cfg,
            layout=layout,
            corrections=corrections,
            held_pos_ecef_m=held,
            fixed_altitude_m=self._fixed_altitude(reference, solution_type) if profile_active else None,
            site_offset_ecef_m=self._site_offset(t, rx_guess, lat_deg, lon_deg),
            differential=differential,
            min_rows=gating.required,
        )
        update = self.filter.solve(partial(build_equations, ctx), prior, t)

        pos = np.array(update.state.pos_ecef_m, dtype=float)
        if ctx.fixed_altitude_m is not None:
            pos = with_altitude(pos, ctx.fixed_altitude_m)
        sol_lat, sol_lon, _ = ecef_to_lla(*pos)
        dop = compute_dop(update.equations.geometry, sol_lat, sol_lon)
        first = state.last_solution is None and not state.first_solution_discarded
        stats = self.validator.validate(update, dop, first_solution=first, time_only=time_only)

        solution = self._solution(t, update, pos, dop, stats, solution_type, kept, state.last_solution)
        new_survey = self.survey.on_success(survey, t, update.state.position_sigma_m, pos)
        new_state = SolverState(
            filter_state=update.state,
            survey=new_survey,
            last_solution=solution,
            first_solution_discarded=state.first_solution_discarded,
        )
        LOGGER.debug(
            "t=%.1f %s/%s with %d SV, gdop %.2f, rms %.3f m, status %s",
            t,
            cfg.method.value,
            solution_type.value,
            solution.sv_count,
            dop.gdop,
            stats.rms_m,
            new_survey.status.value,
        )
        return EpochResult(solution=solution, state=new_state)

    def _reject_atmosphere_outliers(
        self,
        kept: list[Candidate],
        corrections: dict[str, AtmosphereCorrection],
    ) -> list[Candidate]:
        cfg = self.cfg
        retained: list[Candidate] = []
        for cand in kept:
            corr = corrections[cand.sv_id]
            if cfg.max_tropo_bias_m is not None and corr.tropo_delay_m > cfg.max_tropo_bias_m:
                LOGGER.debug("%s rejected: tropo %.2f m above %.2f m", cand.sv_id, corr.tropo_delay_m, cfg.max_tropo_bias_m)
                continue
            if cfg.max_iono_bias_m is not None and corr.iono_delay_l1_m > cfg.max_iono_bias_m:
                LOGGER.debug("%s rejected: iono %.2f m above %.2f m", cand.sv_id, corr.iono_delay_l1_m, cfg.max_iono_bias_m)
                continue
            retained.append(cand)
        return retained

    def _defaults(
        self,
        layout: StateLayout,
        rx_guess: np.ndarray,
        clock_guess: float,
        kept: list[Candidate],
        differential: dict[str, BaseCorrection] | None,
    ) -> dict[str, tuple[float, float]]:
        """Initial value and variance of every state entry a new epoch may introduce."""

        opts = self.cfg.filter_opts
        pos_var = opts.initial_position_sigma_m**2
        defaults = {key: (float(value), pos_var) for key, value in zip(POSITION_KEYS, rx_guess)}
        defaults.update({key: (0.0, opts.initial_velocity_sigma_mps**2) for key in VELOCITY_KEYS})
        defaults[CLOCK_KEY] = (float(clock_guess), pos_var)
        defaults[DRIFT_KEY] = (0.0, (LIGHT_SPEED_MPS * opts.initial_drift_sigma_sps) ** 2)
        amb_var = opts.initial_ambiguity_sigma_m**2
        for cand in kept:
            if cand.sv_id not in layout.ambiguity_sv_ids:
                continue
            first, second = cand.dual_phase()
            value = iono_free_phase(first, second) - iono_free_code(first, second)
            if differential is not None:
                base = differential[cand.sv_id]
                value -= (base.phase_m or 0.0) - base.code_m
            defaults[ambiguity_key(cand.sv_id)] = (value, amb_var)
        return defaults

    def _profile_active(self, survey: SurveyState) -> bool:
        """Whether the configured solution type applies; an a-priori position skips the survey."""

        return survey.status is ConvergenceStatus.CONVERGED or self.cfg.apriori_ecef_m is not None

    def _reference(self, survey: SurveyState) -> np.ndarray | None:
        if survey.reference_ecef is not None:
            return survey.reference_ecef
        return self.cfg.apriori_position

    def _fixed_altitude(self, reference: np.ndarray | None, solution_type: SolutionType) -> float | None:
        if solution_type is SolutionType.TIME_ONLY:
            return None
        if self.cfg.fixed_altitude_m is not None:
            return float(self.cfg.fixed_altitude_m)
        if solution_type is SolutionType.FIXED_ALTITUDE and reference is not None:
            return ecef_to_lla(*reference)[2]
        return None

    def _site_offset(self, t: float, rx_guess: np.ndarray, lat_deg: float, lon_deg: float) -> np.ndarray:
        cfg = self.cfg
        offset = np.zeros(3)
        if cfg.arp_enu_m is not None:
            offset += ecef_delta_from_enu(np.array(cfg.arp_enu_m, dtype=float), lat_deg, lon_deg)
        if cfg.method is Method.PPP and cfg.modeling.solid_tides:
            offset += solid_tide_displacement(t, rx_guess)
        return offset

    def _solution(
        self,
        t: float,
        update: FilterUpdate,
        pos: np.ndarray,
        dop: DopMetrics,
        stats: ResidualStats,
        solution_type: SolutionType,
        kept: list[Candidate],
        last: PvtSolution | None,
    ) -> PvtSolution:
        cfg = self.cfg
        filt = update.state
        layout = filt.layout
        clock_offset_s = clock_offset_in_scale(filt.clock_m / LIGHT_SPEED_MPS, cfg.timescale, cfg.leap_seconds)

        vel: np.ndarray | None = None
        drift_sps: float | None = None
        if layout.vel is not None:
            vel = filt.x[layout.vel].copy()
        if layout.drift is not None:
            drift_sps = float(filt.x[layout.drift]) / LIGHT_SPEED_MPS
        if vel is None and layout.pos is not None:
            doppler = doppler_velocity(kept, pos, cfg.modeling.earth_rotation)
            if doppler is not None:
                vel, drift_sps = doppler
            elif last is not None and t > last.t:
                dt = t - last.t
                vel = (pos - last.pos_ecef) / dt
                drift_sps = (clock_offset_s - last.clock_offset_s) / dt

        idx = list(range(3)) if layout.pos is not None else []
        idx.append(layout.clock)
        covariance = np.zeros((4, 4))
        target = list(range(4)) if layout.pos is not None else [3]
        covariance[np.ix_(target, target)] = filt.p[np.ix_(idx, idx)]

        eq = update.equations
        sv_ids = eq.sv_ids
        return PvtSolution(
            t=t,
            pos_ecef=pos,
            vel_ecef=vel,
            clock_offset_s=clock_offset_s,
            clock_drift_sps=drift_sps,
            timescale=cfg.timescale,
            dop=dop,
            sv_ids=sv_ids,
            sv={sv_id: eq.contributions[sv_id] for sv_id in sv_ids},
            covariance=covariance,
            residuals=stats,
            method=cfg.method.value,
            solution_type=solution_type.value,
        )


class PvtSession:
    """Keeps the ``SolverState`` for one receiver between epochs."""

    def __init__(self, solver: Solver, state: SolverState | None = None) -> None:
        self.solver = solver
        self._state = state if state is not None else solver.initial_state()

    @property
    def state(self) -> SolverState:
        return self._state

    @property
    def status(self) -> ConvergenceStatus:
        return self._state.status

    @property
    def required_sv(self) -> int:
        return self.solver.required_sv(self._state)

    def process(self, t: float, candidates: Iterable[Candidate]) -> PvtSolution:
        try:
            result = self.solver.resolve(self._state, t, candidates)
        except PvtError as exc:
            self._state = self.solver.reject(self._state, exc)
            raise
        self._state = result.state
        return result.solution

    def reset(self) -> None:
        self._state = self.solver.reset(self._state)


def _require(kept: list[Candidate], required: int, reason: str) -> None:
    if len(kept) < required:
        raise InsufficientCandidates(required, len(kept), reason=reason)
