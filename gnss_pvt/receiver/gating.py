"""Candidate masks and observability requirements."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np

from gnss_pvt.config import Method, SolutionType, SolverConfig
from gnss_pvt.errors import InsufficientCandidates, MissingStrategyData
from gnss_pvt.models import Candidate, ConvergenceStatus
from gnss_pvt.utils.angles import azimuth_in_sector, elev_az_from_rx_sv
from gnss_pvt.utils.astro import sun_position_ecef, sunlight_fraction
from gnss_pvt.utils.logging import get_logger

LOGGER = get_logger(__name__)

FULL_PVT_MIN_SV = 4
_BASE_MIN_SV = {
    SolutionType.FULL_PVT: FULL_PVT_MIN_SV,
    SolutionType.FIXED_ALTITUDE: 3,
    SolutionType.TIME_ONLY: 1,
}


@dataclass(frozen=True)
class Rejection:
    sv_id: str
    reasons: tuple[str, ...]


@dataclass(frozen=True)
class GatingResult:
    """Candidates retained for this epoch and why the others were dropped."""

    kept: tuple[Candidate, ...]
    rejected: tuple[Rejection, ...]
    required: int

    @property
    def sv_ids(self) -> tuple[str, ...]:
        return tuple(cand.sv_id for cand in self.kept)


def min_required_sv(cfg: SolverConfig, status: ConvergenceStatus) -> int:
    """Minimum number of vehicles for the active requirement profile.

    Without an a-priori position the full-PVT minimum applies until the survey
    has converged, whatever the configured solution type.
    """

    if status is not ConvergenceStatus.CONVERGED and cfg.apriori_ecef_m is None:
        return FULL_PVT_MIN_SV
    required = _BASE_MIN_SV[cfg.solution_type]
    if cfg.fixed_altitude_m is not None and cfg.solution_type is not SolutionType.TIME_ONLY:
        required -= 1
    return max(required, 1)


def has_strategy_data(candidate: Candidate, method: Method) -> bool:
    if method is Method.SPP:
        return candidate.preferred_code() is not None
    if method is Method.CPP:
        return candidate.dual_code() is not None
    return candidate.dual_phase() is not None


def evaluate_candidates(
    candidates: Iterable[Candidate],
    cfg: SolverConfig,
    status: ConvergenceStatus,
    *,
    t: float,
    rx_pos_ecef: np.ndarray | None = None,
) -> GatingResult:
    """Apply masks and strategy requirements to one epoch of candidates.

    Raises ``InsufficientCandidates`` when the masks leave too few vehicles and
    ``MissingStrategyData`` when the strategy requirements do.
    """

    required = min_required_sv(cfg, status)
    sun_ecef = sun_position_ecef(t) if cfg.min_sv_sunlight_rate is not None else None
    rejected: list[Rejection] = []

    masked: list[Candidate] = []
    for cand in candidates:
        reasons: list[str] = []
        if cand.sv_state is None:
            rejected.append(Rejection(cand.sv_id, ("no satellite state",)))
            continue
        if rx_pos_ecef is not None and (cand.elevation_deg is None or cand.azimuth_deg is None):
            cand = cand.with_attitude(*elev_az_from_rx_sv(rx_pos_ecef, cand.sv_state.pos_ecef_m))
        if (
            cfg.min_sv_elev_deg is not None
            and cand.elevation_deg is not None
            and cand.elevation_deg < cfg.min_sv_elev_deg
        ):
            reasons.append("elevation")
        if (
            cfg.min_sv_azim_deg is not None
            and cfg.max_sv_azim_deg is not None
            and cand.azimuth_deg is not None
            and not azimuth_in_sector(cand.azimuth_deg, cfg.min_sv_azim_deg, cfg.max_sv_azim_deg)
        ):
            reasons.append("azimuth")
        if sun_ecef is not None:
            rate = sunlight_fraction(cand.sv_state.pos_ecef_m, sun_ecef)
            if rate < cfg.min_sv_sunlight_rate:
                reasons.append("eclipse")
        if cfg.min_snr_dbhz is not None and not reasons:
            strong = cand.with_min_snr(cfg.min_snr_dbhz)
            if strong is None:
                reasons.append("snr")
            else:
                cand = strong
        if reasons:
            rejected.append(Rejection(cand.sv_id, tuple(reasons)))
        else:
            masked.append(cand)

    if len(masked) < required:
        _log_rejections(rejected)
        raise InsufficientCandidates(required, len(masked), reason="masks")

    usable: list[Candidate] = []
    for cand in masked:
        if has_strategy_data(cand, cfg.method):
            usable.append(cand)
        else:
            rejected.append(Rejection(cand.sv_id, (f"missing {cfg.method.value} observables",)))

    if len(usable) < required:
        _log_rejections(rejected)
        raise MissingStrategyData(required, len(usable), cfg.method.value)

    if cfg.max_sv is not None and len(usable) > cfg.max_sv:
        usable.sort(key=lambda cand: -(cand.elevation_deg if cand.elevation_deg is not None else 90.0))
        for cand in usable[cfg.max_sv :]:
            rejected.append(Rejection(cand.sv_id, ("max_sv",)))
        usable = usable[: cfg.max_sv]

    _log_rejections(rejected)
    return GatingResult(kept=tuple(usable), rejected=tuple(rejected), required=required)


def _log_rejections(rejected: list[Rejection]) -> None:
    for item in rejected:
        LOGGER.debug("%s rejected: %s", item.sv_id, ", ".join(item.reasons))
