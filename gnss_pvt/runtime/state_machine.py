"""Survey/convergence state machine.

Transitions are pure functions over an immutable ``SurveyState`` so the
solver can commit or discard them atomically with the filter state.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np

from gnss_pvt.config import SurveyOpts
from gnss_pvt.models import ConvergenceStatus
from gnss_pvt.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class SurveyState:
    status: ConvergenceStatus
    consecutive: int = 0
    reference_ecef: np.ndarray | None = None
    last_success_t: float | None = None


class SurveyStateMachine:
    """Tracks self-initialization progress.

    ``CONVERGED`` is sticky unless ``reset_on_gap_s`` is configured or
    ``reset`` is called explicitly.
    """

    def __init__(self, opts: SurveyOpts, has_apriori: bool = False) -> None:
        self.opts = opts
        self.has_apriori = has_apriori

    def initial(self) -> SurveyState:
        status = ConvergenceStatus.CONVERGING if self.has_apriori else ConvergenceStatus.UNINITIALIZED
        return SurveyState(status=status)

    def before_epoch(self, state: SurveyState, t: float) -> SurveyState:
        """Apply the gap policy ahead of evaluating the epoch at ``t``."""

        gap_limit = self.opts.reset_on_gap_s
        if gap_limit is None or state.last_success_t is None:
            return state
        if state.status is not ConvergenceStatus.CONVERGED:
            return state
        gap = float(t) - state.last_success_t
        if gap <= gap_limit:
            return state
        LOGGER.info("data gap of %.1f s exceeds %.1f s, survey restarts converging", gap, gap_limit)
        return replace(state, status=ConvergenceStatus.CONVERGING, consecutive=0, reference_ecef=None)

    def on_success(self, state: SurveyState, t: float, position_sigma_m: float, position: np.ndarray) -> SurveyState:
        below = position_sigma_m < self.opts.convergence_threshold_m
        consecutive = state.consecutive + 1 if below else 0
        status = state.status
        reference = state.reference_ecef
        if status is ConvergenceStatus.UNINITIALIZED:
            status = ConvergenceStatus.CONVERGING
            LOGGER.info("survey initialized at t=%.1f", t)
        if status is ConvergenceStatus.CONVERGING and consecutive >= self.opts.convergence_epochs:
            status = ConvergenceStatus.CONVERGED
            reference = np.array(position, dtype=float)
            LOGGER.info(
                "survey converged at t=%.1f after %d epochs below %.3f m",
                t,
                consecutive,
                self.opts.convergence_threshold_m,
            )
        return SurveyState(status=status, consecutive=consecutive, reference_ecef=reference, last_success_t=float(t))

    def on_failure(self, state: SurveyState) -> SurveyState:
        if state.consecutive == 0:
            return state
        return replace(state, consecutive=0)

    def reset(self, state: SurveyState) -> SurveyState:
        return replace(self.initial(), last_success_t=state.last_success_t)
