"""Navigation filter interface shared by the least-squares and Kalman variants."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from gnss_pvt.config import FilterKind, SolverConfig
from gnss_pvt.receiver.equations import EquationSystem
from gnss_pvt.receiver.state import FilterState, StateLayout

Linearize = Callable[[np.ndarray], EquationSystem]


@dataclass(frozen=True)
class FilterUpdate:
    """Result of one successful filter solve.

    ``equations`` is linearized at the updated state, so its ``y`` holds the
    post-fit residuals and its ``geometry`` feeds the DOP computation.
    """

    state: FilterState
    equations: EquationSystem
    iterations: int
    nis: float | None = None

    @property
    def residuals(self) -> np.ndarray:
        return self.equations.y


class NavFilter(ABC):
    """Turns linearized observation equations into an updated ``FilterState``."""

    kind: FilterKind

    def __init__(self, cfg: SolverConfig) -> None:
        self.cfg = cfg
        self.opts = cfg.filter_opts

    @abstractmethod
    def layout(self, *, estimate_position: bool, ambiguity_sv_ids: Sequence[str] = ()) -> StateLayout:
        """State layout this filter estimates for the given epoch."""

    @abstractmethod
    def solve(self, linearize: Linearize, prior: FilterState, t: float) -> FilterUpdate:
        """Solve one epoch; ``prior`` is already mapped onto ``self.layout(...)``."""


def make_filter(cfg: SolverConfig) -> NavFilter:
    """Select the filter variant configured in ``cfg.filter``."""

    from gnss_pvt.receiver.ekf_nav import KalmanFilter
    from gnss_pvt.receiver.wls_pvt import LsqFilter

    if cfg.filter is FilterKind.KALMAN:
        return KalmanFilter(cfg)
    return LsqFilter(cfg, memoryless=cfg.filter is FilterKind.NONE)
