"""Iterative weighted least squares navigation filter."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Sequence

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from gnss_pvt.carrier import LIGHT_SPEED_MPS
from gnss_pvt.config import FilterKind, FilterOpts, Positioning, SolverConfig
from gnss_pvt.errors import FilterDivergence, SingularSystem
from gnss_pvt.meas.pseudorange import line_of_sight
from gnss_pvt.models import Candidate
from gnss_pvt.receiver.equations import EquationSystem
from gnss_pvt.receiver.nav_filter import FilterUpdate, Linearize, NavFilter
from gnss_pvt.receiver.state import AMBIGUITY_PREFIX, POSITION_KEYS, FilterState, StateLayout


def factorize_normal(normal: np.ndarray, max_condition_number: float) -> tuple[np.ndarray, bool]:
    """Cholesky-factorize a normal matrix after an observability check.

    The condition number is taken on the Jacobi-scaled matrix so mixed units
    do not trip the check.
    """

    diag = np.diag(normal)
    if not np.all(np.isfinite(normal)) or np.any(diag <= 0.0):
        raise SingularSystem("normal matrix has an unobservable state column")
    scale = 1.0 / np.sqrt(diag)
    cond = float(np.linalg.cond(normal * np.outer(scale, scale)))
    if not np.isfinite(cond) or cond > max_condition_number:
        raise SingularSystem(f"normal matrix condition number {cond:.3g} exceeds {max_condition_number:.3g}")
    try:
        return cho_factor(normal)
    except LinAlgError as exc:
        raise SingularSystem(f"normal matrix factorization failed: {exc}") from exc


def prior_information(p: np.ndarray, layout: StateLayout, keys: Iterable[str]) -> np.ndarray:
    """Information matrix of ``p`` restricted to ``keys``; zero elsewhere."""

    info = np.zeros((layout.size, layout.size))
    all_keys = layout.keys()
    idx = [all_keys.index(key) for key in keys if key in all_keys]
    if not idx:
        return info
    block = p[np.ix_(idx, idx)]
    try:
        factor = cho_factor(block)
    except LinAlgError as exc:
        raise SingularSystem("prior covariance is not positive definite") from exc
    info[np.ix_(idx, idx)] = cho_solve(factor, np.eye(len(idx)))
    return info


def gauss_newton(
    linearize: Linearize,
    x0: np.ndarray,
    info: np.ndarray,
    layout: StateLayout,
    opts: FilterOpts,
) -> tuple[np.ndarray, np.ndarray, EquationSystem, int]:
    """Iterate normal-equation solves from ``x0`` with prior information ``info`` around ``x0``.

    Returns (x, covariance, equations at x, iterations).
    """

    x = np.array(x0, dtype=float)
    x_prior = x.copy()
    for iteration in range(1, opts.max_iterations + 1):
        eq = linearize(x)
        weighted_h = eq.h * eq.weights[:, None]
        normal = eq.h.T @ weighted_h + info
        rhs = weighted_h.T @ eq.y + info @ (x_prior - x)
        factor = factorize_normal(normal, opts.max_condition_number)
        dx = cho_solve(factor, rhs)
        x = x + dx
        step = dx[layout.pos] if layout.pos is not None else dx[[layout.clock]]
        if float(np.linalg.norm(step)) < opts.convergence_tol_m:
            break
    else:
        raise FilterDivergence(f"least squares did not converge in {opts.max_iterations} iterations")
    covariance = cho_solve(factor, np.eye(x.size))
    return x, covariance, linearize(x), iteration


class LsqFilter(NavFilter):
    """Batch least squares with optional prior information.

    Static positioning carries position and ambiguity information from the
    previous epoch; the clock is re-estimated from scratch every epoch.
    """

    kind = FilterKind.LSQ

    def __init__(self, cfg: SolverConfig, memoryless: bool = False) -> None:
        super().__init__(cfg)
        self.memoryless = memoryless
        if memoryless:
            self.kind = FilterKind.NONE

    def layout(self, *, estimate_position: bool, ambiguity_sv_ids: Sequence[str] = ()) -> StateLayout:
        return StateLayout(estimate_position=estimate_position, ambiguity_sv_ids=tuple(ambiguity_sv_ids))

    def carried_keys(self, layout: StateLayout) -> list[str]:
        if self.memoryless:
            return []
        keys = [key for key in layout.keys() if key.startswith(AMBIGUITY_PREFIX)]
        if self.cfg.positioning is Positioning.STATIC and layout.estimate_position:
            keys.extend(POSITION_KEYS)
        return keys

    def solve(self, linearize: Linearize, prior: FilterState, t: float) -> FilterUpdate:
        if prior.initialized:
            info = prior_information(prior.p, prior.layout, self.carried_keys(prior.layout))
        else:
            info = np.zeros((prior.layout.size, prior.layout.size))
        x, p, equations, iterations = gauss_newton(linearize, prior.x, info, prior.layout, self.opts)
        state = replace(prior, t=t, x=x, p=p, initialized=True)
        return FilterUpdate(state=state, equations=equations, iterations=iterations)


def doppler_velocity(
    candidates: Sequence[Candidate],
    pos_ecef_m: np.ndarray,
    earth_rotation: bool = True,
) -> tuple[np.ndarray, float] | None:
    """Least squares velocity and clock drift [s/s] from Doppler; ``None`` if under-determined."""

    h_rows: list[list[float]] = []
    residuals: list[float] = []
    for cand in candidates:
        state = cand.sv_state
        if state is None or state.vel_ecef_mps is None:
            continue
        rates = [obs.pseudorange_rate_mps for obs in cand.code_observations() if obs.doppler_hz is not None]
        if not rates:
            continue
        _, los_unit = line_of_sight(pos_ecef_m, state.pos_ecef_m, earth_rotation)
        predicted_sv_term = float(np.dot(state.vel_ecef_mps, los_unit)) - LIGHT_SPEED_MPS * state.clock_drift_sps
        residuals.append(float(rates[0]) - predicted_sv_term)
        h_rows.append((-los_unit).tolist() + [1.0])
    if len(h_rows) < 4:
        return None
    h_matrix = np.array(h_rows, dtype=float)
    try:
        factor = cho_factor(h_matrix.T @ h_matrix)
    except LinAlgError:
        return None
    solution = cho_solve(factor, h_matrix.T @ np.array(residuals))
    return solution[:3], float(solution[3]) / LIGHT_SPEED_MPS
