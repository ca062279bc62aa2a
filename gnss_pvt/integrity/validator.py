"""Confirmation criteria applied before a solution is released."""

from __future__ import annotations

import numpy as np
from scipy.stats import chi2

from gnss_pvt.config import ConfirmationCriteria
from gnss_pvt.errors import InvalidationCause, ValidationRejected
from gnss_pvt.models import DopMetrics, ResidualStats
from gnss_pvt.receiver.equations import ALTITUDE, CODE
from gnss_pvt.receiver.nav_filter import FilterUpdate


def chi2_threshold(dof: int, p: float) -> float:
    """Return chi-square threshold for the given probability and dof."""

    if dof <= 0:
        return float("inf")
    return float(chi2.ppf(p, dof))


def residual_stats(update: FilterUpdate) -> ResidualStats:
    """Code residual summary plus the weighted chi-square over all measurement rows."""

    eq = update.equations
    code = eq.y[eq.rows(CODE)]
    measured = np.array([kind != ALTITUDE for kind in eq.row_kinds], dtype=bool)
    chi_square = float(np.sum(eq.weights[measured] * eq.y[measured] ** 2))
    dof = int(np.count_nonzero(measured)) - eq.h.shape[1]
    if code.size == 0:
        nan = float("nan")
        return ResidualStats(rms_m=nan, mean_m=nan, max_m=nan, chi_square=chi_square, dof=dof)
    return ResidualStats(
        rms_m=float(np.sqrt(np.mean(np.square(code)))),
        mean_m=float(np.mean(code)),
        max_m=float(np.max(np.abs(code))),
        chi_square=chi_square,
        dof=dof,
    )


def covariance_trace_m2(update: FilterUpdate) -> float:
    """Trace of the position/clock block of the updated covariance."""

    state = update.state
    layout = state.layout
    idx = list(range(3)) if layout.pos is not None else []
    idx.append(layout.clock)
    return float(np.trace(state.p[np.ix_(idx, idx)]))


class SolutionValidator:
    """Checks a filter update against ``ConfirmationCriteria``.

    Every check is optional; ``validate`` raises ``ValidationRejected`` with
    the first failing cause and returns the residual summary otherwise.
    """

    def __init__(self, criteria: ConfirmationCriteria) -> None:
        self.criteria = criteria

    def validate(
        self,
        update: FilterUpdate,
        dop: DopMetrics,
        *,
        first_solution: bool = False,
        time_only: bool = False,
    ) -> ResidualStats:
        crit = self.criteria
        if crit.discard_first_solution and first_solution:
            raise ValidationRejected(InvalidationCause.FIRST_SOLUTION)

        _check(InvalidationCause.GDOP, dop.gdop, crit.max_gdop)
        if not time_only:
            _check(InvalidationCause.PDOP, dop.pdop, crit.max_pdop)
        _check(InvalidationCause.TDOP, dop.tdop, crit.max_tdop)

        stats = residual_stats(update)
        _check(InvalidationCause.RESIDUAL_RMS, stats.rms_m, crit.max_residual_rms_m)
        _check(InvalidationCause.MAX_RESIDUAL, stats.max_m, crit.max_abs_residual_m)
        _check(InvalidationCause.COVARIANCE_TRACE, covariance_trace_m2(update), crit.max_covariance_trace_m2)
        if crit.chi_square_alpha is not None and stats.dof > 0:
            threshold = chi2_threshold(stats.dof, 1.0 - crit.chi_square_alpha)
            _check(InvalidationCause.CHI_SQUARE, stats.chi_square, threshold)
        return stats


def _check(cause: InvalidationCause, value: float, limit: float | None) -> None:
    if limit is None:
        return
    if not np.isfinite(value) or value > limit:
        raise ValidationRejected(cause, value, limit)
