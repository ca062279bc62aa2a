"""Closed-form Bancroft position fix used for self-initialization."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from gnss_pvt.carrier import LIGHT_SPEED_MPS
from gnss_pvt.errors import DegenerateGeometry
from gnss_pvt.models import Candidate
from gnss_pvt.utils.wgs84 import ELLIPSOID

_LORENTZ = np.diag([1.0, 1.0, 1.0, -1.0])


def _lorentz(a: np.ndarray, b: np.ndarray) -> float:
    return float(a @ _LORENTZ @ b)


def bancroft_fix(candidates: Sequence[Candidate], sv_clock: bool = True) -> tuple[np.ndarray, float]:
    """Return (position ECEF [m], receiver clock bias [m]) from pseudoranges.

    Uses the preferred pseudorange of each candidate; four or more vehicles are
    combined in a least-squares sense. Earth rotation and atmosphere are
    ignored, so the result is a linearization point rather than a solution.
    """

    rows: list[list[float]] = []
    for cand in candidates:
        obs = cand.preferred_code()
        if obs is None or cand.sv_state is None:
            continue
        pr = float(obs.pseudorange_m)
        if sv_clock:
            pr += LIGHT_SPEED_MPS * cand.sv_state.clock_bias_s
        rows.append([*np.asarray(cand.sv_state.pos_ecef_m, dtype=float), pr])
    if len(rows) < 4:
        raise DegenerateGeometry(f"Bancroft needs 4 pseudoranges, got {len(rows)}")

    b = np.array(rows, dtype=float)
    alpha = 0.5 * np.array([_lorentz(row, row) for row in b])
    ones = np.ones(len(rows))
    b_pinv_e, *_ = np.linalg.lstsq(b, ones, rcond=None)
    b_pinv_a, *_ = np.linalg.lstsq(b, alpha, rcond=None)
    u = _LORENTZ @ b_pinv_e
    v = _LORENTZ @ b_pinv_a

    a2 = _lorentz(u, u)
    a1 = 2.0 * (_lorentz(u, v) - 1.0)
    a0 = _lorentz(v, v)
    disc = a1 * a1 - 4.0 * a2 * a0
    if disc < 0.0 or abs(a2) < 1e-30:
        raise DegenerateGeometry("Bancroft quadratic has no real solution")

    roots = [(-a1 + sign * np.sqrt(disc)) / (2.0 * a2) for sign in (1.0, -1.0)]
    solutions = [lam * u + v for lam in roots]
    best = min(solutions, key=lambda y: abs(np.linalg.norm(y[:3]) - ELLIPSOID.a))
    return best[:3].copy(), float(best[3])
