"""Dilution of precision from the final linearization geometry."""

from __future__ import annotations

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from gnss_pvt.models import DopMetrics
from gnss_pvt.utils.wgs84 import ecef_to_enu_matrix

_INF = float("inf")
SINGULAR_DOP = DopMetrics(gdop=_INF, pdop=_INF, hdop=_INF, vdop=_INF, tdop=_INF)


def compute_dop(geometry: np.ndarray, lat_deg: float, lon_deg: float) -> DopMetrics:
    """DOP from unit-weight geometry rows ``[-u, 1]`` (or ``[1]`` for time-only).

    The position block of (G^T G)^-1 is rotated into east/north/up before
    the horizontal and vertical terms are taken. GDOP is assembled from the
    components so it is never smaller than any of them.
    """

    geometry = np.asarray(geometry, dtype=float)
    cols = geometry.shape[1] if geometry.ndim == 2 else 0
    if cols not in (1, 4) or geometry.shape[0] < cols:
        return SINGULAR_DOP
    try:
        factor = cho_factor(geometry.T @ geometry)
    except LinAlgError:
        return SINGULAR_DOP
    q = cho_solve(factor, np.eye(cols))
    if not np.all(np.isfinite(q)):
        return SINGULAR_DOP

    if cols == 1:
        tdop = float(np.sqrt(max(q[0, 0], 0.0)))
        return DopMetrics(gdop=tdop, pdop=0.0, hdop=0.0, vdop=0.0, tdop=tdop)

    rot = ecef_to_enu_matrix(lat_deg, lon_deg)
    q_enu = rot @ q[:3, :3] @ rot.T
    hdop = float(np.sqrt(max(q_enu[0, 0] + q_enu[1, 1], 0.0)))
    vdop = float(np.sqrt(max(q_enu[2, 2], 0.0)))
    tdop = float(np.sqrt(max(q[3, 3], 0.0)))
    pdop = float(np.hypot(hdop, vdop))
    gdop = float(np.hypot(pdop, tdop))
    return DopMetrics(gdop=gdop, pdop=pdop, hdop=hdop, vdop=vdop, tdop=tdop)
