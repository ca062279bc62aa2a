"""Range geometry: Sagnac rotation, line of sight and pseudorange."""

from __future__ import annotations

import numpy as np

from gnss_pvt.carrier import LIGHT_SPEED_MPS
from gnss_pvt.utils.wgs84 import ELLIPSOID


def sagnac_rotate(sv_ecef_m: np.ndarray, flight_time_s: float) -> np.ndarray:
    """Rotate a transmit-time ECEF position into the ECEF frame at reception."""

    theta = ELLIPSOID.omega_e * flight_time_s
    cos_t, sin_t = np.cos(theta), np.sin(theta)
    rot = np.array([[cos_t, sin_t, 0.0], [-sin_t, cos_t, 0.0], [0.0, 0.0, 1.0]])
    return rot @ sv_ecef_m


def line_of_sight(
    receiver_ecef_m: np.ndarray,
    sv_ecef_m: np.ndarray,
    earth_rotation: bool = True,
) -> tuple[float, np.ndarray]:
    """Return (range_m, unit vector receiver->satellite)."""

    sv = np.asarray(sv_ecef_m, dtype=float)
    los = sv - receiver_ecef_m
    rho = float(np.linalg.norm(los))
    if earth_rotation:
        for _ in range(2):
            los = sagnac_rotate(sv, rho / LIGHT_SPEED_MPS) - receiver_ecef_m
            rho = float(np.linalg.norm(los))
    return rho, los / rho


def geometric_range_m(receiver_ecef_m: np.ndarray, sv_ecef_m: np.ndarray, earth_rotation: bool = True) -> float:
    """Compute geometric range between receiver and satellite."""

    return line_of_sight(receiver_ecef_m, sv_ecef_m, earth_rotation)[0]


def pseudorange_m(
    receiver_ecef_m: np.ndarray,
    receiver_clock_bias_s: float,
    sv_ecef_m: np.ndarray,
    sv_clock_bias_s: float,
    earth_rotation: bool = True,
) -> float:
    """Compute pseudorange including receiver and satellite clock biases."""

    range_m = geometric_range_m(receiver_ecef_m, sv_ecef_m, earth_rotation)
    return range_m + LIGHT_SPEED_MPS * (receiver_clock_bias_s - sv_clock_bias_s)
