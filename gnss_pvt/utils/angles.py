"""Angle utilities for receiver/satellite geometry."""

from __future__ import annotations

import numpy as np

from gnss_pvt.utils.wgs84 import ecef_to_lla, enu_from_ecef_delta


def elev_az_from_rx_sv(pos_rx: np.ndarray, pos_sv: np.ndarray) -> tuple[float, float]:
    """Compute elevation and azimuth (deg) from receiver to satellite using ENU."""

    lat_deg, lon_deg, _ = ecef_to_lla(*pos_rx)
    east, north, up = enu_from_ecef_delta(np.asarray(pos_sv) - np.asarray(pos_rx), lat_deg, lon_deg)
    elev = float(np.rad2deg(np.arctan2(up, np.hypot(east, north))))
    return elev, wrap_azimuth_deg(float(np.rad2deg(np.arctan2(east, north))))


def wrap_azimuth_deg(az_deg: float) -> float:
    wrapped = float(az_deg) % 360.0
    # -0.0 % 360 and tiny negatives can round up to exactly 360.
    return 0.0 if wrapped >= 360.0 else wrapped


def azimuth_in_sector(az_deg: float, min_deg: float, max_deg: float) -> bool:
    """Check ``az_deg`` against the clockwise sector from ``min_deg`` to ``max_deg``.

    ``min_deg > max_deg`` describes a sector crossing north, e.g. 300 -> 60.
    """

    az = wrap_azimuth_deg(az_deg)
    lo = wrap_azimuth_deg(min_deg)
    hi = float(max_deg) if max_deg >= 360.0 else wrap_azimuth_deg(max_deg)
    if lo <= hi:
        return lo <= az <= hi
    return az >= lo or az <= hi
