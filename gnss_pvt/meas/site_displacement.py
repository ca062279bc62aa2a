"""Solid Earth tide displacement of the receiver site.

IERS Conventions step-1 (degree 2 and 3 in-phase plus the out-of-phase
radial terms) driven by low-precision Sun and Moon positions. Amplitudes are
a few decimeters, so the correction only matters for phase-based positioning.
"""

from __future__ import annotations

import numpy as np

from gnss_pvt.utils.astro import moon_position_ecef, sun_position_ecef
from gnss_pvt.utils.wgs84 import ecef_to_lla, up_unit_vector

EARTH_RADIUS_IERS_M = 6_378_136.6
GM_RATIO_SUN = 332_946.0482
GM_RATIO_MOON = 0.0123000371
H3 = 0.292
L3 = 0.015


def _body_displacement(
    body_ecef_m: np.ndarray,
    gm_ratio: float,
    up: np.ndarray,
    lat_rad: float,
    lon_rad: float,
) -> np.ndarray:
    dist = float(np.linalg.norm(body_ecef_m))
    unit = body_ecef_m / dist
    k2 = gm_ratio * EARTH_RADIUS_IERS_M**4 / dist**3
    k3 = k2 * EARTH_RADIUS_IERS_M / dist
    body_lat = float(np.arcsin(body_ecef_m[2] / dist))
    body_lon = float(np.arctan2(body_ecef_m[1], body_ecef_m[0]))

    legendre = (3.0 * np.sin(lat_rad) ** 2 - 1.0) / 2.0
    h2 = 0.6078 - 0.0006 * legendre
    l2 = 0.0847 + 0.0002 * legendre
    cos_a = float(np.dot(unit, up))

    transverse = 3.0 * l2 * cos_a * k2
    radial = k2 * (h2 * (1.5 * cos_a**2 - 0.5) - 3.0 * l2 * cos_a**2)
    transverse += k3 * L3 * (7.5 * cos_a**2 - 1.5)
    radial += k3 * (H3 * (2.5 * cos_a**3 - 1.5 * cos_a) - L3 * (7.5 * cos_a**2 - 1.5) * cos_a)
    radial += 0.75 * 0.0025 * k2 * np.sin(2.0 * body_lat) * np.sin(2.0 * lat_rad) * np.sin(lon_rad - body_lon)
    radial += (
        0.75 * 0.0022 * k2 * np.cos(body_lat) ** 2 * np.cos(lat_rad) ** 2 * np.sin(2.0 * (lon_rad - body_lon))
    )
    return transverse * unit + radial * up


def solid_tide_displacement(t_s: float, rx_ecef_m: np.ndarray) -> np.ndarray:
    """Return the ECEF displacement of the site (meters) due to solid Earth tides."""

    lat_deg, lon_deg, _ = ecef_to_lla(*rx_ecef_m)
    up = up_unit_vector(lat_deg, lon_deg)
    lat_rad, lon_rad = np.deg2rad(lat_deg), np.deg2rad(lon_deg)
    return _body_displacement(sun_position_ecef(t_s), GM_RATIO_SUN, up, lat_rad, lon_rad) + _body_displacement(
        moon_position_ecef(t_s), GM_RATIO_MOON, up, lat_rad, lon_rad
    )
