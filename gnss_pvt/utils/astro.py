"""Low-precision Sun/Moon ephemerides and Earth-shadow geometry.

Analytical series after Montenbruck & Gill, *Satellite Orbits* (3.3.2),
good to roughly 0.1 deg in direction, which is ample for tide and eclipse
modelling.
"""

from __future__ import annotations

import numpy as np

from gnss_pvt.utils.gnss_time import JD_J2000, LEAP_SECONDS, julian_date

AU_M = 149_597_870_700.0
SUN_RADIUS_M = 696_000_000.0
EARTH_RADIUS_M = 6_378_137.0
OBLIQUITY_RAD = np.deg2rad(23.43929111)
_ARCSEC = np.pi / (180.0 * 3600.0)


def _centuries_since_j2000(t_s: float) -> float:
    return (julian_date(t_s) - JD_J2000) / 36_525.0


def gmst_rad(t_s: float, leap_seconds: int = LEAP_SECONDS) -> float:
    """Greenwich mean sidereal angle for a GPST timestamp (UT1 taken as UTC)."""

    days = julian_date(float(t_s) - leap_seconds) - JD_J2000
    return float(np.deg2rad((280.46061837 + 360.98564736629 * days) % 360.0))


def eci_to_ecef(vec_eci: np.ndarray, t_s: float) -> np.ndarray:
    theta = gmst_rad(t_s)
    cos_t, sin_t = np.cos(theta), np.sin(theta)
    rot = np.array([[cos_t, sin_t, 0.0], [-sin_t, cos_t, 0.0], [0.0, 0.0, 1.0]])
    return rot @ vec_eci


def _ecliptic_to_equatorial(vec: np.ndarray) -> np.ndarray:
    cos_e, sin_e = np.cos(OBLIQUITY_RAD), np.sin(OBLIQUITY_RAD)
    x, y, z = vec
    return np.array([x, y * cos_e - z * sin_e, y * sin_e + z * cos_e], dtype=float)


def sun_position_ecef(t_s: float) -> np.ndarray:
    """Sun position in ECEF meters."""

    t = _centuries_since_j2000(t_s)
    mean_anom = np.deg2rad(357.5256 + 35_999.049 * t)
    lon = np.deg2rad(282.9400) + mean_anom + (6892.0 * np.sin(mean_anom) + 72.0 * np.sin(2.0 * mean_anom)) * _ARCSEC
    dist = (149.619 - 2.499 * np.cos(mean_anom) - 0.021 * np.cos(2.0 * mean_anom)) * 1e9
    ecl = dist * np.array([np.cos(lon), np.sin(lon), 0.0])
    return eci_to_ecef(_ecliptic_to_equatorial(ecl), t_s)


def moon_position_ecef(t_s: float) -> np.ndarray:
    """Moon position in ECEF meters."""

    t = _centuries_since_j2000(t_s)
    l0 = np.deg2rad(218.31617 + 481_267.88088 * t - 1.3972 * t)
    l = np.deg2rad(134.96292 + 477_198.86753 * t)
    lp = np.deg2rad(357.52543 + 35_999.04944 * t)
    f = np.deg2rad(93.27283 + 483_202.01873 * t)
    d = np.deg2rad(297.85027 + 445_267.11135 * t)

    lon = l0 + _ARCSEC * (
        22_640.0 * np.sin(l)
        + 769.0 * np.sin(2.0 * l)
        - 4_586.0 * np.sin(l - 2.0 * d)
        + 2_370.0 * np.sin(2.0 * d)
        - 668.0 * np.sin(lp)
        - 412.0 * np.sin(2.0 * f)
        - 212.0 * np.sin(2.0 * l - 2.0 * d)
        - 206.0 * np.sin(l + lp - 2.0 * d)
        + 192.0 * np.sin(l + 2.0 * d)
        - 165.0 * np.sin(lp - 2.0 * d)
        + 148.0 * np.sin(l - lp)
        - 125.0 * np.sin(d)
        - 110.0 * np.sin(l + lp)
        - 55.0 * np.sin(2.0 * f - 2.0 * d)
    )
    lat = _ARCSEC * (
        18_520.0 * np.sin(f + lon - l0 + _ARCSEC * (412.0 * np.sin(2.0 * f) + 541.0 * np.sin(lp)))
        - 526.0 * np.sin(f - 2.0 * d)
        + 44.0 * np.sin(l + f - 2.0 * d)
        - 31.0 * np.sin(-l + f - 2.0 * d)
        - 25.0 * np.sin(-2.0 * l + f)
        - 23.0 * np.sin(lp + f - 2.0 * d)
        + 21.0 * np.sin(-l + f)
        + 11.0 * np.sin(-lp + f - 2.0 * d)
    )
    dist = 1e3 * (
        385_000.0
        - 20_905.0 * np.cos(l)
        - 3_699.0 * np.cos(2.0 * d - l)
        - 2_956.0 * np.cos(2.0 * d)
        - 570.0 * np.cos(2.0 * l)
        + 246.0 * np.cos(2.0 * l - 2.0 * d)
        - 205.0 * np.cos(lp - 2.0 * d)
        - 171.0 * np.cos(l + 2.0 * d)
        - 152.0 * np.cos(l + lp - 2.0 * d)
    )
    ecl = dist * np.array([np.cos(lat) * np.cos(lon), np.cos(lat) * np.sin(lon), np.sin(lat)])
    return eci_to_ecef(_ecliptic_to_equatorial(ecl), t_s)


def sunlight_fraction(sv_pos_m: np.ndarray, sun_pos_m: np.ndarray) -> float:
    """Visible fraction of the solar disk seen from a satellite (conical Earth shadow)."""

    sv = np.asarray(sv_pos_m, dtype=float)
    to_sun = np.asarray(sun_pos_m, dtype=float) - sv
    sv_dist = float(np.linalg.norm(sv))
    sun_dist = float(np.linalg.norm(to_sun))
    if sv_dist <= EARTH_RADIUS_M:
        return 0.0
    a = np.arcsin(min(1.0, SUN_RADIUS_M / sun_dist))
    b = np.arcsin(min(1.0, EARTH_RADIUS_M / sv_dist))
    cos_c = float(np.dot(-sv, to_sun) / (sv_dist * sun_dist))
    c = np.arccos(np.clip(cos_c, -1.0, 1.0))
    if c >= a + b:
        return 1.0
    if c <= b - a:
        return 0.0
    if c <= a - b:
        return float(1.0 - (b * b) / (a * a))
    x = (c * c + a * a - b * b) / (2.0 * c)
    y = np.sqrt(max(a * a - x * x, 0.0))
    area = a * a * np.arccos(np.clip(x / a, -1.0, 1.0)) + b * b * np.arccos(np.clip((c - x) / b, -1.0, 1.0)) - c * y
    return float(np.clip(1.0 - area / (np.pi * a * a), 0.0, 1.0))
