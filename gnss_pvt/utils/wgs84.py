"""WGS-84 ellipsoid and frame conversions."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class WGS84:
    """WGS-84 ellipsoid constants."""

    a: float = 6_378_137.0
    f: float = 1.0 / 298.257223563
    gm: float = 3.986004418e14
    omega_e: float = 7.2921151467e-5

    @property
    def b(self) -> float:
        return self.a * (1.0 - self.f)

    @property
    def e2(self) -> float:
        return self.f * (2.0 - self.f)

    def prime_vertical_radius(self, sin_lat: float) -> float:
        return self.a / np.sqrt(1.0 - self.e2 * sin_lat**2)


ELLIPSOID = WGS84()


def lla_to_ecef(lat_deg: float, lon_deg: float, alt_m: float) -> np.ndarray:
    """Convert geodetic latitude/longitude/height to ECEF meters."""

    lat = np.deg2rad(lat_deg)
    lon = np.deg2rad(lon_deg)
    n = ELLIPSOID.prime_vertical_radius(np.sin(lat))
    horizontal = (n + alt_m) * np.cos(lat)
    return np.array(
        [
            horizontal * np.cos(lon),
            horizontal * np.sin(lon),
            (n * (1.0 - ELLIPSOID.e2) + alt_m) * np.sin(lat),
        ],
        dtype=float,
    )


def ecef_to_lla(x_m: float, y_m: float, z_m: float) -> tuple[float, float, float]:
    """Convert ECEF to geodetic (lat_deg, lon_deg, alt_m).

    Fixed-point iteration on the geodetic latitude; converges to well below a
    millimeter in a handful of passes for terrestrial and orbital radii.
    """

    p = float(np.hypot(x_m, y_m))
    lon = float(np.arctan2(y_m, x_m))
    if p < 1e-9:
        lat = np.pi / 2.0 if z_m >= 0.0 else -np.pi / 2.0
        return float(np.rad2deg(lat)), float(np.rad2deg(lon)), abs(float(z_m)) - ELLIPSOID.b

    lat = float(np.arctan2(z_m, p * (1.0 - ELLIPSOID.e2)))
    alt = 0.0
    for _ in range(10):
        sin_lat = np.sin(lat)
        n = ELLIPSOID.prime_vertical_radius(sin_lat)
        alt = p / np.cos(lat) - n
        lat_next = float(np.arctan2(z_m, p * (1.0 - ELLIPSOID.e2 * n / (n + alt))))
        if abs(lat_next - lat) < 1e-14:
            lat = lat_next
            break
        lat = lat_next
    n = ELLIPSOID.prime_vertical_radius(np.sin(lat))
    alt = p / np.cos(lat) - n
    return float(np.rad2deg(lat)), float(np.rad2deg(lon)), float(alt)


def ecef_to_enu_matrix(lat_deg: float, lon_deg: float) -> np.ndarray:
    """Rotation taking ECEF vectors into the local east/north/up frame."""

    lat = np.deg2rad(lat_deg)
    lon = np.deg2rad(lon_deg)
    sin_lat, cos_lat = np.sin(lat), np.cos(lat)
    sin_lon, cos_lon = np.sin(lon), np.cos(lon)
    return np.array(
        [
            [-sin_lon, cos_lon, 0.0],
            [-sin_lat * cos_lon, -sin_lat * sin_lon, cos_lat],
            [cos_lat * cos_lon, cos_lat * sin_lon, sin_lat],
        ],
        dtype=float,
    )


def enu_from_ecef_delta(delta_ecef_m: np.ndarray, lat_deg: float, lon_deg: float) -> np.ndarray:
    return ecef_to_enu_matrix(lat_deg, lon_deg) @ np.asarray(delta_ecef_m, dtype=float)


def ecef_delta_from_enu(enu_m: np.ndarray, lat_deg: float, lon_deg: float) -> np.ndarray:
    return ecef_to_enu_matrix(lat_deg, lon_deg).T @ np.asarray(enu_m, dtype=float)


def up_unit_vector(lat_deg: float, lon_deg: float) -> np.ndarray:
    """Ellipsoid normal at the given point, i.e. d(height)/d(ECEF position)."""

    return ecef_to_enu_matrix(lat_deg, lon_deg)[2].copy()


def with_altitude(pos_ecef_m: np.ndarray, alt_m: float) -> np.ndarray:
    """Move a point along its ellipsoid normal onto the given height."""

    lat_deg, lon_deg, _ = ecef_to_lla(*pos_ecef_m)
    return lla_to_ecef(lat_deg, lon_deg, alt_m)
