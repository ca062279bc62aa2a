"""Saastamoinen zenith tropospheric delays and Niell mapping functions."""

from __future__ import annotations

import numpy as np

from gnss_pvt.models import TropoComponents

_NIELL_LATS = np.array([15.0, 30.0, 45.0, 60.0, 75.0])

_HYD_AVG = np.array(
    [
        [1.2769934e-3, 1.2683230e-3, 1.2465397e-3, 1.2196049e-3, 1.2045996e-3],
        [2.9153695e-3, 2.9152299e-3, 2.9288445e-3, 2.9022565e-3, 2.9024912e-3],
        [62.610505e-3, 62.837393e-3, 63.721774e-3, 63.824265e-3, 64.258455e-3],
    ]
)
_HYD_AMP = np.array(
    [
        [0.0, 1.2709626e-5, 2.6523662e-5, 3.4000452e-5, 4.1202191e-5],
        [0.0, 2.1414979e-5, 3.0160779e-5, 7.2562722e-5, 11.723375e-5],
        [0.0, 9.0128400e-5, 4.3497037e-5, 84.795348e-5, 170.37206e-5],
    ]
)
_WET = np.array(
    [
        [5.8021897e-4, 5.6794847e-4, 5.8118019e-4, 5.9727542e-4, 6.1641693e-4],
        [1.4275268e-3, 1.5138625e-3, 1.4572752e-3, 1.5007428e-3, 1.7599082e-3],
        [4.3472961e-2, 4.6729510e-2, 4.3908931e-2, 4.4626982e-2, 5.4736038e-2],
    ]
)
_HEIGHT_COEFFS = (2.53e-5, 5.49e-3, 1.14e-3)

MIN_ELEVATION_DEG = 0.1


def _water_vapor_pressure_hpa(temp_k: float, rel_humidity: float) -> float:
    temp_c = temp_k - 273.15
    sat_pressure = 6.11 * np.exp((17.15 * temp_c) / (234.7 + temp_c))
    return float(rel_humidity * sat_pressure)


def standard_atmosphere(alt_m: float, rel_humidity: float = 0.5) -> tuple[float, float, float]:
    """Return (pressure_hpa, temp_k, water_vapor_hpa) scaled to ``alt_m``."""

    h = float(np.clip(alt_m, 0.0, 10_000.0))
    pressure_hpa = 1013.25 * (1.0 - 2.2557e-5 * h) ** 5.2568
    temp_k = 15.0 - 6.5e-3 * h + 273.15
    return pressure_hpa, temp_k, _water_vapor_pressure_hpa(temp_k, rel_humidity)


def zenith_delays_m(
    lat_deg: float,
    alt_m: float,
    pressure_hpa: float | None = None,
    temp_k: float | None = None,
    rel_humidity: float = 0.5,
) -> tuple[float, float]:
    """Return Saastamoinen (hydrostatic, wet) zenith delays in meters."""

    std_p, std_t, _ = standard_atmosphere(alt_m, rel_humidity)
    pressure_hpa = std_p if pressure_hpa is None else max(0.0, pressure_hpa)
    temp_k = std_t if temp_k is None else max(200.0, temp_k)
    e_hpa = _water_vapor_pressure_hpa(temp_k, float(np.clip(rel_humidity, 0.0, 1.0)))
    lat_rad = np.deg2rad(lat_deg)
    hydrostatic = 0.0022768 * pressure_hpa / (
        1.0 - 0.00266 * np.cos(2.0 * lat_rad) - 0.00028 * alt_m / 1000.0
    )
    wet = 0.002277 * (1255.0 / temp_k + 0.05) * e_hpa
    return float(hydrostatic), float(wet)


def _marini(sin_el: float, a: float, b: float, c: float) -> float:
    top = 1.0 + a / (1.0 + b / (1.0 + c))
    bottom = sin_el + a / (sin_el + b / (sin_el + c))
    return top / bottom


def _interp_lat(table: np.ndarray, abs_lat: float) -> np.ndarray:
    return np.array([np.interp(abs_lat, _NIELL_LATS, row) for row in table])


def niell_mapping(elev_deg: float, lat_deg: float, alt_m: float, doy: float) -> tuple[float, float]:
    """Return Niell (hydrostatic, wet) mapping factors."""

    elev = np.deg2rad(max(elev_deg, MIN_ELEVATION_DEG))
    sin_el = float(np.sin(elev))
    abs_lat = abs(float(lat_deg))
    phase = 2.0 * np.pi * (doy - 28.0) / 365.25
    if lat_deg < 0.0:
        phase += np.pi
    a, b, c = _interp_lat(_HYD_AVG, abs_lat) - _interp_lat(_HYD_AMP, abs_lat) * np.cos(phase)
    hydro = _marini(sin_el, a, b, c)
    height_term = 1.0 / sin_el - _marini(sin_el, *_HEIGHT_COEFFS)
    hydro += height_term * max(alt_m, 0.0) / 1000.0
    wet = _marini(sin_el, *_interp_lat(_WET, abs_lat))
    return float(hydro), float(wet)


def cosecant_mapping(elev_deg: float) -> float:
    return float(1.0 / np.sin(np.deg2rad(max(elev_deg, MIN_ELEVATION_DEG))))


def saastamoinen_delay_m(
    elev_deg: float,
    lat_deg: float,
    alt_m: float,
    pressure_hpa: float | None = None,
    temp_k: float | None = None,
    rel_humidity: float = 0.5,
) -> float:
    """Return slant delay in meters using the plain cosecant mapping."""

    dry, wet = zenith_delays_m(lat_deg, alt_m, pressure_hpa, temp_k, rel_humidity)
    return float(max((dry + wet) * cosecant_mapping(elev_deg), 0.0))


class SaastamoinenTroposphere:
    """Internal troposphere model; always answers with standard-atmosphere zenith delays."""

    def __init__(self, rel_humidity: float = 0.5) -> None:
        self.rel_humidity = rel_humidity

    def __call__(self, t: float, altitude_m: float, latitude_deg: float) -> TropoComponents:
        del t
        dry, wet = zenith_delays_m(latitude_deg, altitude_m, rel_humidity=self.rel_humidity)
        return TropoComponents(zenith_dry_m=dry, zenith_wet_m=wet)
