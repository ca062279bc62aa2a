"""Klobuchar ionospheric delay model."""

from __future__ import annotations

import numpy as np

from gnss_pvt.carrier import LIGHT_SPEED_MPS, L1_FREQUENCY_HZ, iono_scale
from gnss_pvt.models import IonoComponents

DEFAULT_ALPHA = (2.5e-8, 1.5e-8, -1.2e-7, 0.0)
DEFAULT_BETA = (90_000.0, 0.0, -110_000.0, 0.0)


def klobuchar_delay_m(
    t_s: float,
    lat_deg: float,
    lon_deg: float,
    elev_deg: float,
    az_deg: float,
    alpha: tuple[float, float, float, float] | None = None,
    beta: tuple[float, float, float, float] | None = None,
    frequency_hz: float = L1_FREQUENCY_HZ,
) -> float:
    """Return ionospheric group delay in meters on ``frequency_hz``."""

    alpha = DEFAULT_ALPHA if alpha is None else alpha
    beta = DEFAULT_BETA if beta is None else beta

    lat_sc = np.deg2rad(lat_deg) / np.pi
    lon_sc = np.deg2rad(lon_deg) / np.pi
    elev_sc = max(np.deg2rad(elev_deg) / np.pi, 1e-3)
    az = np.deg2rad(az_deg)

    psi = 0.0137 / (elev_sc + 0.11) - 0.022
    phi_i = float(np.clip(lat_sc + psi * np.cos(az), -0.416, 0.416))
    lam_i = lon_sc + psi * np.sin(az) / np.cos(phi_i * np.pi)
    phi_m = phi_i + 0.064 * np.cos((lam_i - 1.617) * np.pi)

    t_local = np.mod(43_200.0 * lam_i + t_s, 86_400.0)

    amp = max(0.0, sum(coef * phi_m**idx for idx, coef in enumerate(alpha)))
    per = max(72_000.0, sum(coef * phi_m**idx for idx, coef in enumerate(beta)))

    x = 2.0 * np.pi * (t_local - 50_400.0) / per
    delay_s = 5e-9
    if abs(x) < 1.57:
        delay_s += amp * (1.0 - x**2 / 2.0 + x**4 / 24.0)

    slant_factor = obliquity_factor(elev_deg)
    delay_m = LIGHT_SPEED_MPS * slant_factor * delay_s * iono_scale(frequency_hz)
    return float(max(delay_m, 0.0))


def obliquity_factor(elev_deg: float) -> float:
    """Klobuchar slant factor F = 1 + 16 (0.53 - E)^3 with E in semicircles."""

    elev_sc = max(np.deg2rad(elev_deg) / np.pi, 1e-3)
    return float(1.0 + 16.0 * (0.53 - elev_sc) ** 3)


class KlobucharIonosphere:
    """Internal ionosphere model carrying broadcast coefficients."""

    def __init__(
        self,
        alpha: tuple[float, float, float, float] = DEFAULT_ALPHA,
        beta: tuple[float, float, float, float] = DEFAULT_BETA,
    ) -> None:
        self.alpha = tuple(alpha)
        self.beta = tuple(beta)

    def __call__(self, t: float, altitude_m: float, latitude_deg: float) -> IonoComponents:
        del t, altitude_m, latitude_deg
        return IonoComponents(klobuchar_alpha=self.alpha, klobuchar_beta=self.beta)
