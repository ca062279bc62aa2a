"""Measurement models: atmosphere, combinations and range geometry.

Only leaf modules are re-exported here; ``gnss_pvt.config`` imports the
Klobuchar defaults and must not pull in the corrector.
"""

from gnss_pvt.meas.combinations import iono_free, iono_free_code, iono_free_noise_factor, iono_free_phase
from gnss_pvt.meas.iono_klobuchar import KlobucharIonosphere, klobuchar_delay_m
from gnss_pvt.meas.tropo_saastamoinen import SaastamoinenTroposphere, niell_mapping, saastamoinen_delay_m

__all__ = [
    "KlobucharIonosphere",
    "SaastamoinenTroposphere",
    "iono_free",
    "iono_free_code",
    "iono_free_noise_factor",
    "iono_free_phase",
    "klobuchar_delay_m",
    "niell_mapping",
    "saastamoinen_delay_m",
]
