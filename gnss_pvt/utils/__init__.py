"""Geometry, time and logging helpers.

NOTE: Keep this package lightweight.
Avoid importing heavy/optional dependencies (matplotlib, scipy) at import time.
"""

from gnss_pvt.utils.angles import azimuth_in_sector, elev_az_from_rx_sv, wrap_azimuth_deg
from gnss_pvt.utils.gnss_time import TimeScale, clock_offset_in_scale, day_of_year, gpst_to_datetime
from gnss_pvt.utils.logging import get_logger
from gnss_pvt.utils.wgs84 import (
    ecef_to_enu_matrix,
    ecef_to_lla,
    enu_from_ecef_delta,
    lla_to_ecef,
    up_unit_vector,
    with_altitude,
)

__all__ = [
    "TimeScale",
    "azimuth_in_sector",
    "clock_offset_in_scale",
    "day_of_year",
    "ecef_to_enu_matrix",
    "ecef_to_lla",
    "elev_az_from_rx_sv",
    "enu_from_ecef_delta",
    "get_logger",
    "gpst_to_datetime",
    "lla_to_ecef",
    "up_unit_vector",
    "with_altitude",
    "wrap_azimuth_deg",
]
