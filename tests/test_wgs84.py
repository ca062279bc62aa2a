import numpy as np

from gnss_pvt.utils.angles import azimuth_in_sector, elev_az_from_rx_sv, wrap_azimuth_deg
from gnss_pvt.utils.gnss_time import TimeScale, clock_offset_in_scale, day_of_year, gpst_to_datetime
from gnss_pvt.utils.wgs84 import (
    ecef_delta_from_enu,
    ecef_to_lla,
    enu_from_ecef_delta,
    lla_to_ecef,
    up_unit_vector,
    with_altitude,
)


def test_lla_ecef_roundtrip() -> None:
    lat_deg = 37.4275
    lon_deg = -122.1697
    alt_m = 30.0

    ecef = lla_to_ecef(lat_deg, lon_deg, alt_m)
    lat_rt, lon_rt, alt_rt = ecef_to_lla(*ecef)

    assert np.isclose(lat_rt, lat_deg, atol=1e-9)
    assert np.isclose(lon_rt, lon_deg, atol=1e-9)
    assert np.isclose(alt_rt, alt_m, atol=1e-4)


def test_elevation_overhead() -> None:
    pos_rx = lla_to_ecef(0.0, 0.0, 0.0)
    pos_sv = lla_to_ecef(0.0, 0.0, 20_200_000.0)

    elev_deg, az_deg = elev_az_from_rx_sv(pos_rx, pos_sv)

    assert elev_deg > 89.9
    assert 0.0 <= az_deg < 360.0


def test_enu_rotation_roundtrip_and_up_vector() -> None:
    lat_deg, lon_deg = 48.0, 11.0
    enu = np.array([3.0, -4.0, 12.0])
    delta = ecef_delta_from_enu(enu, lat_deg, lon_deg)
    assert np.allclose(enu_from_ecef_delta(delta, lat_deg, lon_deg), enu)

    base = lla_to_ecef(lat_deg, lon_deg, 100.0)
    raised = lla_to_ecef(lat_deg, lon_deg, 110.0)
    assert np.allclose((raised - base) / 10.0, up_unit_vector(lat_deg, lon_deg), atol=1e-9)


def test_with_altitude_keeps_horizontal_position() -> None:
    pos = lla_to_ecef(-33.9, 18.4, 250.0)
    moved = with_altitude(pos, 12.5)
    lat_deg, lon_deg, alt_m = ecef_to_lla(*moved)
    assert np.isclose(lat_deg, -33.9, atol=1e-9)
    assert np.isclose(lon_deg, 18.4, atol=1e-9)
    assert np.isclose(alt_m, 12.5, atol=1e-4)


def test_azimuth_sector_wraps_through_north() -> None:
    assert wrap_azimuth_deg(-10.0) == 350.0
    assert wrap_azimuth_deg(720.0) == 0.0
    assert azimuth_in_sector(355.0, 350.0, 10.0)
    assert azimuth_in_sector(5.0, 350.0, 10.0)
    assert not azimuth_in_sector(180.0, 350.0, 10.0)
    assert azimuth_in_sector(180.0, 90.0, 270.0)
    assert not azimuth_in_sector(0.0, 90.0, 270.0)
    assert azimuth_in_sector(359.9, 0.0, 360.0)


def test_clock_offset_in_other_time_scales() -> None:
    offset = 1e-6
    assert clock_offset_in_scale(offset, TimeScale.GPST) == offset
    assert clock_offset_in_scale(offset, TimeScale.GST) == offset
    assert np.isclose(clock_offset_in_scale(offset, TimeScale.BDT), offset + 14.0)
    assert np.isclose(clock_offset_in_scale(offset, TimeScale.UTC, leap_seconds=18), offset + 18.0)
    assert np.isclose(clock_offset_in_scale(offset, TimeScale.TAI), offset - 19.0)


def test_gps_time_calendar_helpers() -> None:
    assert gpst_to_datetime(0.0).year == 1980
    assert day_of_year(0.0) == 6
    assert day_of_year(86_400.0 * 30) == 36
