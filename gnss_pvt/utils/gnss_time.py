"""GPS time helpers and fixed time-scale offsets.

Epoch timestamps throughout the package are GPST seconds since the GPS epoch
(1980-01-06 00:00:00).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

GPS_EPOCH = datetime(1980, 1, 6, tzinfo=timezone.utc)
LEAP_SECONDS = 18
SECONDS_PER_DAY = 86_400.0
SECONDS_PER_WEEK = 604_800.0
JD_GPS_EPOCH = 2_444_244.5
JD_J2000 = 2_451_545.0


class TimeScale(Enum):
    GPST = "GPST"
    GST = "GST"
    BDT = "BDT"
    UTC = "UTC"
    TAI = "TAI"


def gpst_minus_scale_s(scale: TimeScale, leap_seconds: int = LEAP_SECONDS) -> float:
    """Return (GPST - scale) in seconds."""

    if scale is TimeScale.GPST or scale is TimeScale.GST:
        return 0.0
    if scale is TimeScale.BDT:
        return 14.0
    if scale is TimeScale.TAI:
        return -19.0
    return float(leap_seconds)


def clock_offset_in_scale(offset_gpst_s: float, scale: TimeScale, leap_seconds: int = LEAP_SECONDS) -> float:
    """Express a receiver clock offset relative to GPST as an offset relative to ``scale``."""

    return float(offset_gpst_s) + gpst_minus_scale_s(scale, leap_seconds)


def gpst_to_datetime(t_s: float) -> datetime:
    return GPS_EPOCH + timedelta(seconds=float(t_s))


def gpst_to_utc_datetime(t_s: float, leap_seconds: int = LEAP_SECONDS) -> datetime:
    return gpst_to_datetime(float(t_s) - leap_seconds)


def day_of_year(t_s: float) -> int:
    return gpst_to_datetime(t_s).timetuple().tm_yday


def seconds_of_day(t_s: float) -> float:
    return float(t_s) % SECONDS_PER_DAY


def seconds_of_week(t_s: float) -> float:
    return float(t_s) % SECONDS_PER_WEEK


def julian_date(t_s: float) -> float:
    """Julian date of a GPST timestamp (no leap-second adjustment)."""

    return JD_GPS_EPOCH + float(t_s) / SECONDS_PER_DAY


def gpst_from_datetime(when: datetime) -> float:
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return (when - GPS_EPOCH).total_seconds()
