"""Satellite models."""

from gnss_pvt.sat.simple_gps import SimpleGpsConfig, SimpleGpsConstellation
from gnss_pvt.sat.visibility import visible_sv_states

__all__ = [
    "SimpleGpsConfig",
    "SimpleGpsConstellation",
    "visible_sv_states",
]
