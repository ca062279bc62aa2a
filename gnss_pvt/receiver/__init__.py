"""Receiver algorithms: masks, observation equations and navigation filters."""

from gnss_pvt.receiver.bancroft import bancroft_fix
from gnss_pvt.receiver.differential import BaseCorrection, BaseStation, RecordedBaseStation, base_corrections
from gnss_pvt.receiver.ekf_nav import KalmanFilter
from gnss_pvt.receiver.equations import EquationContext, EquationSystem, build_equations
from gnss_pvt.receiver.gating import GatingResult, evaluate_candidates, min_required_sv
from gnss_pvt.receiver.nav_filter import FilterUpdate, NavFilter, make_filter
from gnss_pvt.receiver.state import FilterState, StateLayout
from gnss_pvt.receiver.wls_pvt import LsqFilter, doppler_velocity

__all__ = [
    "BaseCorrection",
    "BaseStation",
    "EquationContext",
    "EquationSystem",
    "FilterState",
    "FilterUpdate",
    "GatingResult",
    "KalmanFilter",
    "LsqFilter",
    "NavFilter",
    "RecordedBaseStation",
    "StateLayout",
    "bancroft_fix",
    "base_corrections",
    "build_equations",
    "doppler_velocity",
    "evaluate_candidates",
    "make_filter",
    "min_required_sv",
]
