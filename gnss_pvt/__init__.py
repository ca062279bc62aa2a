"""GNSS position-velocity-time solver package."""

from gnss_pvt.config import Method, SolutionType, SolverConfig, config_from_mapping
from gnss_pvt.errors import ErrorKind, PvtError
from gnss_pvt.runtime.solver import PvtSession, Solver, SolverState

__all__ = [
    "ErrorKind",
    "Method",
    "PvtError",
    "PvtSession",
    "SolutionType",
    "Solver",
    "SolverConfig",
    "SolverState",
    "config_from_mapping",
    "integrity",
    "meas",
    "receiver",
    "runtime",
    "sat",
    "utils",
]
