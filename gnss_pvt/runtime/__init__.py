"""Per-epoch orchestration and survey state tracking."""

from gnss_pvt.runtime.solver import EpochResult, PvtSession, Solver, SolverState
from gnss_pvt.runtime.state_machine import SurveyState, SurveyStateMachine

__all__ = [
    "EpochResult",
    "PvtSession",
    "Solver",
    "SolverState",
    "SurveyState",
    "SurveyStateMachine",
]
