"""Error types raised by the PVT pipeline.

Every per-epoch failure is a ``PvtError`` subclass carrying an ``ErrorKind``
tag so callers can log or count failures without matching on class names.
Per-epoch errors never mutate the caller's solver state.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    INSUFFICIENT_CANDIDATES = "insufficient_candidates"
    MISSING_STRATEGY_DATA = "missing_strategy_data"
    DEGENERATE_GEOMETRY = "degenerate_geometry"
    FILTER_DIVERGENCE = "filter_divergence"
    SINGULAR_SYSTEM = "singular_system"
    VALIDATION_REJECTED = "validation_rejected"
    CONFIGURATION_INVALID = "configuration_invalid"


class PvtError(Exception):
    """Base class for all solver failures."""

    kind: ErrorKind = ErrorKind.FILTER_DIVERGENCE


class InsufficientCandidates(PvtError):
    """Fewer usable vehicles than the active requirement profile needs."""

    kind = ErrorKind.INSUFFICIENT_CANDIDATES

    def __init__(self, required: int, available: int, reason: str = "masks") -> None:
        self.required = int(required)
        self.available = int(available)
        self.reason = reason
        super().__init__(f"{available} usable candidates after {reason}, {required} required")


class MissingStrategyData(InsufficientCandidates):
    """The navigation method needs observables that too many candidates lack."""

    kind = ErrorKind.MISSING_STRATEGY_DATA

    def __init__(self, required: int, available: int, method: str) -> None:
        self.method = method
        super().__init__(required, available, reason=f"{method} data requirements")


class DegenerateGeometry(PvtError):
    """Too few independent equation rows to observe the state."""

    kind = ErrorKind.DEGENERATE_GEOMETRY


class FilterDivergence(PvtError):
    """Iterative solve did not converge."""

    kind = ErrorKind.FILTER_DIVERGENCE


class SingularSystem(FilterDivergence):
    """Normal equations or innovation covariance could not be factorized."""

    kind = ErrorKind.SINGULAR_SYSTEM


class InvalidationCause(Enum):
    FIRST_SOLUTION = "first_solution"
    GDOP = "gdop"
    PDOP = "pdop"
    TDOP = "tdop"
    RESIDUAL_RMS = "residual_rms"
    MAX_RESIDUAL = "max_residual"
    COVARIANCE_TRACE = "covariance_trace"
    CHI_SQUARE = "chi_square"


class ValidationRejected(PvtError):
    """A solution was computed but failed the confirmation criteria."""

    kind = ErrorKind.VALIDATION_REJECTED

    def __init__(self, cause: InvalidationCause, value: float | None = None, limit: float | None = None) -> None:
        self.cause = cause
        self.value = value
        self.limit = limit
        if value is None or limit is None:
            message = f"solution rejected: {cause.value}"
        else:
            message = f"solution rejected: {cause.value}={value:.4g} exceeds {limit:.4g}"
        super().__init__(message)


class ConfigurationInvalid(PvtError, ValueError):
    """Raised at construction time for inconsistent configuration."""

    kind = ErrorKind.CONFIGURATION_INVALID
