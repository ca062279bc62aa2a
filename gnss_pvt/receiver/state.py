"""Navigation filter state vector layout and persistent state."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Mapping

import numpy as np

POSITION_KEYS = ("px", "py", "pz")
VELOCITY_KEYS = ("vx", "vy", "vz")
CLOCK_KEY = "clock"
DRIFT_KEY = "drift"
AMBIGUITY_PREFIX = "amb:"


def ambiguity_key(sv_id: str) -> str:
    return f"{AMBIGUITY_PREFIX}{sv_id}"


@dataclass(frozen=True)
class StateLayout:
    """Column layout of the state vector.

    Order is position, velocity, clock bias [m], clock drift [m/s], then one
    float ambiguity [m] per phase-tracked vehicle.
    """

    estimate_position: bool = True
    estimate_velocity: bool = False
    estimate_drift: bool = False
    ambiguity_sv_ids: tuple[str, ...] = ()

    def keys(self) -> tuple[str, ...]:
        keys: list[str] = []
        if self.estimate_position:
            keys.extend(POSITION_KEYS)
        if self.estimate_velocity:
            keys.extend(VELOCITY_KEYS)
        keys.append(CLOCK_KEY)
        if self.estimate_drift:
            keys.append(DRIFT_KEY)
        keys.extend(ambiguity_key(sv_id) for sv_id in self.ambiguity_sv_ids)
        return tuple(keys)

    @property
    def size(self) -> int:
        return len(self.keys())

    @property
    def pos(self) -> slice | None:
        return slice(0, 3) if self.estimate_position else None

    @property
    def vel(self) -> slice | None:
        if not self.estimate_velocity:
            return None
        start = 3 if self.estimate_position else 0
        return slice(start, start + 3)

    @property
    def clock(self) -> int:
        return (3 if self.estimate_position else 0) + (3 if self.estimate_velocity else 0)

    @property
    def drift(self) -> int | None:
        return self.clock + 1 if self.estimate_drift else None

    def ambiguity(self, sv_id: str) -> int:
        return self.clock + (2 if self.estimate_drift else 1) + self.ambiguity_sv_ids.index(sv_id)

    def index(self, key: str) -> int:
        return self.keys().index(key)


@dataclass(frozen=True)
class FilterState:
    """Persistent belief of the navigation filter.

    ``held_pos_ecef_m`` is the receiver position used when the layout does
    not estimate position (time-only solutions).
    """

    t: float | None
    x: np.ndarray
    p: np.ndarray
    layout: StateLayout
    initialized: bool = False
    held_pos_ecef_m: np.ndarray | None = None

    @classmethod
    def empty(cls, layout: StateLayout | None = None) -> "FilterState":
        layout = layout or StateLayout()
        return cls(t=None, x=np.zeros(layout.size), p=np.eye(layout.size) * 1e12, layout=layout)

    @property
    def pos_ecef_m(self) -> np.ndarray | None:
        if self.layout.pos is not None and self.initialized:
            return self.x[self.layout.pos]
        return self.held_pos_ecef_m

    @property
    def clock_m(self) -> float:
        return float(self.x[self.layout.clock])

    @property
    def position_sigma_m(self) -> float:
        """sqrt(trace) of the position covariance block; 0 when position is held."""

        if self.layout.pos is None:
            return 0.0
        return float(np.sqrt(max(np.trace(self.p[self.layout.pos, self.layout.pos]), 0.0)))

    def value(self, key: str) -> float:
        return float(self.x[self.layout.index(key)])


def relayout(
    state: FilterState,
    layout: StateLayout,
    defaults: Mapping[str, tuple[float, float]],
) -> FilterState:
    """Map ``state`` onto ``layout``.

    Entries present in both layouts keep their values and covariances. New
    entries take ``defaults[key] = (value, variance)`` with no correlation.
    Entries absent from ``layout`` are dropped.
    """

    if state.initialized and layout == state.layout:
        return state
    old_keys = state.layout.keys()
    new_keys = layout.keys()
    x = np.zeros(len(new_keys))
    p = np.zeros((len(new_keys), len(new_keys)))
    carried_new: list[int] = []
    carried_old: list[int] = []
    for idx, key in enumerate(new_keys):
        if state.initialized and key in old_keys:
            old_idx = old_keys.index(key)
            x[idx] = state.x[old_idx]
            carried_new.append(idx)
            carried_old.append(old_idx)
        else:
            value, variance = defaults.get(key, (0.0, 1e12))
            x[idx] = value
            p[idx, idx] = variance
    if carried_new:
        p[np.ix_(carried_new, carried_new)] = state.p[np.ix_(carried_old, carried_old)]
    return replace(state, x=x, p=p, layout=layout)
