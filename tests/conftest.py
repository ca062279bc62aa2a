from __future__ import annotations

"""Pytest configuration.

This file is imported during *collection*, so it's the right place to set
process-wide environment variables needed for stable imports.
"""

import os
import tempfile

# Force a non-interactive backend in test environments.
os.environ.setdefault("MPLBACKEND", "Agg")

# Isolate matplotlib cache to avoid flaky font-cache locking (stale locks in
# ~/.cache/matplotlib can break collection).
os.environ.setdefault("MPLCONFIGDIR", tempfile.mkdtemp(prefix="mplconfig-"))

import numpy as np  # noqa: E402
import pytest  # noqa: E402

from gnss_pvt.meas.synthetic import SyntheticCandidateSource  # noqa: E402
from gnss_pvt.sat.simple_gps import SimpleGpsConfig, SimpleGpsConstellation  # noqa: E402
from gnss_pvt.utils.wgs84 import lla_to_ecef  # noqa: E402

RX_CLOCK_BIAS_S = 4.2e-6


@pytest.fixture
def receiver_pos() -> np.ndarray:
    return lla_to_ecef(37.4275, -122.1697, 30.0)


@pytest.fixture
def constellation() -> SimpleGpsConstellation:
    return SimpleGpsConstellation(SimpleGpsConfig(seed=3))


@pytest.fixture
def make_source(constellation: SimpleGpsConstellation, receiver_pos: np.ndarray):
    """Factory for zero-noise synthetic sources; keyword arguments override defaults."""

    def _make(**overrides) -> SyntheticCandidateSource:
        kwargs = {
            "constellation": constellation,
            "receiver_pos_ecef_m": receiver_pos,
            "receiver_clock_bias_s": RX_CLOCK_BIAS_S,
            "rng": np.random.default_rng(7),
        }
        kwargs.update(overrides)
        return SyntheticCandidateSource(**kwargs)

    return _make
