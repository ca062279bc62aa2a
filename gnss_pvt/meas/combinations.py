"""Dual-frequency observable combinations."""

from __future__ import annotations

import numpy as np

from gnss_pvt.models import Observation


def iono_free(value_1: float, freq_1_hz: float, value_2: float, freq_2_hz: float) -> float:
    """Remove first-order ionosphere from two ranges on different frequencies."""

    gamma = (freq_1_hz / freq_2_hz) ** 2
    return float((gamma * value_1 - value_2) / (gamma - 1.0))


def iono_free_noise_factor(freq_1_hz: float, freq_2_hz: float) -> float:
    """Noise amplification of the ionosphere-free combination for equal input noise."""

    gamma = (freq_1_hz / freq_2_hz) ** 2
    return float(np.sqrt(gamma**2 + 1.0) / abs(gamma - 1.0))


def iono_free_code(first: Observation, second: Observation) -> float:
    return iono_free(
        float(first.pseudorange_m),
        first.carrier.frequency_hz,
        float(second.pseudorange_m),
        second.carrier.frequency_hz,
    )


def iono_free_phase(first: Observation, second: Observation) -> float:
    return iono_free(
        float(first.phase_range_m),
        first.carrier.frequency_hz,
        float(second.phase_range_m),
        second.carrier.frequency_hz,
    )
