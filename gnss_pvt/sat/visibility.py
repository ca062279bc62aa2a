"""Satellite visibility filtering utilities."""

from __future__ import annotations

from typing import Mapping

import numpy as np

from gnss_pvt.models import SvState
from gnss_pvt.utils.angles import elev_az_from_rx_sv


def visible_sv_states(
    receiver_ecef_m: np.ndarray,
    sv_states: Mapping[str, SvState],
    elevation_mask_deg: float = 10.0,
) -> dict[str, tuple[SvState, float, float]]:
    """Return ``{sv_id: (state, elev_deg, az_deg)}`` above the mask, highest first."""

    visible: list[tuple[str, SvState, float, float]] = []
    for sv_id, state in sv_states.items():
        elev_deg, az_deg = elev_az_from_rx_sv(receiver_ecef_m, state.pos_ecef_m)
        if elev_deg >= elevation_mask_deg:
            visible.append((sv_id, state, elev_deg, az_deg))
    visible.sort(key=lambda item: -item[2])
    return {sv_id: (state, elev, az) for sv_id, state, elev, az in visible}
