"""Extended Kalman filter navigation solution with least-squares initialization."""

from __future__ import annotations

from dataclasses import replace
from typing import Sequence

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from gnss_pvt.carrier import LIGHT_SPEED_MPS
from gnss_pvt.config import FilterKind, Positioning
from gnss_pvt.errors import FilterDivergence, SingularSystem
from gnss_pvt.receiver.nav_filter import FilterUpdate, Linearize, NavFilter
from gnss_pvt.receiver.state import AMBIGUITY_PREFIX, DRIFT_KEY, VELOCITY_KEYS, FilterState, StateLayout
from gnss_pvt.receiver.wls_pvt import gauss_newton, prior_information
from gnss_pvt.utils.logging import get_logger

LOGGER = get_logger(__name__)


class KalmanFilter(NavFilter):
    """EKF over position, velocity, clock bias/drift and float ambiguities."""

    kind = FilterKind.KALMAN

    def layout(self, *, estimate_position: bool, ambiguity_sv_ids: Sequence[str] = ()) -> StateLayout:
        return StateLayout(
            estimate_position=estimate_position,
            estimate_velocity=estimate_position,
            estimate_drift=True,
            ambiguity_sv_ids=tuple(ambiguity_sv_ids),
        )

    def solve(self, linearize: Linearize, prior: FilterState, t: float) -> FilterUpdate:
        if not prior.initialized:
            return self._bootstrap(linearize, prior, t)
        x_pred, p_pred = self.predict(prior, t)
        eq = linearize(x_pred)
        r = np.diag(1.0 / eq.weights)
        s = eq.h @ p_pred @ eq.h.T + r
        try:
            factor = cho_factor(s)
        except LinAlgError as exc:
            raise SingularSystem("innovation covariance is not invertible") from exc
        # P and S are symmetric, so K = P H^T S^-1 = (S^-1 H P)^T.
        k = cho_solve(factor, eq.h @ p_pred).T
        nis = float(eq.y @ cho_solve(factor, eq.y))
        x = x_pred + k @ eq.y
        i_kh = np.eye(x.size) - k @ eq.h
        p = i_kh @ p_pred @ i_kh.T + k @ r @ k.T
        state = replace(prior, t=t, x=x, p=p, initialized=True)
        LOGGER.debug("kalman update: %d rows, NIS %.3f", eq.y.size, nis)
        return FilterUpdate(state=state, equations=linearize(x), iterations=1, nis=nis)

    def predict(self, prior: FilterState, t: float) -> tuple[np.ndarray, np.ndarray]:
        """Propagate ``prior`` to ``t`` with a constant-velocity, random-walk clock model.

        Raises ``FilterDivergence`` when ``t`` precedes the state epoch.
        """

        layout = prior.layout
        dt = float(t) - prior.t if prior.t is not None else 0.0
        if dt < 0.0:
            raise FilterDivergence(f"epoch t={float(t):.3f} precedes filter state t={prior.t:.3f}")
        n = layout.size
        f = np.eye(n)
        q = np.zeros((n, n))
        opts = self.opts

        if layout.pos is not None and layout.vel is not None:
            f[layout.pos, layout.vel] = np.eye(3) * dt
            accel = opts.static_accel_sigma_mps2 if self.cfg.positioning is Positioning.STATIC else opts.accel_sigma_mps2
            q_acc = accel**2
            pos_var = (dt**4) / 4.0 * q_acc
            pos_vel_cov = (dt**3) / 2.0 * q_acc
            vel_var = (dt**2) * q_acc
            for axis in range(3):
                p_idx = layout.pos.start + axis
                v_idx = layout.vel.start + axis
                q[p_idx, p_idx] = pos_var
                q[p_idx, v_idx] = pos_vel_cov
                q[v_idx, p_idx] = pos_vel_cov
                q[v_idx, v_idx] = vel_var
        if layout.drift is not None:
            f[layout.clock, layout.drift] = dt
            q[layout.drift, layout.drift] = (dt**2) * (LIGHT_SPEED_MPS * opts.clock_drift_sigma_sps) ** 2
        q[layout.clock, layout.clock] = (dt**2) * (LIGHT_SPEED_MPS * opts.clock_bias_sigma_s) ** 2
        for sv_id in layout.ambiguity_sv_ids:
            idx = layout.ambiguity(sv_id)
            q[idx, idx] = opts.ambiguity_sigma_m**2 * dt

        return f @ prior.x, f @ prior.p @ f.T + q

    def _bootstrap(self, linearize: Linearize, prior: FilterState, t: float) -> FilterUpdate:
        """First epoch: least squares with the velocity, drift and ambiguity priors as information."""

        layout = prior.layout
        keys = [key for key in layout.keys() if key in VELOCITY_KEYS or key == DRIFT_KEY]
        keys.extend(key for key in layout.keys() if key.startswith(AMBIGUITY_PREFIX))
        info = prior_information(prior.p, layout, keys)
        x, p, equations, iterations = gauss_newton(linearize, prior.x, info, layout, self.opts)
        LOGGER.debug("kalman filter initialized by least squares after %d iterations", iterations)
        state = replace(prior, t=t, x=x, p=p, initialized=True)
        return FilterUpdate(state=state, equations=equations, iterations=iterations)
