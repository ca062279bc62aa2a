"""Plotting utilities for survey run outputs."""

from __future__ import annotations

from pathlib import Path

import matplotlib
import numpy as np

from gnss_pvt.models import ConvergenceStatus, EpochLog

matplotlib.use("Agg", force=True)
import matplotlib.pyplot as plt  # noqa: E402

_STATUS_LEVEL = {
    ConvergenceStatus.UNINITIALIZED: 0.0,
    ConvergenceStatus.CONVERGING: 1.0,
    ConvergenceStatus.CONVERGED: 2.0,
}

PLOT_FILES = (
    "position_error.png",
    "clock_offset.png",
    "residual_rms.png",
    "dop.png",
    "satellites_used.png",
    "survey_status.png",
)


def save_survey_plots(
    epochs: list[EpochLog],
    *,
    out_dir: str | Path = "out",
    run_name: str | None = None,
) -> Path:
    """Save standard survey plots to an output directory."""

    output_dir = _prepare_output_dir(out_dir, run_name)
    times = np.array([epoch.t for epoch in epochs], dtype=float)
    _plot_position_error(times, _series(epochs, _position_error), output_dir / "position_error.png")
    _plot_clock_offset(times, _series(epochs, _clock_offset), output_dir / "clock_offset.png")
    _plot_residual_rms(times, _series(epochs, _residual_rms), output_dir / "residual_rms.png")
    dop = np.vstack([_dop_vector(epoch) for epoch in epochs]) if epochs else np.empty((0, 5))
    _plot_dop(times, dop, output_dir / "dop.png")
    _plot_sv_used(
        times,
        _series(epochs, lambda epoch: float(epoch.candidates_used)),
        _series(epochs, lambda epoch: float(epoch.required_sv)),
        output_dir / "satellites_used.png",
    )
    _plot_status(times, _series(epochs, lambda epoch: _STATUS_LEVEL[epoch.status]), output_dir / "survey_status.png")
    return output_dir


def _series(epochs: list[EpochLog], getter) -> np.ndarray:
    return np.array([getter(epoch) for epoch in epochs], dtype=float)


def _prepare_output_dir(out_dir: str | Path, run_name: str | None) -> Path:
    root = Path(out_dir)
    output_dir = root if run_name is None else root / run_name
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def _position_error(epoch: EpochLog) -> float:
    error = epoch.position_error_m
    return float("nan") if error is None else error


def _clock_offset(epoch: EpochLog) -> float:
    if epoch.solution is None:
        return float("nan")
    return float(epoch.solution.clock_offset_s)


def _residual_rms(epoch: EpochLog) -> float:
    if epoch.solution is None:
        return float("nan")
    return float(epoch.solution.residuals.rms_m)


def _dop_vector(epoch: EpochLog) -> np.ndarray:
    if epoch.solution is None:
        return np.full(5, float("nan"))
    dop = epoch.solution.dop
    return np.array([dop.gdop, dop.pdop, dop.hdop, dop.vdop, dop.tdop], dtype=float)


def _plot_position_error(times: np.ndarray, errors: np.ndarray, path: Path) -> None:
    fig, ax = plt.subplots(figsize=(9, 4))
    ax.plot(times, errors, marker="o", markersize=3)
    ax.set_title("Position Error vs Time")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Position error (m)")
    if np.any(np.isfinite(errors) & (errors > 0.0)):
        ax.set_yscale("log")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)


def _plot_clock_offset(times: np.ndarray, offsets: np.ndarray, path: Path) -> None:
    fig, ax = plt.subplots(figsize=(9, 4))
    ax.plot(times, offsets, marker="o", markersize=3, color="tab:orange")
    ax.set_title("Receiver Clock Offset vs Time")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Clock offset (s)")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)


def _plot_residual_rms(times: np.ndarray, residuals: np.ndarray, path: Path) -> None:
    fig, ax = plt.subplots(figsize=(9, 4))
    ax.plot(times, residuals, marker="o", markersize=3, color="tab:green")
    ax.set_title("Residual RMS vs Time")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Residual RMS (m)")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)


def _plot_dop(times: np.ndarray, dop: np.ndarray, path: Path) -> None:
    fig, ax = plt.subplots(figsize=(9, 4))
    labels = ["GDOP", "PDOP", "HDOP", "VDOP", "TDOP"]
    colors = ["tab:blue", "tab:orange", "tab:green", "tab:red", "tab:brown"]
    for idx, label in enumerate(labels):
        ax.plot(times, dop[:, idx], marker="o", markersize=3, label=label, color=colors[idx])
    ax.set_title("DOP vs Time")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("DOP")
    ax.grid(True, alpha=0.3)
    ax.legend(loc="best")
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)


def _plot_sv_used(times: np.ndarray, sv_used: np.ndarray, required: np.ndarray, path: Path) -> None:
    fig, ax = plt.subplots(figsize=(9, 4))
    ax.step(times, sv_used, where="post", color="tab:purple", label="Used")
    ax.step(times, required, where="post", color="tab:gray", linestyle="--", label="Required")
    ax.set_title("Satellites Used vs Time")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Satellites")
    ax.grid(True, alpha=0.3)
    ax.legend(loc="best")
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)


def _plot_status(times: np.ndarray, status: np.ndarray, path: Path) -> None:
    fig, ax = plt.subplots(figsize=(9, 4))
    ax.step(times, status, where="post", color="tab:gray")
    ax.set_title("Survey Status vs Time")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Status")
    ax.set_yticks([0.0, 1.0, 2.0])
    ax.set_yticklabels(["UNINITIALIZED", "CONVERGING", "CONVERGED"])
    ax.set_ylim(-0.5, 2.5)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)
