"""CSV/NPZ writers for per-epoch solver logs."""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path

import numpy as np

from gnss_pvt.models import EpochLog

EPOCH_CSV_COLUMNS = [
    "t",
    "status",
    "required_sv",
    "candidates_in",
    "sats_used",
    "method",
    "solution_type",
    "gdop",
    "pdop",
    "hdop",
    "vdop",
    "tdop",
    "residual_rms_m",
    "residual_mean_m",
    "residual_max_m",
    "chi_square",
    "pos_ecef_x",
    "pos_ecef_y",
    "pos_ecef_z",
    "lat_deg",
    "lon_deg",
    "alt_m",
    "vel_ecef_x",
    "vel_ecef_y",
    "vel_ecef_z",
    "clk_offset_s",
    "clk_drift_sps",
    "timescale",
    "pos_sigma_m",
    "pos_error_m",
    "error_kind",
    "error_message",
]
_CSV_HEADER = ",".join(EPOCH_CSV_COLUMNS) + "\n"


def append_epoch_csv(path: str | Path, epoch: EpochLog) -> None:
    """Append a single epoch summary to a CSV file."""

    target = Path(path)
    line = _epoch_to_csv_line(epoch)
    if not target.exists():
        target.write_text(_CSV_HEADER)
    with target.open("a", encoding="utf-8") as handle:
        handle.write(line)


def save_epochs_csv(path: str | Path, epochs: list[EpochLog]) -> None:
    """Save all epoch summaries to a CSV file."""

    target = Path(path)
    target.write_text(_CSV_HEADER)
    with target.open("a", encoding="utf-8") as handle:
        for epoch in epochs:
            handle.write(_epoch_to_csv_line(epoch))


def save_epochs_npz(path: str | Path, epochs: list[EpochLog]) -> None:
    """Save epoch logs to a compressed NPZ file."""

    payload = [asdict(epoch) for epoch in epochs]
    np.savez_compressed(path, epochs=np.array(payload, dtype=object))


def load_epochs_npz(path: str | Path) -> list[dict]:
    """Load epoch logs from a compressed NPZ file."""

    data = np.load(path, allow_pickle=True)
    return list(data["epochs"].tolist())


def _epoch_to_csv_line(epoch: EpochLog) -> str:
    solution = epoch.solution
    dop = solution.dop if solution is not None else None
    residuals = solution.residuals if solution is not None else None
    pos = _vector(solution.pos_ecef if solution is not None else None)
    vel = _vector(solution.vel_ecef if solution is not None else None)
    lla = solution.lat_lon_alt() if solution is not None else (None, None, None)
    pos_sigma = None
    if solution is not None:
        pos_sigma = float(np.sqrt(max(np.trace(solution.covariance[:3, :3]), 0.0)))

    row = [
        epoch.t,
        epoch.status.value,
        _format_value(epoch.required_sv),
        _format_value(epoch.candidates_in),
        _format_value(epoch.candidates_used),
        solution.method if solution is not None else "",
        solution.solution_type if solution is not None else "",
        _format_value(dop.gdop if dop else None),
        _format_value(dop.pdop if dop else None),
        _format_value(dop.hdop if dop else None),
        _format_value(dop.vdop if dop else None),
        _format_value(dop.tdop if dop else None),
        _format_value(residuals.rms_m if residuals else None),
        _format_value(residuals.mean_m if residuals else None),
        _format_value(residuals.max_m if residuals else None),
        _format_value(residuals.chi_square if residuals else None),
        _format_value(pos[0]),
        _format_value(pos[1]),
        _format_value(pos[2]),
        _format_value(lla[0]),
        _format_value(lla[1]),
        _format_value(lla[2]),
        _format_value(vel[0]),
        _format_value(vel[1]),
        _format_value(vel[2]),
        _format_value(solution.clock_offset_s if solution is not None else None),
        _format_value(solution.clock_drift_sps if solution is not None else None),
        solution.timescale.value if solution is not None else "",
        _format_value(pos_sigma),
        _format_value(epoch.position_error_m),
        epoch.error_kind or "",
        _format_text(epoch.error_message),
    ]
    return ",".join(str(value) for value in row) + "\n"


def _vector(vector: np.ndarray | None) -> np.ndarray:
    if vector is None:
        return np.array([np.nan, np.nan, np.nan], dtype=float)
    return np.array(vector, dtype=float)


def _format_value(value: float | int | bool | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _format_text(value: str) -> str:
    # Messages are free text; keep them in one CSV cell.
    return value.replace(",", ";").replace("\n", " ")
