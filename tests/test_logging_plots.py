from __future__ import annotations

import csv
import json
import sys
from pathlib import Path

import numpy as np

from gnss_pvt.config import Method, SolverConfig
from gnss_pvt.logger import EPOCH_CSV_COLUMNS, append_epoch_csv, load_epochs_npz, save_epochs_csv, save_epochs_npz
from gnss_pvt.models import ConvergenceStatus, EpochLog
from gnss_pvt.plots import PLOT_FILES, save_survey_plots
from sim.run_survey_demo import SurveyDemoConfig, run_survey, run_survey_demo


def _epochs(duration: float = 4.0) -> list[EpochLog]:
    return run_survey(SurveyDemoConfig(duration=duration), SolverConfig.preset(Method.SPP))


def _failed_epoch() -> EpochLog:
    return EpochLog(
        t=9.0,
        solution=None,
        status=ConvergenceStatus.CONVERGING,
        required_sv=4,
        candidates_in=2,
        error_kind="insufficient_candidates",
        error_message="2 usable candidates after masks, 4 required",
    )


def test_csv_rows_match_columns(tmp_path: Path) -> None:
    epochs = [*_epochs(), _failed_epoch()]
    path = tmp_path / "epochs.csv"
    save_epochs_csv(path, epochs)
    with path.open(newline="") as handle:
        reader = csv.DictReader(handle)
        assert reader.fieldnames == EPOCH_CSV_COLUMNS
        rows = list(reader)
    assert len(rows) == len(epochs)
    assert rows[0]["method"] == "spp"
    assert int(rows[0]["sats_used"]) >= 4
    assert float(rows[0]["pos_error_m"]) < 100.0
    assert rows[0]["timescale"] == "GPST"
    failed = rows[-1]
    assert failed["pos_ecef_x"] == "nan"
    assert failed["gdop"] == ""
    assert failed["error_kind"] == "insufficient_candidates"
    assert failed["error_message"] == "2 usable candidates after masks; 4 required"


def test_append_writes_header_once(tmp_path: Path) -> None:
    path = tmp_path / "append.csv"
    for epoch in _epochs(2.0):
        append_epoch_csv(path, epoch)
    lines = path.read_text().splitlines()
    assert lines[0] == ",".join(EPOCH_CSV_COLUMNS)
    assert len(lines) == 3


def test_npz_reload(tmp_path: Path) -> None:
    epochs = _epochs(3.0)
    path = tmp_path / "epochs.npz"
    save_epochs_npz(path, epochs)
    loaded = load_epochs_npz(path)
    assert [item["t"] for item in loaded] == [epoch.t for epoch in epochs]
    assert np.allclose(loaded[-1]["solution"]["pos_ecef"], epochs[-1].solution.pos_ecef)


def test_survey_plots_are_written(tmp_path: Path) -> None:
    output_dir = save_survey_plots([*_epochs(), _failed_epoch()], out_dir=tmp_path, run_name="plots")
    assert output_dir == tmp_path / "plots"
    for name in PLOT_FILES:
        assert (output_dir / name).stat().st_size > 0


def test_demo_outputs(tmp_path: Path) -> None:
    epoch_log_path = run_survey_demo(
        SurveyDemoConfig(duration=5.0),
        SolverConfig.preset(Method.SPP),
        tmp_path / "demo",
        save_figs=True,
    )
    output_dir = epoch_log_path.parent
    assert output_dir == tmp_path / "demo"
    for name in ("epoch_logs.csv", "epoch_logs.npz", "summary.json", *PLOT_FILES):
        assert (output_dir / name).exists()
    summary = json.loads((output_dir / "summary.json").read_text())
    assert summary["epochs"] == 5
    assert summary["solutions"] == 5
    assert summary["final_position_error_m"] < 100.0


def test_no_plots_does_not_import_plot_module(tmp_path: Path) -> None:
    sys.modules.pop("gnss_pvt.plots", None)
    epoch_log_path = run_survey_demo(
        SurveyDemoConfig(duration=2.0),
        SolverConfig.preset(Method.SPP),
        tmp_path / "no_plots",
        save_figs=False,
    )
    assert epoch_log_path.exists()
    assert not (epoch_log_path.parent / "dop.png").exists()
    assert "gnss_pvt.plots" not in sys.modules
