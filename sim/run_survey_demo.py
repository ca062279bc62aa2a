"""Run a static survey-in demo against synthetic candidates."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import numpy as np

from gnss_pvt.config import Method, SolverConfig, config_from_mapping
from gnss_pvt.errors import PvtError
from gnss_pvt.logger import save_epochs_csv, save_epochs_npz
from gnss_pvt.meas.synthetic import SyntheticCandidateSource
from gnss_pvt.models import EpochLog
from gnss_pvt.runtime.solver import PvtSession, Solver
from gnss_pvt.sat.simple_gps import SimpleGpsConfig, SimpleGpsConstellation
from gnss_pvt.utils.logging import ROOT_LOGGER_NAME, get_logger
from gnss_pvt.utils.wgs84 import lla_to_ecef

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class SurveyDemoConfig:
    """Synthetic receiver and noise schedule for the survey demo."""

    rng_seed: int = 42
    dt: float = 1.0
    duration: float = 120.0
    start_t: float = 0.0
    rx_lat_deg: float = 36.597383
    rx_lon_deg: float = -121.874300
    rx_alt_m: float = 14.0
    rx_clock_bias_s: float = 4.2e-6
    rx_clock_drift_sps: float = 0.0
    code_sigma_start_m: float = 5.0
    code_sigma_end_m: float = 0.3
    noise_decay_s: float = 30.0
    phase_sigma_m: float = 0.003
    include_tropo: bool = True
    include_iono: bool = True

    def code_sigma_at(self, t: float) -> float:
        """Code noise decaying exponentially from the start to the end level."""

        elapsed = max(float(t) - self.start_t, 0.0)
        span = self.code_sigma_start_m - self.code_sigma_end_m
        return float(self.code_sigma_end_m + span * np.exp(-elapsed / self.noise_decay_s))


def build_source(cfg: SurveyDemoConfig) -> SyntheticCandidateSource:
    rng = np.random.default_rng(cfg.rng_seed)
    constellation = SimpleGpsConstellation(SimpleGpsConfig(seed=cfg.rng_seed))
    return SyntheticCandidateSource(
        constellation=constellation,
        receiver_pos_ecef_m=lla_to_ecef(cfg.rx_lat_deg, cfg.rx_lon_deg, cfg.rx_alt_m),
        receiver_clock_bias_s=cfg.rx_clock_bias_s,
        receiver_clock_drift_sps=cfg.rx_clock_drift_sps,
        code_sigma_fn=cfg.code_sigma_at,
        phase_sigma_m=cfg.phase_sigma_m,
        include_tropo=cfg.include_tropo,
        include_iono=cfg.include_iono,
        rng=rng,
    )


def run_survey(
    demo_cfg: SurveyDemoConfig,
    solver_cfg: SolverConfig,
) -> list[EpochLog]:
    """Process every epoch of the demo and return one log entry per epoch."""

    source = build_source(demo_cfg)
    session = PvtSession(Solver(solver_cfg))
    truth = source.receiver_pos_ecef_m
    epochs: list[EpochLog] = []
    times = demo_cfg.start_t + np.arange(0.0, demo_cfg.duration, demo_cfg.dt)
    for t in times:
        candidates = source.get_candidates(float(t))
        required = session.required_sv
        try:
            solution = session.process(float(t), candidates)
        except PvtError as exc:
            epochs.append(
                EpochLog(
                    t=float(t),
                    solution=None,
                    status=session.status,
                    required_sv=required,
                    candidates_in=len(candidates),
                    error_kind=exc.kind.value,
                    error_message=str(exc),
                    truth_pos_ecef=truth,
                )
            )
            continue
        epochs.append(
            EpochLog(
                t=float(t),
                solution=solution,
                status=session.status,
                required_sv=required,
                candidates_in=len(candidates),
                truth_pos_ecef=truth,
                extras={"code_sigma_m": demo_cfg.code_sigma_at(float(t))},
            )
        )
    return epochs


def summarize(epochs: list[EpochLog]) -> dict[str, float | int | str | None]:
    solved = [epoch for epoch in epochs if epoch.solution is not None]
    converged_t = next((epoch.t for epoch in epochs if epoch.status.value == "converged"), None)
    final_error = solved[-1].position_error_m if solved else None
    return {
        "epochs": len(epochs),
        "solutions": len(solved),
        "converged_at_t": converged_t,
        "final_status": epochs[-1].status.value if epochs else "",
        "final_position_error_m": final_error,
    }


def run_survey_demo(
    demo_cfg: SurveyDemoConfig,
    solver_cfg: SolverConfig,
    run_dir: Path,
    save_figs: bool = True,
) -> Path:
    """Run the demo and write CSV/NPZ logs, a JSON summary and optional plots."""

    epochs = run_survey(demo_cfg, solver_cfg)
    run_dir.mkdir(parents=True, exist_ok=True)
    if save_figs:
        from gnss_pvt.plots import save_survey_plots

        output_dir = save_survey_plots(epochs, out_dir=run_dir.parent, run_name=run_dir.name)
    else:
        output_dir = run_dir
    save_epochs_csv(output_dir / "epoch_logs.csv", epochs)
    save_epochs_npz(output_dir / "epoch_logs.npz", epochs)
    summary = summarize(epochs)
    (output_dir / "summary.json").write_text(json.dumps(summary, indent=2))
    LOGGER.info(
        "%d/%d epochs solved, final status %s",
        summary["solutions"],
        summary["epochs"],
        summary["final_status"],
    )
    return output_dir / "epoch_logs.csv"


def load_solver_config(method: str, config_path: str | Path | None = None) -> SolverConfig:
    """Method preset with optional JSON overrides applied on top."""

    base = SolverConfig.preset(Method(method))
    if config_path is None:
        return base.validate()
    overrides = json.loads(Path(config_path).read_text(encoding="utf-8"))
    return config_from_mapping(overrides, base=base)


def add_survey_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--method", choices=[item.value for item in Method], default="spp", help="Navigation method.")
    parser.add_argument("--config", type=str, default=None, help="JSON file with solver config overrides.")
    parser.add_argument("--duration-s", type=float, default=120.0, help="Duration in seconds.")
    parser.add_argument("--rng-seed", type=int, default=42, help="Random seed for the synthetic source.")
    parser.add_argument("--out-dir", type=str, default="out", help="Output directory root.")
    parser.add_argument("--run-name", type=str, default=None, help="Run name for outputs.")
    parser.add_argument("--no-plots", action="store_true", help="Disable saving run plots.")
    parser.add_argument("--verbose", action="store_true", help="Log per-epoch solver details.")


def run_from_args(args: argparse.Namespace) -> Path:
    if args.verbose:
        get_logger(ROOT_LOGGER_NAME, level=logging.DEBUG)
    solver_cfg = load_solver_config(args.method, args.config)
    demo_cfg = SurveyDemoConfig(duration=args.duration_s, rng_seed=args.rng_seed)
    run_name = args.run_name or datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    run_dir = Path(args.out_dir) / run_name
    return run_survey_demo(demo_cfg, solver_cfg, run_dir, save_figs=not args.no_plots)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the static survey-in demo.")
    add_survey_arguments(parser)
    args = parser.parse_args(argv)
    epoch_log_path = run_from_args(args)
    print(f"Saved outputs to {epoch_log_path.parent}")


if __name__ == "__main__":
    main()
