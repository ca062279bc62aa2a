"""Unified CLI entrypoint.

Two commands are exposed:
  1) survey: headless synthetic survey-in run (CSV + plots)
  2) check-config: validate a JSON solver configuration
"""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from enum import Enum

from gnss_pvt.errors import ConfigurationInvalid


def _cmd_survey(args: argparse.Namespace) -> None:
    from sim.run_survey_demo import run_from_args

    epoch_log_path = run_from_args(args)
    print(f"Saved outputs to {epoch_log_path.parent}")


def _cmd_check_config(args: argparse.Namespace) -> None:
    from sim.run_survey_demo import load_solver_config

    try:
        cfg = load_solver_config(args.method, args.config)
    except ConfigurationInvalid as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from None
    payload = asdict(cfg)
    payload["int_delay_s"] = {carrier.value: delay for carrier, delay in cfg.int_delay_s.items()}
    print(json.dumps(payload, indent=2, default=_json_default))


def _json_default(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    return str(value)


def build_parser() -> argparse.ArgumentParser:
    from sim.run_survey_demo import add_survey_arguments

    parser = argparse.ArgumentParser(prog="gnss-pvt", description="GNSS PVT solver runner")
    sub = parser.add_subparsers(dest="cmd", required=True)

    survey = sub.add_parser("survey", help="Run a synthetic static survey (headless)")
    add_survey_arguments(survey)
    survey.set_defaults(func=_cmd_survey)

    check = sub.add_parser("check-config", help="Validate a JSON solver configuration")
    check.add_argument("config", type=str, help="Path to a JSON config file")
    check.add_argument("--method", choices=["spp", "cpp", "ppp"], default="spp", help="Preset to apply overrides to")
    check.set_defaults(func=_cmd_check_config)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
