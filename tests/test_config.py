from __future__ import annotations

import pytest

from gnss_pvt.carrier import Carrier
from gnss_pvt.config import (
    FilterKind,
    Method,
    SolutionType,
    SolverConfig,
    config_from_mapping,
)
from gnss_pvt.errors import ConfigurationInvalid, ErrorKind
from gnss_pvt.utils.gnss_time import TimeScale


def test_defaults_are_valid() -> None:
    cfg = SolverConfig()
    assert cfg.validate() is cfg
    assert cfg.method is Method.SPP
    assert cfg.solution_type is SolutionType.FULL_PVT
    assert cfg.timescale is TimeScale.GPST
    assert cfg.max_sv == 10
    assert cfg.apriori_position is None
    assert not cfg.iono_free


def test_presets_select_filter_per_method() -> None:
    assert SolverConfig.preset(Method.SPP).filter is FilterKind.LSQ
    ppp = SolverConfig.preset(Method.PPP)
    assert ppp.filter is FilterKind.KALMAN
    assert ppp.iono_free
    assert ppp.survey.convergence_epochs == 30
    overridden = SolverConfig.preset(Method.CPP, max_sv=6)
    assert overridden.max_sv == 6
    assert overridden.method is Method.CPP


@pytest.mark.parametrize(
    "overrides",
    [
        {"fixed_altitude_m": 10.0, "solution_type": SolutionType.TIME_ONLY},
        {"fixed_altitude_m": float("nan")},
        {"apriori_ecef_m": (1.0, 2.0, 3.0)},
        {"min_sv_elev_deg": 95.0},
        {"min_sv_azim_deg": 10.0},
        {"min_sv_azim_deg": 10.0, "max_sv_azim_deg": 400.0},
        {"max_sv": 3},
        {"min_sv_sunlight_rate": 1.5},
        {"tropo_model": "hopfield"},
        {"leap_seconds": -1},
    ],
)
def test_validate_rejects_inconsistent_settings(overrides: dict) -> None:
    cfg = SolverConfig(**overrides)
    with pytest.raises(ConfigurationInvalid) as excinfo:
        cfg.validate()
    assert excinfo.value.kind is ErrorKind.CONFIGURATION_INVALID
    assert isinstance(excinfo.value, ValueError)


def test_config_from_mapping_parses_enums_and_nested_sections() -> None:
    cfg = config_from_mapping(
        {
            "method": "cpp",
            "solution_type": "fixed_altitude",
            "filter": "kalman",
            "timescale": "UTC",
            "apriori_ecef_m": [-2_700_000.0, -4_290_000.0, 3_860_000.0],
            "int_delay_s": {"L1": 1e-9, "c2": 2e-9},
            "criteria": {"max_gdop": 6.0, "discard_first_solution": True},
            "survey": {"convergence_epochs": 5},
            "filter_opts": {"weighting": {"a_m": 0.5}},
        }
    )
    assert cfg.method is Method.CPP
    assert cfg.solution_type is SolutionType.FIXED_ALTITUDE
    assert cfg.filter is FilterKind.KALMAN
    assert cfg.timescale is TimeScale.UTC
    assert cfg.apriori_ecef_m == (-2_700_000.0, -4_290_000.0, 3_860_000.0)
    assert cfg.int_delay_s == {Carrier.L1: 1e-9, Carrier.L2: 2e-9}
    assert cfg.criteria.max_gdop == 6.0
    assert cfg.criteria.discard_first_solution
    assert cfg.criteria.max_pdop is None
    assert cfg.survey.convergence_epochs == 5
    assert cfg.filter_opts.weighting.a_m == 0.5
    assert cfg.filter_opts.weighting.b_m == SolverConfig().filter_opts.weighting.b_m


def test_config_from_mapping_keeps_base_values() -> None:
    base = SolverConfig.preset(Method.PPP)
    cfg = config_from_mapping({"max_sv": 8}, base=base)
    assert cfg.filter is FilterKind.KALMAN
    assert cfg.max_sv == 8


@pytest.mark.parametrize(
    "data",
    [
        {"not_a_field": 1},
        {"survey": {"bogus": 1}},
        {"method": "rtk"},
        {"int_delay_s": {"X9": 1e-9}},
        {"chi_square_alpha": 0.1},
        {"criteria": {"chi_square_alpha": 1.5}},
    ],
)
def test_config_from_mapping_rejects_bad_input(data: dict) -> None:
    with pytest.raises(ConfigurationInvalid):
        config_from_mapping(data)
