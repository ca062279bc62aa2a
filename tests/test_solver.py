from __future__ import annotations

import logging
from dataclasses import replace
from itertools import combinations

import numpy as np
import pytest

from gnss_pvt import (
    ErrorKind,
    Method,
    PvtError,
    PvtSession,
    SolutionType,
    Solver,
    SolverConfig,
)
from gnss_pvt.config import ConfirmationCriteria, FilterKind, Modeling, SurveyOpts
from gnss_pvt.errors import InsufficientCandidates, InvalidationCause, ValidationRejected
from gnss_pvt.integrity.dop import compute_dop
from gnss_pvt.meas.pseudorange import line_of_sight
from gnss_pvt.models import ConvergenceStatus, Observation
from gnss_pvt.receiver.differential import RecordedBaseStation
from gnss_pvt.utils.gnss_time import TimeScale
from gnss_pvt.utils.wgs84 import ecef_delta_from_enu, ecef_to_lla

from conftest import RX_CLOCK_BIAS_S

NO_ATMOSPHERE = Modeling(tropo_delay=False, iono_delay=False)
FAST_SURVEY = SurveyOpts(convergence_threshold_m=100.0, convergence_epochs=2)
PPP_MODELING = Modeling(tropo_delay=False, iono_delay=False, solid_tides=False, relativistic_path_range=False)

_STATUS_ORDER = {
    ConvergenceStatus.UNINITIALIZED: 0,
    ConvergenceStatus.CONVERGING: 1,
    ConvergenceStatus.CONVERGED: 2,
}


def _run(session: PvtSession, source, times) -> list:
    return [session.process(float(t), source.get_candidates(float(t))) for t in times]


def _highest(candidates, count: int) -> list:
    return sorted(candidates, key=lambda cand: -cand.elevation_deg)[:count]


def test_zero_noise_solution_is_exact(make_source, receiver_pos: np.ndarray) -> None:
    session = PvtSession(Solver(SolverConfig(modeling=NO_ATMOSPHERE)))
    solution = session.process(0.0, make_source().get_candidates(0.0))
    assert np.linalg.norm(solution.pos_ecef - receiver_pos) < 1e-3
    assert solution.clock_offset_s == pytest.approx(RX_CLOCK_BIAS_S, abs=1e-11)
    assert solution.timescale is TimeScale.GPST
    assert solution.method == "spp"
    assert solution.solution_type == "full_pvt"
    assert solution.vel_ecef is not None and np.linalg.norm(solution.vel_ecef) < 1e-3
    assert set(solution.sv) == set(solution.sv_ids)
    assert solution.covariance.shape == (4, 4)
    assert np.all(np.diag(solution.covariance) > 0.0)
    assert session.status is ConvergenceStatus.CONVERGING


def test_zero_noise_best_four_satellite_subset(make_source, receiver_pos: np.ndarray) -> None:
    candidates = make_source().get_candidates(0.0)
    lat_deg, lon_deg, _ = ecef_to_lla(*receiver_pos)

    def gdop(subset) -> float:
        rows = [np.append(-line_of_sight(receiver_pos, cand.sv_state.pos_ecef_m)[1], 1.0) for cand in subset]
        return compute_dop(np.vstack(rows), lat_deg, lon_deg).gdop

    best = min(combinations(candidates, 4), key=gdop)
    solution = PvtSession(Solver(SolverConfig(modeling=NO_ATMOSPHERE))).process(0.0, best)
    assert solution.sv_count == 4
    assert np.linalg.norm(solution.pos_ecef - receiver_pos) < 1e-3
    assert solution.dop.gdop == pytest.approx(gdop(best), rel=1e-6)


def test_failed_epoch_leaves_state_untouched(make_source) -> None:
    solver = Solver(SolverConfig(modeling=NO_ATMOSPHERE))
    source = make_source()
    result = solver.resolve(solver.initial_state(), 0.0, source.get_candidates(0.0))
    state = result.state
    x_before = state.filter_state.x.copy()
    p_before = state.filter_state.p.copy()

    with pytest.raises(InsufficientCandidates) as excinfo:
        solver.resolve(state, 1.0, source.get_candidates(1.0)[:3])
    assert excinfo.value.kind is ErrorKind.INSUFFICIENT_CANDIDATES
    assert np.array_equal(state.filter_state.x, x_before)
    assert np.array_equal(state.filter_state.p, p_before)
    assert state.last_solution is result.solution

    session = PvtSession(solver, state)
    with pytest.raises(PvtError):
        session.process(1.0, source.get_candidates(1.0)[:3])
    assert session.state.filter_state is state.filter_state
    assert session.state.last_solution is result.solution
    assert session.state.survey.consecutive == 0


def test_out_of_order_epoch_is_rejected_by_kalman(make_source) -> None:
    session = PvtSession(Solver(SolverConfig(filter=FilterKind.KALMAN, modeling=NO_ATMOSPHERE)))
    source = make_source()
    _run(session, source, [5.0, 6.0])
    before = session.state
    with pytest.raises(PvtError) as excinfo:
        session.process(4.0, source.get_candidates(4.0))
    assert excinfo.value.kind is ErrorKind.FILTER_DIVERGENCE
    assert session.state.filter_state is before.filter_state
    assert session.state.filter_state.t == 6.0


def test_identical_inputs_give_identical_outputs(make_source) -> None:
    source = make_source(code_sigma_m=2.0, include_tropo=True, include_iono=True)
    epochs = [(float(t), source.get_candidates(float(t))) for t in range(5)]
    cfg = SolverConfig.preset(Method.SPP)
    first = PvtSession(Solver(cfg))
    second = PvtSession(Solver(cfg))
    for t, candidates in epochs:
        a = first.process(t, candidates)
        b = second.process(t, candidates)
        assert np.array_equal(a.pos_ecef, b.pos_ecef)
        assert a.clock_offset_s == b.clock_offset_s
        assert np.array_equal(a.covariance, b.covariance)
    assert np.array_equal(first.state.filter_state.x, second.state.filter_state.x)


def test_noisy_survey_converges_monotonically(make_source, receiver_pos: np.ndarray) -> None:
    source = make_source(
        code_sigma_fn=lambda t: 0.3 + 4.7 * np.exp(-t / 30.0),
        include_tropo=True,
        include_iono=True,
    )
    cfg = SolverConfig.preset(Method.SPP, survey=SurveyOpts(convergence_threshold_m=20.0, convergence_epochs=5))
    session = PvtSession(Solver(cfg))
    levels: list[int] = []
    solution = None
    for t in range(30):
        solution = session.process(float(t), source.get_candidates(float(t)))
        levels.append(_STATUS_ORDER[session.status])
    assert levels == sorted(levels)
    assert session.status is ConvergenceStatus.CONVERGED
    assert levels.index(2) == 4
    assert np.linalg.norm(solution.pos_ecef - receiver_pos) < 10.0


@pytest.mark.parametrize(("fixed_altitude_m", "required_after"), [(None, 4), (30.0, 3)])
def test_four_vehicle_survey_converges_with_default_options(
    make_source,
    receiver_pos: np.ndarray,
    fixed_altitude_m: float | None,
    required_after: int,
) -> None:
    source = make_source(code_sigma_fn=lambda t: 0.3 + 4.7 * np.exp(-t / 10.0))
    session = PvtSession(Solver(SolverConfig(modeling=NO_ATMOSPHERE, fixed_altitude_m=fixed_altitude_m)))
    converged_at = None
    solution = None
    for t in range(30):
        solution = session.process(float(t), _highest(source.get_candidates(float(t)), 4))
        if session.status is ConvergenceStatus.CONVERGED:
            if converged_at is None:
                converged_at = t
            assert session.required_sv == required_after
        else:
            assert converged_at is None
            assert session.required_sv == 4
    assert converged_at is not None
    assert solution.sv_count == 4
    assert np.linalg.norm(solution.pos_ecef - receiver_pos) < 50.0


def test_requirement_stays_full_pvt_until_converged(make_source) -> None:
    cfg = SolverConfig(solution_type=SolutionType.TIME_ONLY, modeling=NO_ATMOSPHERE, survey=FAST_SURVEY)
    session = PvtSession(Solver(cfg))
    assert session.required_sv == 4
    source = make_source()
    with pytest.raises(InsufficientCandidates):
        session.process(0.0, source.get_candidates(0.0)[:1])
    _run(session, source, [1.0])
    assert session.required_sv == 4
    _run(session, source, [2.0])
    assert session.status is ConvergenceStatus.CONVERGED
    assert session.required_sv == 1


def test_fixed_altitude_solution_with_three_satellites(make_source, receiver_pos: np.ndarray) -> None:
    cfg = SolverConfig(solution_type=SolutionType.FIXED_ALTITUDE, modeling=NO_ATMOSPHERE, survey=FAST_SURVEY)
    session = PvtSession(Solver(cfg))
    source = make_source()
    _run(session, source, [0.0, 1.0])
    assert session.status is ConvergenceStatus.CONVERGED
    assert session.required_sv == 3

    solution = session.process(2.0, _highest(source.get_candidates(2.0), 3))
    assert solution.sv_count == 3
    assert solution.solution_type == "fixed_altitude"
    assert np.linalg.norm(solution.pos_ecef - receiver_pos) < 1e-2
    reference_alt = ecef_to_lla(*session.state.survey.reference_ecef)[2]
    assert solution.lat_lon_alt()[2] == pytest.approx(reference_alt, abs=1e-6)


def test_configured_altitude_constrains_full_pvt(make_source, receiver_pos: np.ndarray) -> None:
    _, _, alt_m = ecef_to_lla(*receiver_pos)
    cfg = SolverConfig(fixed_altitude_m=alt_m, modeling=NO_ATMOSPHERE, survey=FAST_SURVEY)
    session = PvtSession(Solver(cfg))
    assert session.required_sv == 4
    source = make_source()
    _run(session, source, [0.0, 1.0])
    assert session.required_sv == 3
    solution = session.process(2.0, _highest(source.get_candidates(2.0), 3))
    assert solution.lat_lon_alt()[2] == pytest.approx(alt_m, abs=1e-6)
    assert np.linalg.norm(solution.pos_ecef - receiver_pos) < 1e-2


def test_time_only_solution_holds_reference(make_source) -> None:
    cfg = SolverConfig(solution_type=SolutionType.TIME_ONLY, modeling=NO_ATMOSPHERE, survey=FAST_SURVEY)
    session = PvtSession(Solver(cfg))
    source = make_source()
    _run(session, source, [0.0, 1.0])
    reference = session.state.survey.reference_ecef.copy()

    solution = session.process(2.0, _highest(source.get_candidates(2.0), 1))
    assert solution.sv_count == 1
    assert solution.solution_type == "time_only"
    assert np.array_equal(solution.pos_ecef, reference)
    assert solution.vel_ecef is None
    assert solution.clock_offset_s == pytest.approx(RX_CLOCK_BIAS_S, abs=1e-7)
    assert solution.dop.pdop == 0.0
    assert session.status is ConvergenceStatus.CONVERGED

    # Back to full candidates: time-only keeps holding the reference.
    solution = session.process(3.0, source.get_candidates(3.0))
    assert np.array_equal(solution.pos_ecef, reference)


def test_iono_free_code_removes_ionosphere(make_source, receiver_pos: np.ndarray) -> None:
    source = make_source(include_iono=True)
    candidates = source.get_candidates(0.0)
    cpp = PvtSession(Solver(SolverConfig(method=Method.CPP, modeling=NO_ATMOSPHERE)))
    assert np.linalg.norm(cpp.process(0.0, candidates).pos_ecef - receiver_pos) < 1e-3
    spp = PvtSession(Solver(SolverConfig(modeling=NO_ATMOSPHERE)))
    assert np.linalg.norm(spp.process(0.0, candidates).pos_ecef - receiver_pos) > 0.1


def test_modeled_atmosphere_is_compensated(make_source, receiver_pos: np.ndarray) -> None:
    source = make_source(include_iono=True, include_tropo=True)
    session = PvtSession(Solver(SolverConfig(filter=FilterKind.NONE)))
    solutions = _run(session, source, [0.0, 1.0])
    assert np.linalg.norm(solutions[-1].pos_ecef - receiver_pos) < 1e-2
    tropo = [contribution.tropo_delay_m for contribution in solutions[-1].sv.values()]
    iono = [contribution.iono_delay_m for contribution in solutions[-1].sv.values()]
    assert min(tropo) > 2.0
    assert min(iono) > 1.0


@pytest.mark.parametrize("filter_kind", [FilterKind.KALMAN, FilterKind.LSQ])
def test_ppp_recovers_position(make_source, receiver_pos: np.ndarray, filter_kind: FilterKind) -> None:
    cfg = SolverConfig.preset(Method.PPP, filter=filter_kind, modeling=PPP_MODELING)
    session = PvtSession(Solver(cfg))
    solutions = _run(session, make_source(), [0.0, 1.0, 2.0])
    for solution in solutions:
        assert np.linalg.norm(solution.pos_ecef - receiver_pos) < 1e-2
        assert solution.method == "ppp"
    assert session.state.filter_state.layout.ambiguity_sv_ids == solutions[-1].sv_ids
    if filter_kind is FilterKind.KALMAN:
        assert np.linalg.norm(solutions[-1].vel_ecef) < 1e-2
        assert solutions[-1].clock_drift_sps is not None


def _with_code_bias(candidates, biases: dict[str, float]) -> list:
    biased = []
    for cand in candidates:
        bias = biases.get(cand.sv_id, 0.0)
        observations = {
            carrier: replace(obs, pseudorange_m=obs.pseudorange_m + bias) for carrier, obs in cand.observations.items()
        }
        biased.append(replace(cand, observations=observations))
    return biased


def test_differential_corrections_cancel_common_errors(make_source, receiver_pos: np.ndarray) -> None:
    lat_deg, lon_deg, _ = ecef_to_lla(*receiver_pos)
    base_pos = receiver_pos + ecef_delta_from_enu(np.array([150.0, -80.0, 0.0]), lat_deg, lon_deg)
    rover = make_source(include_tropo=True, include_iono=True)
    base = make_source(
        receiver_pos_ecef_m=base_pos,
        receiver_clock_bias_s=-1.3e-6,
        include_tropo=True,
        include_iono=True,
    )
    rover_candidates = rover.get_candidates(0.0)
    biases = {cand.sv_id: 3.0 + 0.5 * idx for idx, cand in enumerate(rover_candidates)}
    station = RecordedBaseStation(base_pos, {0.0: _with_code_bias(base.get_candidates(0.0), biases)})

    cfg = SolverConfig(modeling=NO_ATMOSPHERE)
    differential = PvtSession(Solver(cfg, base_station=station))
    solution = differential.process(0.0, _with_code_bias(rover_candidates, biases))
    assert np.linalg.norm(solution.pos_ecef - receiver_pos) < 0.05
    assert solution.clock_offset_s == pytest.approx(RX_CLOCK_BIAS_S + 1.3e-6, abs=1e-9)

    plain = PvtSession(Solver(cfg))
    assert np.linalg.norm(plain.process(0.0, _with_code_bias(rover_candidates, biases)).pos_ecef - receiver_pos) > 1.0

    empty = PvtSession(Solver(cfg, base_station=RecordedBaseStation(base_pos)))
    with pytest.raises(InsufficientCandidates, match="base station pairing"):
        empty.process(0.0, rover_candidates)


def test_atmosphere_outliers_are_rejected(make_source) -> None:
    session = PvtSession(Solver(SolverConfig(max_tropo_bias_m=0.5)))
    with pytest.raises(InsufficientCandidates, match="atmosphere outlier rejection") as excinfo:
        session.process(0.0, make_source().get_candidates(0.0))
    assert excinfo.value.kind is ErrorKind.INSUFFICIENT_CANDIDATES
    assert session.state.last_solution is None


def test_first_solution_is_discarded_once(make_source) -> None:
    cfg = SolverConfig(modeling=NO_ATMOSPHERE, criteria=ConfirmationCriteria(discard_first_solution=True))
    session = PvtSession(Solver(cfg))
    source = make_source()
    with pytest.raises(ValidationRejected) as excinfo:
        session.process(0.0, source.get_candidates(0.0))
    assert excinfo.value.cause is InvalidationCause.FIRST_SOLUTION
    assert session.state.first_solution_discarded
    assert not session.state.filter_state.initialized
    assert session.status is ConvergenceStatus.UNINITIALIZED
    solution = session.process(1.0, source.get_candidates(1.0))
    assert solution.t == 1.0


def test_reset_returns_to_initial_status(make_source) -> None:
    session = PvtSession(Solver(SolverConfig(modeling=NO_ATMOSPHERE, survey=FAST_SURVEY)))
    _run(session, make_source(), [0.0, 1.0])
    assert session.status is ConvergenceStatus.CONVERGED
    session.reset()
    assert session.status is ConvergenceStatus.UNINITIALIZED
    assert session.required_sv == 4


def test_apriori_position_starts_converging(make_source, receiver_pos: np.ndarray) -> None:
    apriori = receiver_pos + np.array([20.0, -10.0, 5.0])
    solver = Solver(SolverConfig(modeling=NO_ATMOSPHERE), apriori=apriori)
    assert solver.cfg.apriori_ecef_m == tuple(apriori)
    session = PvtSession(solver)
    assert session.status is ConvergenceStatus.CONVERGING
    solution = session.process(0.0, make_source().get_candidates(0.0))
    assert np.linalg.norm(solution.pos_ecef - receiver_pos) < 1e-3


def test_time_only_with_apriori_needs_one_vehicle(make_source, receiver_pos: np.ndarray) -> None:
    cfg = SolverConfig(solution_type=SolutionType.TIME_ONLY, modeling=NO_ATMOSPHERE)
    session = PvtSession(Solver(cfg, apriori=receiver_pos))
    assert session.status is ConvergenceStatus.CONVERGING
    assert session.required_sv == 1

    source = make_source()
    solution = session.process(0.0, _highest(source.get_candidates(0.0), 1))
    assert solution.sv_count == 1
    assert solution.solution_type == "time_only"
    assert np.array_equal(solution.pos_ecef, receiver_pos)
    assert solution.clock_offset_s == pytest.approx(RX_CLOCK_BIAS_S, abs=1e-7)
    assert session.status is ConvergenceStatus.CONVERGING
    assert session.required_sv == 1


def test_fixed_altitude_with_apriori_needs_three_vehicles(make_source, receiver_pos: np.ndarray) -> None:
    cfg = SolverConfig(solution_type=SolutionType.FIXED_ALTITUDE, modeling=NO_ATMOSPHERE)
    session = PvtSession(Solver(cfg, apriori=receiver_pos))
    assert session.required_sv == 3
    solution = session.process(0.0, _highest(make_source().get_candidates(0.0), 3))
    assert solution.solution_type == "fixed_altitude"
    assert np.linalg.norm(solution.pos_ecef - receiver_pos) < 1e-2


def test_clock_offset_reported_in_configured_timescale(make_source) -> None:
    session = PvtSession(Solver(SolverConfig(timescale=TimeScale.UTC, modeling=NO_ATMOSPHERE)))
    solution = session.process(0.0, make_source().get_candidates(0.0))
    assert solution.timescale is TimeScale.UTC
    assert solution.clock_offset_s == pytest.approx(18.0 + RX_CLOCK_BIAS_S, abs=1e-9)


def test_eclipse_mask_with_spp_warns(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="gnss_pvt"):
        Solver(SolverConfig(min_sv_sunlight_rate=0.5))
    assert "eclipse" in caplog.text


def test_observation_without_code_is_not_used(make_source, receiver_pos: np.ndarray) -> None:
    candidates = make_source().get_candidates(0.0)
    first = candidates[0]
    stripped = replace(
        first,
        observations={carrier: Observation(carrier, snr_dbhz=obs.snr_dbhz) for carrier, obs in first.observations.items()},
    )
    session = PvtSession(Solver(SolverConfig(modeling=NO_ATMOSPHERE)))
    solution = session.process(0.0, [stripped, *candidates[1:]])
    assert first.sv_id not in solution.sv_ids
    assert np.linalg.norm(solution.pos_ecef - receiver_pos) < 1e-3
