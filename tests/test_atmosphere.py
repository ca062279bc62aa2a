from __future__ import annotations

import logging

import numpy as np
import pytest

from gnss_pvt.carrier import Carrier
from gnss_pvt.config import Method, Modeling, SolverConfig
from gnss_pvt.meas.atmosphere import AtmosphereCorrector, FallbackChain, ReceiverContext
from gnss_pvt.meas.iono_klobuchar import klobuchar_delay_m, obliquity_factor
from gnss_pvt.meas.tropo_saastamoinen import cosecant_mapping, niell_mapping, zenith_delays_m
from gnss_pvt.models import Candidate, IonoComponents, Observation, SvState, TropoComponents
from gnss_pvt.utils.gnss_time import day_of_year

RX = ReceiverContext(t=43_200.0, lat_deg=37.4, lon_deg=-122.2, alt_m=30.0)


def _candidate(elev_deg: float = 30.0, az_deg: float = 120.0) -> Candidate:
    return Candidate(
        sv_id="G01",
        t=RX.t,
        observations={Carrier.L1: Observation(Carrier.L1, pseudorange_m=2.2e7)},
        sv_state=SvState(pos_ecef_m=np.array([1.5e7, -1.0e7, 2.0e7])),
        elevation_deg=elev_deg,
        azimuth_deg=az_deg,
    )


def test_fallback_chain_returns_first_answer() -> None:
    chain = FallbackChain(lambda *_: None, lambda *_: "second", lambda *_: "third")
    assert chain.resolve(0.0, 0.0, 0.0) == ("second", 1)
    assert chain(0.0, 0.0, 0.0) == "second"
    with pytest.raises(ValueError):
        FallbackChain()


def test_external_tropo_provider_is_preferred() -> None:
    provider = lambda t, alt, lat: TropoComponents(zenith_dry_m=2.0, zenith_wet_m=0.1)  # noqa: E731
    corrector = AtmosphereCorrector(SolverConfig(min_sv_elev_deg=10.0), tropo_provider=provider)
    correction = corrector.correct(_candidate(), RX)
    assert not correction.tropo_from_fallback
    assert correction.tropo.zenith_dry_m == 2.0
    m_dry, m_wet = niell_mapping(30.0, RX.lat_deg, RX.alt_m, day_of_year(RX.t))
    assert correction.tropo_delay_m == pytest.approx(2.0 * m_dry + 0.1 * m_wet)


def test_missing_tropo_data_falls_back_to_internal_model(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="gnss_pvt")
    corrector = AtmosphereCorrector(SolverConfig(), tropo_provider=lambda t, alt, lat: None)
    first = corrector.correct(_candidate(), RX)
    corrector.correct(_candidate(elev_deg=60.0), RX)

    dry, wet = zenith_delays_m(RX.lat_deg, RX.alt_m)
    assert first.tropo_from_fallback
    assert first.tropo.zenith_dry_m == pytest.approx(dry)
    assert first.tropo.zenith_wet_m == pytest.approx(wet)
    advisories = [record for record in caplog.records if "elevation mask" in record.getMessage()]
    assert len(advisories) == 1


def test_cosecant_mapping_option() -> None:
    corrector = AtmosphereCorrector(SolverConfig(tropo_model="cosecant"))
    correction = corrector.correct(_candidate(elev_deg=20.0), RX)
    assert correction.tropo.mapping_dry == pytest.approx(cosecant_mapping(20.0))
    assert correction.tropo.mapping_wet == pytest.approx(1.0 / np.sin(np.deg2rad(20.0)))


def test_klobuchar_fallback_and_vertical_delay_provider() -> None:
    cfg = SolverConfig()
    internal = AtmosphereCorrector(cfg).correct(_candidate(), RX)
    expected = klobuchar_delay_m(RX.t, RX.lat_deg, RX.lon_deg, 30.0, 120.0)
    assert internal.iono_delay_l1_m == pytest.approx(expected)
    assert internal.iono_delay_m(Carrier.L2.frequency_hz) > internal.iono_delay_l1_m

    provider = lambda t, alt, lat: IonoComponents(vertical_delay_l1_m=2.0)  # noqa: E731
    external = AtmosphereCorrector(cfg, iono_provider=provider).correct(_candidate(), RX)
    assert external.iono_delay_l1_m == pytest.approx(2.0 * obliquity_factor(30.0))


def test_iono_free_methods_and_disabled_modeling_skip_corrections() -> None:
    iono_free = AtmosphereCorrector(SolverConfig(method=Method.CPP)).correct(_candidate(), RX)
    assert iono_free.iono is None
    assert iono_free.iono_delay_l1_m == 0.0
    assert iono_free.tropo_delay_m > 0.0

    disabled = SolverConfig(modeling=Modeling(tropo_delay=False, iono_delay=False))
    correction = AtmosphereCorrector(disabled).correct(_candidate(), RX)
    assert correction.tropo is None
    assert correction.tropo_delay_m == 0.0
    assert correction.iono_delay_l1_m == 0.0


def test_tropo_delay_grows_toward_horizon() -> None:
    corrector = AtmosphereCorrector(SolverConfig(min_sv_elev_deg=10.0))
    delays = [corrector.correct(_candidate(elev_deg=elev), RX).tropo_delay_m for elev in (80.0, 45.0, 15.0)]
    assert delays[0] < delays[1] < delays[2]
    assert 2.0 < delays[0] < 3.0
