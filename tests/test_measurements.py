from __future__ import annotations

import numpy as np
import pytest

from gnss_pvt.carrier import LIGHT_SPEED_MPS, Carrier, iono_scale
from gnss_pvt.meas.combinations import iono_free, iono_free_code, iono_free_noise_factor, iono_free_phase
from gnss_pvt.meas.pseudorange import geometric_range_m, line_of_sight, pseudorange_m
from gnss_pvt.meas.site_displacement import solid_tide_displacement
from gnss_pvt.meas.synthetic import cn0_from_elevation


def test_carrier_labels_and_iono_scale() -> None:
    assert Carrier.from_label("c1") is Carrier.L1
    assert Carrier.from_label("E5a") is Carrier.E5A
    with pytest.raises(ValueError):
        Carrier.from_label("X1")
    assert iono_scale(Carrier.L1.frequency_hz) == pytest.approx(1.0)
    assert iono_scale(Carrier.L2.frequency_hz) == pytest.approx((1575.42 / 1227.60) ** 2)
    assert Carrier.L1.wavelength_m == pytest.approx(0.1903, abs=1e-4)


def test_iono_free_removes_first_order_delay() -> None:
    f1, f2 = Carrier.L1.frequency_hz, Carrier.L2.frequency_hz
    true_range = 21_000_000.0
    iono_l1 = 4.0
    l1 = true_range + iono_l1
    l2 = true_range + iono_l1 * iono_scale(f2)
    assert iono_free(l1, f1, l2, f2) == pytest.approx(true_range, abs=1e-6)
    assert iono_free_noise_factor(f1, f2) == pytest.approx(2.978, abs=1e-3)


def test_sagnac_correction_changes_range() -> None:
    rx = np.array([6_378_137.0, 0.0, 0.0])
    sv = np.array([15_000_000.0, 20_000_000.0, 5_000_000.0])
    rho_rot, unit = line_of_sight(rx, sv)
    rho_plain = geometric_range_m(rx, sv, earth_rotation=False)
    assert np.isclose(np.linalg.norm(unit), 1.0)
    assert 1.0 < abs(rho_rot - rho_plain) < 100.0
    pr = pseudorange_m(rx, 1e-6, sv, -2e-6)
    assert pr == pytest.approx(rho_rot + LIGHT_SPEED_MPS * 3e-6)


def test_cn0_model_increases_with_elevation() -> None:
    assert cn0_from_elevation(0.0) == pytest.approx(25.0)
    assert cn0_from_elevation(90.0) == pytest.approx(47.0)
    assert cn0_from_elevation(15.0) < cn0_from_elevation(45.0)


def test_synthetic_source_observables(make_source) -> None:
    plain = make_source()
    iono = make_source(include_iono=True)
    t = 3_600.0
    plain_cands = {cand.sv_id: cand for cand in plain.get_candidates(t)}
    iono_cands = {cand.sv_id: cand for cand in iono.get_candidates(t)}
    assert plain_cands.keys() == iono_cands.keys()
    assert len(plain_cands) >= 5

    for sv_id, cand in iono_cands.items():
        l1 = cand.observations[Carrier.L1]
        l2 = cand.observations[Carrier.L2]
        ref = plain_cands[sv_id].observations[Carrier.L1]
        assert l2.pseudorange_m - l1.pseudorange_m > 0.0
        assert l1.phase_range_m - l1.pseudorange_m != pytest.approx(0.0)
        assert iono_free_code(l1, l2) == pytest.approx(ref.pseudorange_m, abs=1e-6)
        assert cand.elevation_deg >= 5.0
        assert l1.snr_dbhz == pytest.approx(cn0_from_elevation(cand.elevation_deg))
        assert l1.doppler_hz is not None

    # Integer ambiguities stay fixed from epoch to epoch.
    cand_a = plain.get_candidates(t)[0]
    cand_b = next(c for c in plain.get_candidates(t + 1.0) if c.sv_id == cand_a.sv_id)
    bias_a = iono_free_phase(*cand_a.dual_phase()) - iono_free_code(*cand_a.dual_phase())
    bias_b = iono_free_phase(*cand_b.dual_phase()) - iono_free_code(*cand_b.dual_phase())
    assert bias_a == pytest.approx(bias_b, abs=1e-6)


def test_solid_tide_displacement_is_decimetric(receiver_pos: np.ndarray) -> None:
    displacements = [solid_tide_displacement(t, receiver_pos) for t in np.arange(0.0, 86_400.0, 3_600.0)]
    norms = [float(np.linalg.norm(d)) for d in displacements]
    assert max(norms) < 0.6
    assert max(norms) - min(norms) > 0.01
