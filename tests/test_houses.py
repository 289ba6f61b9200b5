"""
House cusps and angles from ARMC, latitude and obliquity.
"""

import math

import pytest

from ephemcore.core.constants import HouseAngle
from ephemcore.core.errors import PolarDegeneracyError, UsageError
from ephemcore.core.houses import (
    HOUSE_SYSTEMS,
    SIDEREAL_RATE,
    house_name,
    house_speeds,
    houses_armc,
    normalize_hsys,
)

EPS = 23.4367

def _gap(a, b):
    return (b - a) % 360.0

def _assert_increasing(cusps):
    for k in range(12):
        gap = _gap(cusps[k], cusps[(k + 1) % 12])
        assert 0.0 < gap < 180.0, f"cusp {k + 1} -> {k + 2}: {gap}"

# =============================================================================
# Angles
# =============================================================================

class TestAngles:
    def test_equator_at_armc_zero(self):
        result = houses_armc(0.0, 0.0, EPS, "O")
        assert result.angles[HouseAngle.MC] == pytest.approx(0.0, abs=1e-9)
        assert result.angles[HouseAngle.ASC] == pytest.approx(90.0, abs=1e-9)
        assert result.angles[HouseAngle.ARMC] == 0.0

    def test_mc_follows_armc(self):
        result = houses_armc(90.0, 45.0, EPS, "O")
        assert result.angles[HouseAngle.MC] == pytest.approx(90.0, abs=1e-9)

    def test_ascendant_is_east_of_mc(self):
        result = houses_armc(123.4, 51.5, EPS, "P")
        gap = _gap(result.angles[HouseAngle.MC], result.angles[HouseAngle.ASC])
        assert 0.0 < gap < 180.0

    def test_ten_angle_slots(self):
        result = houses_armc(200.0, -33.9, EPS, "R")
        assert len(result.angles) == 10
        assert result.angles[8] == result.angles[9] == 0.0

    @pytest.mark.parametrize("armc, lat", [(37.0, 0.5), (123.4, 0.5), (200.0, -10.0), (300.0, 23.0)])
    def test_vertex_is_west_of_mc(self, armc, lat):
        result = houses_armc(armc, lat, EPS, "P")
        gap = _gap(result.angles[HouseAngle.VERTEX], result.angles[HouseAngle.MC])
        assert 0.0 < gap < 180.0

    @pytest.mark.parametrize("armc, want", [(37.0, 1.016), (123.4, 359.30)])
    def test_vertex_near_equator(self, armc, want):
        result = houses_armc(armc, 0.5, 23.44, "P")
        vertex = result.angles[HouseAngle.VERTEX]
        assert abs((vertex - want + 180.0) % 360.0 - 180.0) < 0.01

# =============================================================================
# Cusp systems
# =============================================================================

class TestSystems:
    @pytest.mark.parametrize("hsys", sorted(HOUSE_SYSTEMS))
    def test_mid_latitude_cusps_increase(self, hsys):
        result = houses_armc(217.3, 37.0, EPS, hsys)
        assert len(result.cusps) == 12
        _assert_increasing(result.cusps)
        for k in range(6):
            assert _gap(result.cusps[k], result.cusps[k + 6]) == pytest.approx(180.0, abs=1e-9)

    @pytest.mark.parametrize("hsys", ["P", "K", "O", "R", "C", "B", "T", "A"])
    def test_quadrant_systems_start_at_ascendant(self, hsys):
        result = houses_armc(217.3, 37.0, EPS, hsys)
        assert result.cusps[0] == pytest.approx(result.angles[HouseAngle.ASC], abs=1e-9)

    @pytest.mark.parametrize("hsys", ["P", "K", "O", "R", "C", "B", "T"])
    def test_quadrant_systems_put_mc_on_cusp_ten(self, hsys):
        result = houses_armc(12.0, 48.0, EPS, hsys)
        assert result.cusps[9] == pytest.approx(result.angles[HouseAngle.MC], abs=1e-9)

    def test_systems_agree_on_the_equator(self):
        reference = houses_armc(40.0, 0.0, EPS, "X").cusps
        for hsys in ("P", "K", "R", "C", "T", "B"):
            for got, want in zip(houses_armc(40.0, 0.0, EPS, hsys).cusps, reference):
                assert got == pytest.approx(want, abs=1e-7), hsys

    def test_equal_and_whole_sign(self):
        result = houses_armc(300.0, 40.0, EPS, "E")
        asc = result.angles[HouseAngle.ASC]
        for k, cusp in enumerate(result.cusps):
            assert cusp == pytest.approx((asc + 30.0 * k) % 360.0, abs=1e-9)

        whole = houses_armc(300.0, 40.0, EPS, "W")
        assert whole.cusps[0] == math.floor(asc / 30.0) * 30.0

    def test_aries_and_vehlow(self):
        aries = houses_armc(10.0, 10.0, EPS, "N")
        assert aries.cusps == tuple(30.0 * k for k in range(12))
        vehlow = houses_armc(10.0, 10.0, EPS, "V")
        assert _gap(vehlow.cusps[0], vehlow.angles[HouseAngle.ASC]) == pytest.approx(15.0)

    def test_porphyry_trisects_the_quadrant(self):
        result = houses_armc(75.0, 52.0, EPS, "O")
        mc, asc = result.angles[HouseAngle.MC], result.angles[HouseAngle.ASC]
        third = _gap(mc, asc) / 3.0
        assert _gap(mc, result.cusps[10]) == pytest.approx(third)
        assert _gap(result.cusps[10], result.cusps[11]) == pytest.approx(third)

    def test_placidus_high_latitude_converges(self):
        result = houses_armc(150.0, 60.0, EPS, "P")
        _assert_increasing(result.cusps)

# =============================================================================
# Degeneracy and validation
# =============================================================================

class TestDegeneracy:
    @pytest.mark.parametrize("hsys", sorted(HOUSE_SYSTEMS))
    def test_pole_fails_for_every_system(self, hsys):
        with pytest.raises(PolarDegeneracyError):
            houses_armc(0.0, 90.0, EPS, hsys)
        with pytest.raises(PolarDegeneracyError):
            houses_armc(0.0, -90.0, EPS, hsys)

    @pytest.mark.parametrize("hsys", ["P", "K"])
    def test_semi_arc_systems_fail_in_polar_circle(self, hsys):
        with pytest.raises(PolarDegeneracyError, match="polar circle"):
            houses_armc(100.0, 70.0, EPS, hsys)

    @pytest.mark.parametrize("hsys", ["O", "R", "C", "E", "W", "M", "X"])
    def test_other_systems_work_in_polar_circle(self, hsys):
        result = houses_armc(100.0, 70.0, EPS, hsys)
        assert all(math.isfinite(c) and 0.0 <= c < 360.0 for c in result.cusps)

    def test_polar_error_is_a_usage_error(self):
        with pytest.raises(UsageError) as info:
            houses_armc(0.0, 89.9999999999, EPS, "P")
        assert info.value.error_class.value == "geometric_degeneracy"

    def test_latitude_out_of_range(self):
        with pytest.raises(UsageError) as info:
            houses_armc(0.0, 91.0, EPS, "O")
        assert type(info.value) is UsageError

    def test_unknown_system(self):
        with pytest.raises(UsageError):
            houses_armc(0.0, 45.0, EPS, "Z")
        with pytest.raises(UsageError):
            normalize_hsys("PP")

    def test_code_forms(self):
        assert normalize_hsys("p") == "P"
        assert normalize_hsys(ord("K")) == "K"
        assert house_name("P") == "Placidus"
        assert house_name("R") == "Regiomontanus"

# =============================================================================
# Speeds
# =============================================================================

class TestSpeeds:
    def test_armc_speed_is_sidereal_rate(self):
        speeds = house_speeds(217.3, 37.0, EPS, "P")
        assert speeds.angles[HouseAngle.ARMC] == pytest.approx(SIDEREAL_RATE, rel=1e-9)

    def test_cusp_speeds_are_positive_and_plausible(self):
        speeds = house_speeds(217.3, 37.0, EPS, "P")
        for value in speeds.cusps:
            assert 100.0 < value < 1200.0
