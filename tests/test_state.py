"""
Raw state calculator: body identifiers, lunar nodes and apsides, and data
source resolution.
"""

import math

import numpy as np
import pytest

from ephemcore.core.analytic import ecliptic_to_icrf, mean_lunar_apogee, mean_lunar_node
from ephemcore.core.ayanamsa import general_precession
from ephemcore.core.constants import AST_OFFSET, AUNIT_TO_KM, Body, EphemerisSource
from ephemcore.core.ephemeris_store import ASTEROID_BASE, EphemerisStore
from ephemcore.core.errors import DataUnavailable, UsageError
from ephemcore.core.state import LUNAR_POINTS, StateCalculator, body_code, planet_name, validate_body

from conftest import SCENARIO_JD_ET

def _ecliptic(jd, pos, vel):
    """(lon deg, lat deg, dist AU, dlon deg/day) on the ecliptic of date."""
    rot = ecliptic_to_icrf(jd).T
    x, y, z = rot @ pos
    vx, vy, _ = rot @ vel
    dist = math.sqrt(x * x + y * y + z * z)
    lon = math.degrees(math.atan2(y, x)) % 360.0
    lat = math.degrees(math.asin(z / dist))
    dlon = math.degrees((x * vy - y * vx) / (x * x + y * y))
    return lon, lat, dist, dlon

def _angle_diff(a, b):
    return abs((a - b + 180.0) % 360.0 - 180.0)

def _bisect(fn, lo, hi):
    f_lo = fn(lo)
    for _ in range(60):
        mid = 0.5 * (lo + hi)
        f_mid = fn(mid)
        if (f_mid > 0.0) == (f_lo > 0.0):
            lo, f_lo = mid, f_mid
        else:
            hi = mid
    return 0.5 * (lo + hi)

def _first_sign_change(fn, jd, rising):
    """Bracket the first zero of `fn` after `jd` crossing upward (rising) or downward."""
    prev = fn(jd)
    for k in range(1, 60):
        t = jd + 0.5 * k
        value = fn(t)
        if (prev < 0.0 <= value) if rising else (prev > 0.0 >= value):
            return _bisect(fn, t - 0.5, t)
        prev = value
    raise AssertionError("no sign change within 30 days")

def _ascending_crossing(calculator, source, jd):
    def height(t):
        pos, _ = calculator.moon_geocentric(source, t)
        return float((ecliptic_to_icrf(t).T @ pos)[2])
    return _first_sign_change(height, jd, rising=True)

def _distance_extremum(calculator, source, jd, apogee):
    def radial(t):
        pos, vel = calculator.moon_geocentric(source, t)
        return float(pos @ vel)
    return _first_sign_change(radial, jd, rising=not apogee)

@pytest.fixture
def calculator(tmp_path):
    calc = StateCalculator(EphemerisStore([str(tmp_path)], "de440s.bsp"))
    yield calc
    calc.store.close()

@pytest.fixture
def moseph(calculator):
    return calculator.sources[EphemerisSource.MOSEPH]

# =============================================================================
# Body identifiers
# =============================================================================

class TestBodyIds:
    @pytest.mark.parametrize("ipl", [0, 9, 14, 22, 40, 58, AST_OFFSET + 1, AST_OFFSET + 433])
    def test_accepted(self, ipl):
        assert validate_body(ipl) == ipl

    @pytest.mark.parametrize("ipl", [-1, 23, 39, 59, 999, AST_OFFSET])
    def test_unknown(self, ipl):
        with pytest.raises(UsageError, match="Unknown body"):
            validate_body(ipl)

    def test_comets_and_planetary_moons(self):
        with pytest.raises(UsageError, match="Comets"):
            validate_body(1500)
        with pytest.raises(UsageError, match="Planetary moons"):
            validate_body(9599)

    def test_non_integer(self):
        with pytest.raises(UsageError):
            validate_body(True)
        with pytest.raises(UsageError):
            validate_body(1.0)

    def test_codes(self):
        assert body_code(Body.SUN) == 10
        assert body_code(Body.EARTH) == 399
        assert body_code(Body.CERES) == ASTEROID_BASE + 1
        assert body_code(AST_OFFSET + 433) == ASTEROID_BASE + 433
        assert body_code(Body.CUPIDO) == 40
        with pytest.raises(UsageError):
            body_code(Body.MEAN_NODE)

    def test_names(self):
        assert planet_name(Body.MOON) == "Moon"
        assert planet_name(Body.MEAN_NODE) == "mean Node"
        assert planet_name(Body.CUPIDO) == "Cupido"
        assert planet_name(AST_OFFSET + 433) == "433"

# =============================================================================
# Lunar points
# =============================================================================

class TestLunarPoints:
    def test_mean_node_matches_series(self, calculator, moseph):
        pos, vel = calculator.lunar_point(moseph, Body.MEAN_NODE, SCENARIO_JD_ET)
        lon, lat, dist, dlon = _ecliptic(SCENARIO_JD_ET, pos, vel)
        (want_lon, _, want_dist), (want_dlon, _, _) = mean_lunar_node(SCENARIO_JD_ET)
        _, precession_rate = general_precession(SCENARIO_JD_ET)
        assert lon == pytest.approx(want_lon, abs=1e-9)
        assert lat == pytest.approx(0.0, abs=1e-9)
        assert dist == pytest.approx(want_dist)
        # the frozen frame of date lags the moving one by the precession rate
        assert dlon == pytest.approx(want_dlon - precession_rate, abs=2e-6)
        assert want_dlon == pytest.approx(-0.053, abs=0.001)

    def test_true_node_oscillates_around_mean(self, calculator, moseph):
        pos, vel = calculator.lunar_point(moseph, Body.TRUE_NODE, SCENARIO_JD_ET)
        lon, lat, _, dlon = _ecliptic(SCENARIO_JD_ET, pos, vel)
        (mean_lon, _, _), _ = mean_lunar_node(SCENARIO_JD_ET)
        assert _angle_diff(lon, mean_lon) < 3.0
        assert lat == pytest.approx(0.0, abs=1e-9)
        assert abs(dlon) < 0.5

    def test_true_node_is_where_the_moon_crosses_the_ecliptic(self, calculator, moseph):
        jd = _ascending_crossing(calculator, moseph, SCENARIO_JD_ET)
        moon_pos, _ = calculator.moon_geocentric(moseph, jd)
        node_pos, _ = calculator.lunar_point(moseph, Body.TRUE_NODE, jd)
        moon = _ecliptic(jd, moon_pos, np.zeros(3))
        node = _ecliptic(jd, node_pos, np.zeros(3))
        assert _angle_diff(node[0], moon[0]) < 1e-6
        assert node[2] == pytest.approx(moon[2], rel=1e-6)

    def test_osculating_apogee_distance(self, calculator, moseph):
        pos, _ = calculator.lunar_point(moseph, Body.OSCU_APOG, SCENARIO_JD_ET)
        assert 370000.0 < np.linalg.norm(pos) * AUNIT_TO_KM < 430000.0

    def test_interpolated_apsides(self, calculator, moseph):
        apog, apog_vel = calculator.lunar_point(moseph, Body.INTP_APOG, SCENARIO_JD_ET)
        perg, _ = calculator.lunar_point(moseph, Body.INTP_PERG, SCENARIO_JD_ET)
        lon, _, _, dlon = _ecliptic(SCENARIO_JD_ET, apog, apog_vel)
        (mean_lon, _, _), _ = mean_lunar_apogee(SCENARIO_JD_ET)
        assert _angle_diff(lon, mean_lon) < 20.0
        assert abs(dlon) < 2.0
        assert 395000.0 < np.linalg.norm(apog) * AUNIT_TO_KM < 415000.0
        assert 345000.0 < np.linalg.norm(perg) * AUNIT_TO_KM < 380000.0

    @pytest.mark.parametrize("ipl, apogee", [(Body.INTP_APOG, True), (Body.INTP_PERG, False)])
    def test_interpolated_apsis_meets_the_moon_at_its_extremum(self, calculator, moseph, ipl, apogee):
        jd = _distance_extremum(calculator, moseph, SCENARIO_JD_ET, apogee)
        moon_pos, _ = calculator.moon_geocentric(moseph, jd)
        apsis_pos, _ = calculator.lunar_point(moseph, ipl, jd)
        moon = _ecliptic(jd, moon_pos, np.zeros(3))
        apsis = _ecliptic(jd, apsis_pos, np.zeros(3))
        assert _angle_diff(apsis[0], moon[0]) < 4.0
        gap_km = (apsis[2] - moon[2]) * AUNIT_TO_KM
        if apogee:
            assert -1e-6 < gap_km < 100.0
        else:
            assert -100.0 < gap_km < 1e-6

    @pytest.mark.parametrize("ipl", sorted(LUNAR_POINTS))
    def test_speeds_are_derivatives_of_positions(self, calculator, moseph, ipl):
        h = 0.01
        _, vel = calculator.lunar_point(moseph, ipl, SCENARIO_JD_ET)
        ahead, _ = calculator.lunar_point(moseph, ipl, SCENARIO_JD_ET + h)
        behind, _ = calculator.lunar_point(moseph, ipl, SCENARIO_JD_ET - h)
        np.testing.assert_allclose(vel, (ahead - behind) / (2 * h), atol=1e-4 * np.linalg.norm(vel))

    def test_lunar_points_are_geocentric(self, calculator, moseph):
        raw = calculator.barycentric(moseph, Body.MEAN_APOG, SCENARIO_JD_ET)
        assert raw.geocentric
        assert not calculator.barycentric(moseph, Body.MARS, SCENARIO_JD_ET).geocentric

    def test_not_a_lunar_point(self, calculator, moseph):
        with pytest.raises(UsageError):
            calculator.lunar_point(moseph, Body.MARS, SCENARIO_JD_ET)

# =============================================================================
# Source resolution
# =============================================================================

class TestResolve:
    def test_falls_back_to_analytic(self, calculator):
        def run(source):
            return calculator.barycentric(source, Body.SUN, SCENARIO_JD_ET)

        raw, resolution = calculator.resolve(EphemerisSource.SWIEPH, run)
        assert resolution.actual == EphemerisSource.MOSEPH
        assert resolution.substituted
        assert "SWIEPH" in resolution.reason
        assert np.linalg.norm(raw.pos) < 0.02

    def test_requested_source_is_used_when_available(self, calculator):
        def run(source):
            return calculator.barycentric(source, Body.MARS, SCENARIO_JD_ET)

        _, resolution = calculator.resolve(EphemerisSource.MOSEPH, run)
        assert resolution.actual == EphemerisSource.MOSEPH
        assert not resolution.substituted
        assert resolution.reason == ""

    def test_exhausted_chain_raises(self, calculator):
        def run(source):
            return calculator.barycentric(source, Body.CERES, SCENARIO_JD_ET)

        with pytest.raises(DataUnavailable, match="MOSEPH"):
            calculator.resolve(EphemerisSource.JPLEPH, run)

    def test_packed_files_are_preferred(self, ephe_dir):
        calc = StateCalculator(EphemerisStore([ephe_dir], "de440s.bsp"))
        try:
            def run(source):
                return calc.barycentric(source, Body.CERES, SCENARIO_JD_ET)

            _, resolution = calc.resolve(EphemerisSource.SWIEPH, run)
            assert resolution.actual == EphemerisSource.SWIEPH
        finally:
            calc.store.close()
