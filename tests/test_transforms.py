"""
Transform pipeline: option parsing, honoured flags, frames, centres,
sidereal offsets and speeds.
"""

import math

import erfa
import numpy as np
import pytest

from ephemcore.core.ayanamsa import general_precession, true_ayanamsa
from ephemcore.core.constants import AUNIT_TO_KM, Body, CalcFlag, EphemerisSource
from ephemcore.core.errors import UsageError
from ephemcore.core.transforms import Pipeline, parse_flags

from conftest import SCENARIO_JD_ET

SW = CalcFlag.SWIEPH

@pytest.fixture
def pipeline(engine):
    return Pipeline(engine.context)

def _lon_diff(a, b):
    return (a - b + 180.0) % 360.0 - 180.0

# =============================================================================
# Flag parsing
# =============================================================================

class TestParseFlags:
    @pytest.mark.parametrize("flags", [
        CalcFlag.SWIEPH | CalcFlag.MOSEPH,
        CalcFlag.JPLEPH | CalcFlag.SWIEPH | CalcFlag.MOSEPH,
        CalcFlag.HELCTR | CalcFlag.BARYCTR,
        CalcFlag.TOPOCTR | CalcFlag.HELCTR,
        CalcFlag.SPEED | CalcFlag.SPEED3,
        -1,
    ])
    def test_conflicts(self, flags):
        with pytest.raises(UsageError):
            parse_flags(flags)

    def test_default_source(self):
        request = parse_flags(CalcFlag.SPEED)
        assert request.source == EphemerisSource.SWIEPH
        assert not request.explicit_source
        assert request.speed

    def test_explicit_source(self):
        request = parse_flags(CalcFlag.MOSEPH)
        assert request.source == EphemerisSource.MOSEPH
        assert request.explicit_source
        assert not request.speed

    def test_speed3_requests_speed(self):
        assert parse_flags(SW | CalcFlag.SPEED3).speed

# =============================================================================
# Honoured flags
# =============================================================================

class TestHonouredFlags:
    def test_speed3_is_reported_as_speed(self, pipeline):
        result = pipeline.compute(SCENARIO_JD_ET, Body.MARS, SW | CalcFlag.SPEED3)
        assert result.flag & CalcFlag.SPEED
        assert not result.flag & CalcFlag.SPEED3
        assert result.values[3] != 0.0

    def test_unimplemented_bits_are_dropped(self, pipeline):
        result = pipeline.compute(SCENARIO_JD_ET, Body.MARS, SW | CalcFlag.JPLHOR | CalcFlag.CENTER_BODY)
        assert result.flag == SW

    def test_equatorial_wins_over_sidereal(self, pipeline):
        both = pipeline.compute(SCENARIO_JD_ET, Body.MARS, SW | CalcFlag.EQUATORIAL | CalcFlag.SIDEREAL)
        plain = pipeline.compute(SCENARIO_JD_ET, Body.MARS, SW | CalcFlag.EQUATORIAL)
        assert both.flag == SW | CalcFlag.EQUATORIAL
        assert both.values == plain.values

    def test_lunar_points_drop_centre_options(self, pipeline):
        result = pipeline.compute(SCENARIO_JD_ET, Body.MEAN_NODE, SW | CalcFlag.HELCTR)
        assert not result.flag & CalcFlag.HELCTR

    def test_source_bits_show_fallback(self, bare_engine):
        result = Pipeline(bare_engine.context).compute(SCENARIO_JD_ET, Body.MARS, SW)
        assert result.flag == CalcFlag.MOSEPH
        assert result.resolution.substituted

    def test_repeated_calls_agree(self, pipeline):
        flags = SW | CalcFlag.SPEED
        first = pipeline.compute(SCENARIO_JD_ET, Body.VENUS, flags)
        second = pipeline.compute(SCENARIO_JD_ET, Body.VENUS, flags)
        assert first == second

# =============================================================================
# Representation and frames
# =============================================================================

class TestRepresentation:
    def test_radians(self, pipeline):
        deg = pipeline.compute(SCENARIO_JD_ET, Body.JUPITER, SW | CalcFlag.SPEED).values
        rad = pipeline.compute(SCENARIO_JD_ET, Body.JUPITER, SW | CalcFlag.SPEED | CalcFlag.RADIANS).values
        assert 0.0 <= rad[0] < 2.0 * math.pi
        for k in (0, 1, 3, 4):
            assert rad[k] == pytest.approx(math.radians(deg[k]), rel=1e-12, abs=1e-15)
        assert rad[2] == deg[2]

    def test_xyz_norm_is_distance(self, pipeline):
        polar = pipeline.compute(SCENARIO_JD_ET, Body.SATURN, SW).values
        xyz = pipeline.compute(SCENARIO_JD_ET, Body.SATURN, SW | CalcFlag.XYZ).values
        assert np.linalg.norm(xyz[:3]) == pytest.approx(polar[2], rel=1e-12)
        assert math.degrees(math.atan2(xyz[1], xyz[0])) % 360.0 == pytest.approx(polar[0], abs=1e-9)

    def test_sun_in_late_january(self, pipeline):
        ecl = pipeline.compute(SCENARIO_JD_ET, Body.SUN, SW).values
        equ = pipeline.compute(SCENARIO_JD_ET, Body.SUN, SW | CalcFlag.EQUATORIAL).values
        assert 304.5 < ecl[0] < 306.5
        assert abs(ecl[1]) < 0.01
        assert equ[1] == pytest.approx(-18.9, abs=0.5)

    def test_equatorial_and_ecliptic_agree(self, pipeline):
        ecl = pipeline.compute(SCENARIO_JD_ET, Body.MARS, SW).values
        equ = pipeline.compute(SCENARIO_JD_ET, Body.MARS, SW | CalcFlag.EQUATORIAL).values
        _, deps = erfa.nut06a(SCENARIO_JD_ET, 0.0)
        eps = erfa.obl06(SCENARIO_JD_ET, 0.0) + deps
        lon, lat = math.radians(ecl[0]), math.radians(ecl[1])
        sin_dec = math.sin(lat) * math.cos(eps) + math.cos(lat) * math.sin(eps) * math.sin(lon)
        assert math.sin(math.radians(equ[1])) == pytest.approx(sin_dec, abs=1e-12)
        assert equ[2] == pytest.approx(ecl[2], rel=1e-12)

    def test_j2000_differs_by_precession(self, pipeline):
        of_date = pipeline.compute(SCENARIO_JD_ET, Body.MARS, SW | CalcFlag.NONUT).values
        j2000 = pipeline.compute(SCENARIO_JD_ET, Body.MARS, SW | CalcFlag.J2000).values
        precession, _ = general_precession(SCENARIO_JD_ET)
        assert _lon_diff(of_date[0], j2000[0]) == pytest.approx(precession, abs=0.01)

    def test_sidereal_subtracts_true_ayanamsa(self, engine, pipeline):
        tropical = pipeline.compute(SCENARIO_JD_ET, Body.MARS, SW).values
        sidereal = pipeline.compute(SCENARIO_JD_ET, Body.MARS, SW | CalcFlag.SIDEREAL).values
        ayanamsa, _ = true_ayanamsa(SCENARIO_JD_ET, engine.context.sidereal)
        assert _lon_diff(tropical[0], sidereal[0]) == pytest.approx(ayanamsa, abs=1e-9)
        assert sidereal[1] == pytest.approx(tropical[1], abs=1e-12)

# =============================================================================
# Centres
# =============================================================================

class TestCentres:
    def test_heliocentric_sun_is_zero(self, pipeline):
        result = pipeline.compute(SCENARIO_JD_ET, Body.SUN, SW | CalcFlag.HELCTR | CalcFlag.SPEED)
        assert result.values == (0.0,) * 6

    def test_geocentric_earth_is_zero(self, pipeline):
        result = pipeline.compute(SCENARIO_JD_ET, Body.EARTH, SW | CalcFlag.SPEED)
        assert result.values == (0.0,) * 6

    def test_heliocentric_earth_distance(self, pipeline):
        result = pipeline.compute(SCENARIO_JD_ET, Body.EARTH, SW | CalcFlag.HELCTR)
        assert result.values[2] == pytest.approx(0.9846, abs=0.002)

    def test_topocentric_needs_observer(self, pipeline):
        with pytest.raises(UsageError, match="set_topo"):
            pipeline.compute(SCENARIO_JD_ET, Body.MOON, SW | CalcFlag.TOPOCTR)

    def test_topocentric_moon_shows_parallax(self, engine, pipeline):
        engine.set_topo(-122.4, 37.8, 50.0)
        geo = pipeline.compute(SCENARIO_JD_ET, Body.MOON, SW).values
        topo = pipeline.compute(SCENARIO_JD_ET, Body.MOON, SW | CalcFlag.TOPOCTR).values
        shift = math.hypot(_lon_diff(geo[0], topo[0]), geo[1] - topo[1])
        assert 0.001 < shift < 1.1
        assert abs(geo[2] - topo[2]) * AUNIT_TO_KM < 6400.0

# =============================================================================
# Speeds
# =============================================================================

class TestSpeeds:
    def test_speeds_match_finite_difference(self, pipeline):
        flags = SW | CalcFlag.SPEED | CalcFlag.TRUEPOS
        h = 0.01
        now = pipeline.compute(SCENARIO_JD_ET, Body.MARS, flags).values
        ahead = pipeline.compute(SCENARIO_JD_ET + h, Body.MARS, flags).values
        behind = pipeline.compute(SCENARIO_JD_ET - h, Body.MARS, flags).values
        assert now[5] == pytest.approx((ahead[2] - behind[2]) / (2 * h), rel=1e-6, abs=1e-10)
        assert now[3] == pytest.approx(_lon_diff(ahead[0], behind[0]) / (2 * h), rel=1e-6, abs=1e-9)
        assert now[4] == pytest.approx((ahead[1] - behind[1]) / (2 * h), rel=1e-5, abs=1e-9)

    def test_no_speed_means_zero_rates(self, pipeline):
        values = pipeline.compute(SCENARIO_JD_ET, Body.MARS, SW).values
        assert values[3:] == (0.0, 0.0, 0.0)

    @pytest.mark.parametrize("ipl", [Body.MOON, Body.MARS, Body.VENUS])
    def test_apparent_speeds_match_finite_difference(self, pipeline, ipl):
        flags = SW | CalcFlag.SPEED
        h = 0.01
        now = pipeline.compute(SCENARIO_JD_ET, ipl, flags).values
        ahead = pipeline.compute(SCENARIO_JD_ET + h, ipl, flags).values
        behind = pipeline.compute(SCENARIO_JD_ET - h, ipl, flags).values
        assert now[5] == pytest.approx((ahead[2] - behind[2]) / (2 * h), rel=1e-6, abs=1e-10)
        assert now[3] == pytest.approx(_lon_diff(ahead[0], behind[0]) / (2 * h), rel=1e-6, abs=1e-5)
        assert now[4] == pytest.approx((ahead[1] - behind[1]) / (2 * h), rel=1e-5, abs=1e-5)

    def test_aberration_leaves_the_distance_rate(self, pipeline):
        apparent = pipeline.compute(SCENARIO_JD_ET, Body.MOON, SW | CalcFlag.SPEED).values
        no_aberr = pipeline.compute(SCENARIO_JD_ET, Body.MOON, SW | CalcFlag.SPEED | CalcFlag.NOABERR).values
        assert apparent[0] != no_aberr[0]
        assert apparent[2] == pytest.approx(no_aberr[2], rel=1e-12)
        assert apparent[5] == pytest.approx(no_aberr[5], rel=1e-6, abs=1e-11)
