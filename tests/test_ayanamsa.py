"""
Sidereal offsets: predefined epoch, star and galactic modes, user modes,
and the mean / true variants.
"""

import math

import erfa
import pytest

from ephemcore.core.ayanamsa import (
    PREDEFINED,
    AyanamsaKind,
    SiderealConfig,
    ayanamsa_name,
    definition_for,
    general_precession,
    mean_ayanamsa,
    reference_epoch,
    true_ayanamsa,
)
from ephemcore.core.constants import (
    J1900,
    J2000,
    NSIDM_PREDEF,
    SIDM_USER,
    SiderealBit,
    SiderealMode,
)
from ephemcore.core.errors import UsageError

# =============================================================================
# Tables
# =============================================================================

class TestTables:
    def test_every_predefined_mode_has_a_definition(self):
        assert sorted(PREDEFINED) == list(range(NSIDM_PREDEF))

    def test_names(self):
        assert ayanamsa_name(SiderealMode.FAGAN_BRADLEY) == "Fagan/Bradley"
        assert ayanamsa_name(SiderealMode.LAHIRI) == "Lahiri"
        assert ayanamsa_name(SIDM_USER) == "User-defined"

    def test_unknown_mode(self):
        with pytest.raises(UsageError):
            definition_for(99)
        with pytest.raises(UsageError):
            mean_ayanamsa(J2000, SiderealConfig(mode=47))

# =============================================================================
# Values
# =============================================================================

class TestValues:
    def test_general_precession(self):
        value, rate = general_precession(J2000)
        assert value == 0.0
        assert rate * 36525.0 * 3600.0 == pytest.approx(5028.796195)
        century, _ = general_precession(J2000 + 36525.0)
        assert century * 3600.0 == pytest.approx(5029.9, abs=0.1)

    def test_epoch_mode_at_j2000(self):
        value, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.LAHIRI))
        assert value == pytest.approx(23.857092)

    def test_epoch_mode_precesses(self):
        config = SiderealConfig(mode=SiderealMode.FAGAN_BRADLEY)
        now, rate = mean_ayanamsa(J2000 + 3652.5, config)
        assert now - 24.7403 == pytest.approx(5028.8 / 3600.0 / 10.0, rel=1e-3)
        assert rate == pytest.approx(5028.8 / 3600.0 / 36525.0, rel=1e-3)

    def test_j2000_mode_is_zero_at_j2000(self):
        value, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.J2000))
        assert value == pytest.approx(0.0, abs=1e-12)

    def test_j1900_mode_at_j2000_equals_a_century_of_precession(self):
        value, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.J1900))
        p_1900, _ = general_precession(J1900)
        assert value == pytest.approx(-p_1900)
        assert 1.38 < value < 1.41

    def test_true_citra_puts_spica_at_180(self):
        defn = definition_for(SiderealMode.TRUE_CITRA)
        assert defn.kind is AyanamsaKind.STAR
        value, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.TRUE_CITRA))
        # Spica's mean ecliptic longitude at J2000 is about 203.84
        assert value == pytest.approx(203.84 - 180.0, abs=0.02)

    def test_galactic_centre_mode(self):
        value, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.GALCENT_0SAG))
        # galactic centre near 266.85 ecliptic longitude at J2000
        assert value == pytest.approx(26.85, abs=0.05)

    def test_star_values_lie_in_a_full_circle(self):
        value, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.GALCENT_COCHRANE))
        # galactic centre at 0 Cap puts the offset just short of a full turn
        assert value == pytest.approx(356.85, abs=0.05)

    def test_galactic_equator_iau1958(self):
        value, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.GALEQU_IAU1958))
        # galactic north pole near ecliptic longitude 180.02, node 90 deg further
        assert value == pytest.approx(30.02, abs=0.05)

    def test_galactic_modes_are_distinct(self):
        values = {
            mode: mean_ayanamsa(J2000, SiderealConfig(mode=mode))[0]
            for mode in (SiderealMode.GALEQU_IAU1958, SiderealMode.GALEQU_TRUE, SiderealMode.GALALIGN_MARDYKS)
        }
        assert len({round(v, 6) for v in values.values()}) == 3
        assert values[SiderealMode.GALEQU_TRUE] == pytest.approx(values[SiderealMode.GALEQU_IAU1958], abs=0.2)

    def test_mid_mula_shares_the_true_equator(self):
        true, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.GALEQU_TRUE))
        mula, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.GALEQU_MULA))
        assert true - mula == pytest.approx(6.6666667, abs=1e-9)

    def test_mardyks_halves_node_and_centre(self):
        node, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.GALEQU_TRUE))
        centre, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.GALCENT_0SAG))
        value, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.GALALIGN_MARDYKS))
        assert definition_for(SiderealMode.GALALIGN_MARDYKS).kind is AyanamsaKind.GALACTIC_ALIGNMENT
        assert value == pytest.approx(0.5 * (node + centre), abs=1e-9)

    def test_wilhelm_projects_along_the_hour_circle(self):
        value, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.GALCENT_MULA_WILHELM))
        # right ascension 266.42 meets the ecliptic at longitude 266.71
        assert value == pytest.approx(266.71 - 246.6666667, abs=0.02)
        centre, _ = mean_ayanamsa(J2000, SiderealConfig(mode=SiderealMode.GALCENT_0SAG))
        assert (centre + 240.0 - 246.6666667) - value > 0.1

    def test_true_adds_nutation(self):
        config = SiderealConfig(mode=SiderealMode.LAHIRI)
        jd = 2458874.15
        mean, _ = mean_ayanamsa(jd, config)
        true, _ = true_ayanamsa(jd, config)
        dpsi, _ = erfa.nut06a(jd, 0.0)
        assert true - mean == pytest.approx(math.degrees(dpsi), abs=1e-12)

# =============================================================================
# User modes
# =============================================================================

class TestUserMode:
    def test_value_at_t0(self):
        config = SiderealConfig(mode=SIDM_USER, t0=2415020.0, ayan_t0=22.5)
        value, _ = mean_ayanamsa(2415020.0, config)
        assert value == pytest.approx(22.5)

    def test_ut_reference_epoch_is_shifted_by_delta_t(self):
        config = SiderealConfig(mode=SIDM_USER, bits=SiderealBit.USER_UT, t0=2415020.0, ayan_t0=22.5)
        t0, ayan_t0 = reference_epoch(config, lambda jd: 0.5)
        assert t0 == 2415020.5
        assert ayan_t0 == 22.5
        value, _ = mean_ayanamsa(2415020.0, config, lambda jd: 0.5)
        assert value < 22.5

    def test_full_mode_keeps_bits(self):
        config = SiderealConfig(mode=SIDM_USER, bits=SiderealBit.ECL_T0)
        assert config.full_mode == SIDM_USER | SiderealBit.ECL_T0
