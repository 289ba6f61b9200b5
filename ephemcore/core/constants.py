# ephemcore/core/constants.py
# -----------------------------------------------------------------------------
# Wire-compatible constants for the ephemeris engine
#
# Every numeric value here is part of the external contract: body identifiers,
# option bitmasks, sidereal modes, tidal accelerations and house angle indexes
# keep the exact values callers already persist and exchange.
#
# Option bitmasks are split into two typed enumerations (CalcFlag for position
# calls, OrbitalElementsFlag for orbital-element calls) because the raw values
# overlap between the two operation families.
# -----------------------------------------------------------------------------

from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import Dict

__all__ = [
    "OK", "ERR", "JUL_CAL", "GREG_CAL",
    "Body", "CalcFlag", "OrbitalElementsFlag", "SiderealMode", "SiderealBit",
    "EphemerisSource", "HouseAngle",
    "SOURCE_MASK", "CENTER_MASK",
    "FICT_OFFSET", "FICT_MAX", "COMET_OFFSET", "PLMOON_OFFSET", "AST_OFFSET",
    "SIDM_USER", "NSIDM_PREDEF",
    "TIDAL_AUTOMATIC", "TIDAL_DEFAULT", "TIDAL_MOSEPH", "TIDAL_SWIEPH", "TIDAL_JPLEPH",
    "TIDAL_BY_DENUM", "DELTAT_AUTOMATIC",
    "FNAME_DE431", "FNAME_DFT", "DE_NUMBER",
    "AUNIT_TO_KM", "AUNIT_TO_LIGHTYEAR", "AUNIT_TO_PARSEC",
    "J2000", "J1900", "B1950", "DAYS_PER_CENTURY", "SPEED_OF_LIGHT_AU_DAY",
]

# ───────────────────────────── Status & Calendars ─────────────────────────────

OK = 0
ERR = -1

JUL_CAL = 0
GREG_CAL = 1

# ───────────────────────────── Bodies ─────────────────────────────

class Body(IntEnum):
    SUN = 0
    MOON = 1
    MERCURY = 2
    VENUS = 3
    MARS = 4
    JUPITER = 5
    SATURN = 6
    URANUS = 7
    NEPTUNE = 8
    PLUTO = 9
    MEAN_NODE = 10
    TRUE_NODE = 11
    MEAN_APOG = 12
    OSCU_APOG = 13
    EARTH = 14
    CHIRON = 15
    PHOLUS = 16
    CERES = 17
    PALLAS = 18
    JUNO = 19
    VESTA = 20
    INTP_APOG = 21
    INTP_PERG = 22
    NPLANETS = 23

    # Uranian and other hypothetical bodies
    CUPIDO = 40
    HADES = 41
    ZEUS = 42
    KRONOS = 43
    APOLLON = 44
    ADMETOS = 45
    VULKANUS = 46
    POSEIDON = 47
    ISIS = 48
    NIBIRU = 49
    HARRINGTON = 50
    NEPTUNE_LEVERRIER = 51
    NEPTUNE_ADAMS = 52
    PLUTO_LOWELL = 53
    PLUTO_PICKERING = 54
    VULCAN = 55
    WHITE_MOON = 56
    PROSERPINA = 57
    WALDEMATH = 58

FICT_OFFSET = 40
FICT_MAX = 58
COMET_OFFSET = 1000
PLMOON_OFFSET = 9000
AST_OFFSET = 10000

# ───────────────────────────── Ephemeris Sources ─────────────────────────────

class EphemerisSource(IntFlag):
    JPLEPH = 1
    SWIEPH = 2
    MOSEPH = 4

SOURCE_MASK = 7

# ───────────────────────────── Position Options ─────────────────────────────

class CalcFlag(IntFlag):
    """Option bits for position calls."""
    JPLEPH = 1
    SWIEPH = 2
    MOSEPH = 4
    HELCTR = 8
    TRUEPOS = 16
    J2000 = 32
    NONUT = 64
    SPEED3 = 128
    SPEED = 256
    NOGDEFL = 512
    NOABERR = 1024
    ASTROMETRIC = NOABERR | NOGDEFL
    EQUATORIAL = 2048
    XYZ = 4096
    RADIANS = 8192
    BARYCTR = 16384
    # Same value as OrbitalElementsFlag.ORBEL_AA; the two never share a call.
    TOPOCTR = 32768
    SIDEREAL = 65536
    ICRS = 131072
    # DPSIDEPS_1980 and JPLHOR are one bit on the wire. Neither is implemented,
    # so the bit is never reported back as honoured.
    DPSIDEPS_1980 = 262144
    JPLHOR = 262144
    JPLHOR_APPROX = 524288
    CENTER_BODY = 1048576

CENTER_MASK = CalcFlag.HELCTR | CalcFlag.BARYCTR | CalcFlag.TOPOCTR

class OrbitalElementsFlag(IntFlag):
    """Option bits for orbital-element calls."""
    JPLEPH = 1
    SWIEPH = 2
    MOSEPH = 4
    J2000 = 32
    # Collides with CalcFlag.TOPOCTR (32768); kept for wire compatibility.
    ORBEL_AA = 32768

# ───────────────────────────── Sidereal Modes ─────────────────────────────

class SiderealMode(IntEnum):
    FAGAN_BRADLEY = 0
    LAHIRI = 1
    DELUCE = 2
    RAMAN = 3
    USHASHASHI = 4
    KRISHNAMURTI = 5
    DJWHAL_KHUL = 6
    YUKTESHWAR = 7
    JN_BHASIN = 8
    BABYL_KUGLER1 = 9
    BABYL_KUGLER2 = 10
    BABYL_KUGLER3 = 11
    BABYL_HUBER = 12
    BABYL_ETPSC = 13
    ALDEBARAN_15TAU = 14
    HIPPARCHOS = 15
    SASSANIAN = 16
    GALCENT_0SAG = 17
    J2000 = 18
    J1900 = 19
    B1950 = 20
    SURYASIDDHANTA = 21
    SURYASIDDHANTA_MSUN = 22
    ARYABHATA = 23
    ARYABHATA_MSUN = 24
    SS_REVATI = 25
    SS_CITRA = 26
    TRUE_CITRA = 27
    TRUE_REVATI = 28
    TRUE_PUSHYA = 29
    GALCENT_RGILBRAND = 30
    GALEQU_IAU1958 = 31
    GALEQU_TRUE = 32
    GALEQU_MULA = 33
    GALALIGN_MARDYKS = 34
    TRUE_MULA = 35
    GALCENT_MULA_WILHELM = 36
    ARYABHATA_522 = 37
    BABYL_BRITTON = 38
    TRUE_SHEORAN = 39
    GALCENT_COCHRANE = 40
    GALEQU_FIORENZA = 41
    VALENS_MOON = 42
    LAHIRI_1940 = 43
    LAHIRI_VP285 = 44
    KRISHNAMURTI_VP291 = 45
    LAHIRI_ICRC = 46
    USER = 255

SIDM_USER = 255
NSIDM_PREDEF = 47

class SiderealBit(IntFlag):
    """Option bits OR-ed into the sidereal mode by set_sid_mode."""
    ECL_T0 = 256
    SSY_PLANE = 512
    USER_UT = 1024
    ECL_DATE = 2048
    NO_PREC_OFFSET = 4096
    PREC_ORIG = 8192

# ───────────────────────────── Delta-T & Tidal Acceleration ─────────────────────────────

TIDAL_DE200 = -23.8946
TIDAL_DE403 = -25.580
TIDAL_DE404 = -25.580
TIDAL_DE405 = -25.826
TIDAL_DE406 = -25.826
TIDAL_DE421 = -25.85
TIDAL_DE422 = -25.85
TIDAL_DE430 = -25.82
TIDAL_DE431 = -25.80
TIDAL_26 = -26.0
TIDAL_STEPHENSON_2016 = -25.85
TIDAL_DEFAULT = TIDAL_DE431
TIDAL_AUTOMATIC = 999999
TIDAL_MOSEPH = TIDAL_DE404
TIDAL_SWIEPH = TIDAL_DEFAULT
TIDAL_JPLEPH = TIDAL_DEFAULT

TIDAL_BY_DENUM: Dict[int, float] = {
    200: TIDAL_DE200,
    403: TIDAL_DE403,
    404: TIDAL_DE404,
    405: TIDAL_DE405,
    406: TIDAL_DE406,
    421: TIDAL_DE421,
    422: TIDAL_DE422,
    430: TIDAL_DE430,
    431: TIDAL_DE431,
    440: TIDAL_DE431,
    441: TIDAL_DE431,
}

DELTAT_AUTOMATIC = 1e-10

# ───────────────────────────── Files ─────────────────────────────

FNAME_DE431 = "de431.eph"
FNAME_DFT = FNAME_DE431
DE_NUMBER = 431

# ───────────────────────────── Units & Epochs ─────────────────────────────

AUNIT_TO_KM = 149597870.7
AUNIT_TO_LIGHTYEAR = 1.0 / 63241.07708426628
AUNIT_TO_PARSEC = 1.0 / 206264.8062470964

J2000 = 2451545.0
J1900 = 2415020.0
B1950 = 2433282.42345905
DAYS_PER_CENTURY = 36525.0
SPEED_OF_LIGHT_AU_DAY = 173.1446326742403

# ───────────────────────────── Houses ─────────────────────────────

class HouseAngle(IntEnum):
    ASC = 0
    MC = 1
    ARMC = 2
    VERTEX = 3
    EQUASC = 4
    COASC1 = 5
    COASC2 = 6
    POLASC = 7
    NASCMC = 8
