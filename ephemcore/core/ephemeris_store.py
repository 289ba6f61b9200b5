# ephemcore/core/ephemeris_store.py
# -----------------------------------------------------------------------------
# Ephemeris data store
#
# Locates, opens, validates and caches ephemeris data, and resolves which data
# source serves a request:
#
#   JPLEPH  external JPL SPK kernel (coverage via jplephem, states via skyfield)
#   SWIEPH  packed Chebyshev files (planet / moon / asteroid families)
#   MOSEPH  the built-in analytic model
#
# Every source exposes `barycentric(code, jd) -> (pos, vel)` in ICRF AU and
# AU/day. Open file handles live in an LRU cache keyed by (source, family) and
# are replaced when an epoch falls outside the cached file's coverage.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import math
import os
import re
import struct
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional, Tuple

import numpy as np
from numpy.polynomial import chebyshev

from .analytic import EMRAT, FICTITIOUS_ELEMENTS, AnalyticModel
from .constants import FICT_MAX, FICT_OFFSET, GREG_CAL, EphemerisSource
from .errors import DataUnavailable, UsageError
from .timescales import revjul

log = logging.getLogger(__name__)

__all__ = [
    "FileMetadata",
    "SourceResolution",
    "PackedEphemerisFile",
    "JplKernelFile",
    "LRUFileCache",
    "EphemerisStore",
    "DataSource",
    "AnalyticSource",
    "PackedSource",
    "JplSource",
    "fallback_chain",
    "packed_file_name",
    "HEADER",
    "ENTRY",
    "MAGIC",
    "FORMAT_VERSION",
    "KNOWN_DENUMS",
]

State = Tuple[np.ndarray, np.ndarray]

# ───────────────────────────── Packed file format ─────────────────────────────

MAGIC = b"EPHPACK\0"
FORMAT_VERSION = 1
HEADER = struct.Struct("<8sHHHHdddd")
ENTRY = struct.Struct("<iiHHIddQ")
KNOWN_DENUMS = frozenset({200, 403, 404, 405, 406, 421, 422, 430, 431, 440, 441})

ASTEROID_BASE = 2000000
MAIN_ASTEROIDS = frozenset({1, 2, 3, 4, 2060, 5145})

FAMILY_PREFIX = {"planet": "sepl", "moon": "semo", "asteroid": "seas"}
FAMILY_IFNO = {"planet": 0, "moon": 1, "asteroid": 2, "numbered": 3, "jpl": 4}
BLOCK_YEARS = 600

class FileMetadata(NamedTuple):
    path: str
    start: float
    end: float
    denum: int

EMPTY_METADATA = FileMetadata("", 0.0, 0.0, 0)

class SourceResolution(NamedTuple):
    requested: EphemerisSource
    actual: EphemerisSource
    reason: str = ""

    @property
    def substituted(self) -> bool:
        return self.requested != self.actual

def fallback_chain(requested: EphemerisSource) -> List[EphemerisSource]:
    order = [EphemerisSource.JPLEPH, EphemerisSource.SWIEPH, EphemerisSource.MOSEPH]
    return order[order.index(requested):]

def packed_file_name(family: str, jd: float) -> str:
    """Relative file name of the packed file holding `family` at `jd`."""
    if family.startswith("asteroid:"):
        number = int(family.split(":", 1)[1])
        return os.path.join(f"ast{number // 1000}", f"se{number:05d}.se1")
    prefix = FAMILY_PREFIX[family]
    year = revjul(jd, GREG_CAL)[0]
    block = math.floor(year / BLOCK_YEARS) * (BLOCK_YEARS // 100)
    if block < 0:
        return f"{prefix}m{-block:02d}.se1"
    return f"{prefix}_{block:02d}.se1"

def _family_ifno(family: str) -> int:
    return FAMILY_IFNO["numbered" if family.startswith("asteroid:") else family]

# ───────────────────────────── Packed file reader ─────────────────────────────

@dataclass(frozen=True)
class _Entry:
    body: int
    center: int
    ncoeff: int
    ncomp: int
    nseg: int
    seg_start: float
    seg_days: float
    data_offset: int

    @property
    def record_bytes(self) -> int:
        return self.ncomp * self.ncoeff * 8

class PackedEphemerisFile:
    """
    Read-only view of one packed Chebyshev file.

    The header and the whole directory are validated on open; coefficient
    records are read on demand.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        try:
            self._fh = open(path, "rb")
        except OSError as e:
            raise DataUnavailable(f"Cannot open ephemeris file {path}: {e}", path=path) from e
        try:
            self._parse()
        except DataUnavailable:
            self._fh.close()
            raise

    def _parse(self) -> None:
        size = os.fstat(self._fh.fileno()).st_size
        raw = self._fh.read(HEADER.size)
        if len(raw) < HEADER.size:
            raise DataUnavailable(f"{self.path}: corrupt or unrecognised (short header)", path=self.path)

        magic, fmt, denum, count, _flags, start, end, emrat, _reserved = HEADER.unpack(raw)
        if magic != MAGIC or fmt != FORMAT_VERSION or denum not in KNOWN_DENUMS:
            raise DataUnavailable(
                f"{self.path}: corrupt or unrecognised (magic={magic!r}, format={fmt}, denum={denum})",
                path=self.path,
            )
        if not start < end:
            raise DataUnavailable(f"{self.path}: corrupt or unrecognised (empty coverage)", path=self.path)

        directory = self._fh.read(ENTRY.size * count)
        if len(directory) < ENTRY.size * count:
            raise DataUnavailable(f"{self.path}: corrupt or unrecognised (truncated directory)", path=self.path)

        entries: Dict[int, _Entry] = {}
        for k in range(count):
            entry = _Entry(*ENTRY.unpack_from(directory, k * ENTRY.size))
            if entry.ncoeff < 1 or entry.ncomp != 3 or entry.nseg < 1 or entry.seg_days <= 0.0:
                raise DataUnavailable(f"{self.path}: corrupt directory entry for body {entry.body}", path=self.path)
            if entry.data_offset + entry.nseg * entry.record_bytes > size:
                raise DataUnavailable(f"{self.path}: corrupt or unrecognised (data past end of file)", path=self.path)
            if entry.seg_start > start or entry.seg_start + entry.nseg * entry.seg_days < end:
                raise DataUnavailable(
                    f"{self.path}: segments of body {entry.body} do not cover JD {start}..{end}",
                    path=self.path,
                )
            entries[entry.body] = entry

        self.denum = denum
        self.start = start
        self.end = end
        self.emrat = emrat if emrat > 0.0 else EMRAT
        self._entries = entries
        log.debug(f"Opened packed file {self.path}: DE{denum}, JD {start}..{end}, {count} bodies")

    @property
    def metadata(self) -> FileMetadata:
        return FileMetadata(self.path, self.start, self.end, self.denum)

    @property
    def bodies(self) -> Tuple[int, ...]:
        return tuple(self._entries)

    def covers(self, jd: float) -> bool:
        return self.start <= jd <= self.end

    def state(self, body: int, jd: float) -> Tuple[np.ndarray, np.ndarray, int]:
        """Position, velocity and center code of `body` at `jd`."""
        if not self.covers(jd):
            raise DataUnavailable(f"JD {jd} outside {self.path} ({self.start}..{self.end})", jd=jd)
        try:
            entry = self._entries[body]
        except KeyError:
            raise DataUnavailable(f"Body code {body} not in {self.path}", body=body) from None

        index = int((jd - entry.seg_start) // entry.seg_days)
        if index == entry.nseg and jd <= entry.seg_start + entry.nseg * entry.seg_days:
            index -= 1      # closing edge of the last segment
        if not 0 <= index < entry.nseg:
            raise DataUnavailable(f"JD {jd} outside the segments of body {body} in {self.path}", jd=jd, body=body)
        with self._lock:
            self._fh.seek(entry.data_offset + index * entry.record_bytes)
            raw = self._fh.read(entry.record_bytes)
        if len(raw) < entry.record_bytes:
            raise DataUnavailable(f"{self.path}: truncated record for body {body}", path=self.path)

        coeffs = np.frombuffer(raw, dtype="<f8").reshape(entry.ncomp, entry.ncoeff).T
        t0 = entry.seg_start + index * entry.seg_days
        x = 2.0 * (jd - t0) / entry.seg_days - 1.0
        pos = chebyshev.chebval(x, coeffs)
        vel = chebyshev.chebval(x, chebyshev.chebder(coeffs)) * (2.0 / entry.seg_days)
        return np.asarray(pos, dtype=float), np.asarray(vel, dtype=float), entry.center

    def close(self) -> None:
        self._fh.close()

# ───────────────────────────── JPL kernel reader ─────────────────────────────

_DENUM_RE = re.compile(r"de(\d{3})", re.IGNORECASE)

class JplKernelFile:
    """External JPL SPK kernel; coverage from jplephem, states from skyfield."""

    def __init__(self, path: str):
        from jplephem.spk import SPK

        self.path = path
        try:
            spk = SPK.open(path)
        except (OSError, ValueError) as e:
            raise DataUnavailable(f"{path}: not a readable SPK kernel ({e})", path=path) from e
        try:
            if not spk.segments:
                raise DataUnavailable(f"{path}: SPK kernel has no segments", path=path)
            self.start = min(seg.start_jd for seg in spk.segments)
            self.end = max(seg.end_jd for seg in spk.segments)
        finally:
            spk.close()

        match = _DENUM_RE.search(os.path.basename(path))
        self.denum = int(match.group(1)) if match else 0

        import skyfield.api as sf

        self._kernel = sf.load_file(path)
        self._ts = sf.load.timescale(builtin=True)
        log.debug(f"Opened JPL kernel {path}: DE{self.denum}, JD {self.start}..{self.end}")

    @property
    def metadata(self) -> FileMetadata:
        return FileMetadata(self.path, self.start, self.end, self.denum)

    def covers(self, jd: float) -> bool:
        return self.start <= jd <= self.end

    def state(self, code: int, jd: float) -> State:
        if not self.covers(jd):
            raise DataUnavailable(f"JD {jd} outside {self.path} ({self.start}..{self.end})", jd=jd)
        try:
            target = self._kernel[code]
        except (KeyError, ValueError):
            raise DataUnavailable(f"Body code {code} not in {self.path}", body=code) from None
        position = target.at(self._ts.tdb_jd(jd))
        return np.array(position.position.au, dtype=float), np.array(position.velocity.au_per_d, dtype=float)

    def close(self) -> None:
        self._kernel.close()

# ───────────────────────────── LRU cache ─────────────────────────────

class LRUFileCache:
    """Bounded map of open files; the least recently used entry is closed on overflow."""

    def __init__(self, capacity: int = 8):
        if capacity < 1:
            raise UsageError(f"Cache capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._items: "OrderedDict[Tuple[EphemerisSource, str], object]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key) -> bool:
        return key in self._items

    def get(self, key):
        item = self._items.get(key)
        if item is not None:
            self._items.move_to_end(key)
        return item

    def put(self, key, item) -> None:
        if key in self._items:
            self.evict(key)
        self._items[key] = item
        while len(self._items) > self.capacity:
            old_key, old = self._items.popitem(last=False)
            log.debug(f"Evicting {old_key} from file cache")
            old.close()

    def evict(self, key) -> None:
        item = self._items.pop(key, None)
        if item is not None:
            item.close()

    def clear(self) -> None:
        while self._items:
            _, item = self._items.popitem(last=False)
            item.close()

# ───────────────────────────── Store ─────────────────────────────

class EphemerisStore:
    """File discovery plus cached access to packed files and JPL kernels."""

    def __init__(self, ephe_path: List[str], jpl_file: str, cache_capacity: int = 8):
        self.ephe_path = list(ephe_path)
        self.jpl_file = jpl_file
        self._cache = LRUFileCache(cache_capacity)
        self._current: Dict[int, FileMetadata] = {}
        self._lock = threading.Lock()

    def set_ephe_path(self, dirs: List[str]) -> None:
        with self._lock:
            self._cache.clear()
            self._current.clear()
            self.ephe_path = list(dirs)

    def set_jpl_file(self, fname: str) -> None:
        with self._lock:
            self._cache.evict((EphemerisSource.JPLEPH, "jpl"))
            self._current.pop(FAMILY_IFNO["jpl"], None)
            self.jpl_file = fname

    def find_file(self, relname: str) -> Optional[str]:
        if os.path.isabs(relname):
            return relname if os.path.isfile(relname) else None
        for directory in self.ephe_path:
            candidate = os.path.join(directory, relname)
            if os.path.isfile(candidate):
                return candidate
        return None

    def packed_file(self, family: str, jd: float) -> PackedEphemerisFile:
        key = (EphemerisSource.SWIEPH, family)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None and cached.covers(jd):
                return cached
            if cached is not None:
                log.debug(f"JD {jd} outside cached {cached.path}; resolving neighbour file")
                self._cache.evict(key)

            relname = packed_file_name(family, jd)
            path = self.find_file(relname)
            if path is None:
                raise DataUnavailable(
                    f"Ephemeris file {relname} not found in {os.pathsep.join(self.ephe_path) or '(empty path)'}",
                    file=relname,
                )
            handle = PackedEphemerisFile(path)
            if not handle.covers(jd):
                handle.close()
                raise DataUnavailable(f"JD {jd} outside coverage of {path}", jd=jd, file=path)
            self._cache.put(key, handle)
            self._current[_family_ifno(family)] = handle.metadata
            return handle

    def jpl_kernel(self, jd: float) -> JplKernelFile:
        key = (EphemerisSource.JPLEPH, "jpl")
        with self._lock:
            kernel = self._cache.get(key)
            if kernel is None:
                path = self.find_file(self.jpl_file)
                if path is None:
                    raise DataUnavailable(f"JPL file {self.jpl_file} not found", file=self.jpl_file)
                kernel = JplKernelFile(path)
                self._cache.put(key, kernel)
                self._current[FAMILY_IFNO["jpl"]] = kernel.metadata
            if not kernel.covers(jd):
                raise DataUnavailable(f"JD {jd} outside coverage of {kernel.path}", jd=jd)
            return kernel

    def current_file_data(self, ifno: int) -> FileMetadata:
        if ifno not in FAMILY_IFNO.values():
            raise UsageError(f"File index must be 0..4, got {ifno}", ifno=ifno)
        return self._current.get(ifno, EMPTY_METADATA)

    def close(self) -> None:
        with self._lock:
            self._cache.clear()
            self._current.clear()

# ───────────────────────────── Sources ─────────────────────────────

class DataSource:
    source: EphemerisSource

    def __init__(self, analytic: AnalyticModel):
        self.analytic = analytic

    @property
    def denum(self) -> int:
        return 0

    def denum_at(self, jd: float) -> int:
        """DE number of the data serving `jd`; 0 when none can be opened."""
        return self.denum

    def barycentric(self, code: int, jd: float) -> State:
        if FICT_OFFSET <= code <= FICT_MAX:
            if code not in FICTITIOUS_ELEMENTS:
                raise DataUnavailable(f"No orbital elements for fictitious body {code}", body=code)
            pos, vel = self.analytic.heliocentric_fictitious(code, jd)
            sun_pos, sun_vel = self._barycentric(10, jd)
            return sun_pos + pos, sun_vel + vel
        return self._barycentric(code, jd)

    def _barycentric(self, code: int, jd: float) -> State:
        raise NotImplementedError

class AnalyticSource(DataSource):
    source = EphemerisSource.MOSEPH

    def _barycentric(self, code: int, jd: float) -> State:
        if code >= ASTEROID_BASE:
            raise DataUnavailable(f"Asteroid {code - ASTEROID_BASE} needs an asteroid file", body=code)
        return self.analytic.barycentric(code, jd)

class PackedSource(DataSource):
    source = EphemerisSource.SWIEPH

    def __init__(self, analytic: AnalyticModel, store: EphemerisStore):
        super().__init__(analytic)
        self.store = store

    @property
    def denum(self) -> int:
        meta = self.store.current_file_data(FAMILY_IFNO["planet"])
        return meta.denum

    def denum_at(self, jd: float) -> int:
        try:
            return self.store.packed_file("planet", jd).denum
        except DataUnavailable:
            return 0

    def _earth_moon(self, jd: float) -> Tuple[State, State]:
        planets = self.store.packed_file("planet", jd)
        emb_pos, emb_vel, _ = planets.state(3, jd)
        moon_pos, moon_vel, center = self.store.packed_file("moon", jd).state(301, jd)
        if center != 399:
            raise DataUnavailable(f"Moon record must be geocentric, found center {center}")
        mu = 1.0 / (1.0 + planets.emrat)
        earth = (emb_pos - moon_pos * mu, emb_vel - moon_vel * mu)
        return earth, (earth[0] + moon_pos, earth[1] + moon_vel)

    def _barycentric(self, code: int, jd: float) -> State:
        if code in (399, 301):
            earth, moon = self._earth_moon(jd)
            return earth if code == 399 else moon

        if code >= ASTEROID_BASE:
            number = code - ASTEROID_BASE
            family = "asteroid" if number in MAIN_ASTEROIDS else f"asteroid:{number}"
            handle = self.store.packed_file(family, jd)
        else:
            handle = self.store.packed_file("planet", jd)

        pos, vel, center = handle.state(code, jd)
        if center != 0:
            c_pos, c_vel = self._barycentric(center, jd)
            pos, vel = pos + c_pos, vel + c_vel
        return pos, vel

class JplSource(DataSource):
    source = EphemerisSource.JPLEPH

    def __init__(self, analytic: AnalyticModel, store: EphemerisStore):
        super().__init__(analytic)
        self.store = store

    @property
    def denum(self) -> int:
        return self.store.current_file_data(FAMILY_IFNO["jpl"]).denum

    def denum_at(self, jd: float) -> int:
        try:
            return self.store.jpl_kernel(jd).denum
        except DataUnavailable:
            return 0

    def _barycentric(self, code: int, jd: float) -> State:
        return self.store.jpl_kernel(jd).state(code, jd)
