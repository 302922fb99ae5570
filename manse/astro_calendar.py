"""
Calendar utilities for the pillar engine.
Handles Julian Day Numbers, the versioned solar-term boundary table,
LMT correction, and offline generation of solar-term tables.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Sequence, Union
from zoneinfo import ZoneInfo

import swisseph as swe

from manse.errors import InvalidDate, MissingSolarTermData

logger = logging.getLogger(__name__)


def julian_day_number(year: int, month: int, day: int) -> int:
    """
    Julian Day Number of a proleptic Gregorian civil date.

    Only calendar well-formedness is checked (day 30 in February fails);
    range sanity of the year is the caller's concern.
    """
    try:
        date(year, month, day)
    except (TypeError, ValueError) as exc:
        raise InvalidDate(f"Invalid civil date {year}-{month}-{day}: {exc}",
                          year, month, day) from exc
    # At 12:00 UT the Julian Date is exactly the day number.
    return int(swe.julday(year, month, day, 12.0, swe.GREG_CAL))


def lmt_correction(longitude: float, standard_meridian: float = 135.0) -> float:
    """
    Local Mean Time correction in minutes.

    Args:
        longitude: birth location longitude in degrees (east positive)
        standard_meridian: timezone standard meridian (135.0 for KST)

    Returns:
        Correction in minutes (negative = subtract from clock time)

    Example:
        Seoul (126.98°E): correction = (126.98 - 135.0) * 4 = -32.1 min
    """
    return (longitude - standard_meridian) * 4.0


def standard_offset(moment: datetime) -> timedelta:
    """UTC offset of an aware datetime with daylight saving time removed."""
    return moment.utcoffset() - (moment.dst() or timedelta(0))


def format_offset(offset: timedelta) -> str:
    minutes = int(offset.total_seconds() // 60)
    sign = "+" if minutes >= 0 else "-"
    minutes = abs(minutes)
    return f"UTC{sign}{minutes // 60:02d}:{minutes % 60:02d}"


# ============================================================
# SOLAR TERM TABLE
# ============================================================
#
# The 12 Jie (节) solar terms mark pillar month boundaries; Li Chun also
# marks the pillar year boundary. A table row is keyed by its Li Chun year
# and runs Li Chun → Xiao Han of the following January.
#
# (longitude, term_name, branch_index)
JIE_DEFINITIONS = (
    (315, "Li Chun", 2),
    (345, "Jing Zhe", 3),
    (15, "Qing Ming", 4),
    (45, "Li Xia", 5),
    (75, "Mang Zhong", 6),
    (105, "Xiao Shu", 7),
    (135, "Li Qiu", 8),
    (165, "Bai Lu", 9),
    (195, "Han Lu", 10),
    (225, "Li Dong", 11),
    (255, "Da Xue", 0),
    (285, "Xiao Han", 1),
)


@dataclass(frozen=True)
class SolarTermBoundary:
    name: str
    branch_index: int  # branch of the month this term opens
    instant: datetime  # timezone-aware

    def isoformat(self, tz=None) -> str:
        moment = self.instant.astimezone(tz) if tz is not None else self.instant
        return moment.isoformat(timespec="minutes")


class SolarTermTable:
    """
    Read-only lookup of Li Chun and month-term instants.

    Build once per process and share; nothing mutates it after __init__.
    """

    def __init__(self, version: str, timezone_name: str,
                 rows: Mapping[int, Sequence[datetime]]):
        self.version = version
        self.timezone = timezone_name
        self.tzinfo = ZoneInfo(timezone_name)
        self._rows = {}
        for year, instants in rows.items():
            self._rows[int(year)] = self._build_row(int(year), instants)

    def _build_row(self, year: int, instants: Sequence[datetime]) -> tuple:
        if len(instants) != len(JIE_DEFINITIONS):
            raise ValueError(
                f"Solar-term row {year} has {len(instants)} entries, expected {len(JIE_DEFINITIONS)}"
            )
        row = []
        previous = None
        for (_, name, branch_index), instant in zip(JIE_DEFINITIONS, instants):
            if instant.tzinfo is None:
                instant = instant.replace(tzinfo=self.tzinfo)
            if previous is not None and instant <= previous:
                raise ValueError(f"Solar-term row {year}: {name} is not after the previous term")
            row.append(SolarTermBoundary(name, branch_index, instant))
            previous = instant
        if row[0].instant.astimezone(self.tzinfo).year != year:
            raise ValueError(f"Solar-term row {year}: Li Chun falls in another year")
        return tuple(row)

    @property
    def years(self) -> list[int]:
        return sorted(self._rows)

    def __contains__(self, year: int) -> bool:
        return year in self._rows

    def row(self, year: int) -> tuple:
        try:
            return self._rows[year]
        except KeyError:
            raise MissingSolarTermData(year, self.version) from None

    def li_chun(self, year: int) -> SolarTermBoundary:
        return self.row(year)[0]

    def month_interval(self, instant: datetime, effective_year: int) -> tuple:
        """
        (start, end) boundaries of the month interval holding `instant`.

        `effective_year` is the Li Chun year the instant belongs to, so the
        instant is never before that year's Li Chun.
        """
        row = self.row(effective_year)
        if instant < row[0].instant:
            raise ValueError(f"{instant.isoformat()} precedes Li Chun {effective_year}")
        index = 0
        for i, term in enumerate(row):
            if term.instant <= instant:
                index = i
            else:
                break
        start = row[index]
        end = row[index + 1] if index + 1 < len(row) else self.li_chun(effective_year + 1)
        if instant >= end.instant:
            raise ValueError(f"{instant.isoformat()} is past the {effective_year} table row")
        return start, end

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "timezone": self.timezone,
            "terms": [name for _, name, _ in JIE_DEFINITIONS],
            "years": {
                str(year): [b.isoformat(self.tzinfo) for b in row]
                for year, row in sorted(self._rows.items())
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SolarTermTable":
        rows = {
            int(year): [datetime.fromisoformat(value) for value in values]
            for year, values in data["years"].items()
        }
        return cls(data["version"], data["timezone"], rows)


@lru_cache(maxsize=None)
def load_solar_term_table(path: Union[str, Path]) -> SolarTermTable:
    """Load a table from JSON. Cached: each path is read once per process."""
    with open(path, encoding="utf-8") as f:
        table = SolarTermTable.from_dict(json.load(f))
    years = table.years
    logger.info("Loaded solar-term table %s (%s, %d years: %s..%s)",
                table.version, table.timezone, len(years),
                years[0] if years else "-", years[-1] if years else "-")
    return table


# ============================================================
# SOLAR TERM GENERATION
# ============================================================

def _utc_from_jd(jd: float) -> datetime:
    y, m, d, h = swe.revjul(jd, swe.GREG_CAL)
    moment = datetime(y, m, d, tzinfo=timezone.utc) + timedelta(hours=h)
    return moment.replace(second=0, microsecond=0)


def find_jie_instants(year: int, timezone_name: str) -> list[datetime]:
    """
    The 12 Jie crossings from Li Chun `year` to Xiao Han `year + 1`.

    Uses Swiss Ephemeris (Moshier, no data files) to find the moment the
    Sun reaches each Jie longitude.
    """
    tz = ZoneInfo(timezone_name)
    # Jan 20 sits between Xiao Han and Li Chun.
    jd = swe.julday(year, 1, 20, 0.0, swe.GREG_CAL)
    instants = []
    for lon, _, _ in JIE_DEFINITIONS:
        jd = swe.solcross_ut(float(lon), jd, swe.FLG_MOSEPH)
        instants.append(_utc_from_jd(jd).astimezone(tz))
    return instants


def compute_solar_term_table(start_year: int, end_year: int,
                             timezone_name: str = "Asia/Seoul") -> SolarTermTable:
    """Generate a table for [start_year, end_year] with Swiss Ephemeris."""
    if end_year < start_year:
        raise ValueError(f"end_year {end_year} is before start_year {start_year}")
    rows = {year: find_jie_instants(year, timezone_name)
            for year in range(start_year, end_year + 1)}
    logger.info("Computed solar terms %d..%d in %s", start_year, end_year, timezone_name)
    return SolarTermTable(f"swisseph-{swe.version}-moshier", timezone_name, rows)


@lru_cache(maxsize=None)
def cached_solar_term_table(start_year: int, end_year: int,
                            timezone_name: str = "Asia/Seoul") -> SolarTermTable:
    """compute_solar_term_table, computed once per range per process."""
    return compute_solar_term_table(start_year, end_year, timezone_name)
