"""
Boundary resolver.

Decides the *effective* inputs of the pillar calculation, which are not the
literal calendar values:

- which Li Chun year the birth belongs to (year pillar)
- which solar-term month interval holds the birth (month branch)
- whether a late-evening birth rolls the day forward (day pillar)
- which two-hour slot the birth clock falls in (hour pillar)

Each decision is written to the DecisionLog together with the boundary
instant it was compared against.
"""

import logging
import warnings
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from timezonefinder import TimezoneFinder

from manse.astro_calendar import (
    SolarTermBoundary, SolarTermTable, format_offset, lmt_correction, standard_offset,
)
from manse.bazi import EARTHLY_BRANCHES, hour_branch_index, hour_slot_range, month_pillar, year_pillar
from manse.config import EngineSettings
from manse.errors import AmbiguousBoundary, InvalidDate, InvalidTimezone
from manse.proof import (
    DAY_BOUNDARY, HOUR_BOUNDARY, MONTH_BOUNDARY, MONTH_CALC, TIMEZONE_ADJUSTMENT,
    YEAR_BOUNDARY, DecisionLog,
)

logger = logging.getLogger(__name__)

CALENDARS = ("solar", "lunar")


@lru_cache(maxsize=1)
def _timezone_finder() -> TimezoneFinder:
    return TimezoneFinder()


@dataclass(frozen=True)
class BirthInput:
    """
    Birth record as collected from the user.

    hour/minute are None when the birth time is unknown. `timezone` is the
    zone the clock time was read in; when omitted it is looked up from the
    coordinates, and failing that the reference timezone is assumed.
    """
    year: int
    month: int
    day: int
    hour: Optional[int] = None
    minute: Optional[int] = None
    calendar: str = "solar"
    is_leap_month: bool = False
    timezone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    gender: Optional[str] = None

    def __post_init__(self):
        if self.calendar not in CALENDARS:
            raise ValueError(f"calendar must be one of {CALENDARS}, got '{self.calendar}'")
        if self.hour is None:
            if self.minute is not None:
                raise InvalidDate("Birth minute given without an hour")
            return
        minute = 0 if self.minute is None else self.minute
        if not (0 <= self.hour <= 23 and 0 <= minute <= 59):
            raise InvalidDate(f"Invalid birth time {self.hour}:{minute:02d}")

    @property
    def has_time(self) -> bool:
        return self.hour is not None

    def civil_date(self) -> date:
        try:
            return date(self.year, self.month, self.day)
        except (TypeError, ValueError) as exc:
            raise InvalidDate(f"Invalid civil date {self.year}-{self.month}-{self.day}: {exc}",
                              self.year, self.month, self.day) from exc

    @classmethod
    def from_strings(cls, birth_date: str, birth_time: Optional[str] = None,
                     **kwargs) -> "BirthInput":
        """Parse 'YYYY-MM-DD' and optional 'HH:MM'."""
        try:
            year, month, day = map(int, birth_date.replace(".", "-").replace("/", "-").split("-"))
        except ValueError as exc:
            raise InvalidDate(f"Unparseable birth date '{birth_date}'") from exc
        hour = minute = None
        if birth_time:
            try:
                hour, minute = map(int, birth_time.split(":"))
            except ValueError as exc:
                raise InvalidDate(f"Unparseable birth time '{birth_time}'") from exc
        return cls(year=year, month=month, day=day, hour=hour, minute=minute, **kwargs)


@dataclass(frozen=True)
class NormalizedBirth:
    civil_date: date
    has_time: bool
    instant: datetime  # absolute birth moment (civil midnight when no time)
    local_clock: Optional[datetime]  # naive reference standard time (+LMT), for day/hour
    birth_timezone: str
    timezone_source: str  # "input", "coordinates" or "reference"
    lmt_minutes: float


@dataclass(frozen=True)
class BoundaryResolution:
    birth: NormalizedBirth
    effective_year: int
    li_chun: SolarTermBoundary
    month_branch_index: int
    month_term_start: SolarTermBoundary
    month_term_end: SolarTermBoundary
    day_date: date
    day_rolled: bool
    hour_branch_index: Optional[int]


def resolve_birth_timezone(birth: BirthInput, settings: EngineSettings) -> tuple[str, str]:
    """(timezone name, source) for the birth clock time."""
    if birth.timezone:
        return birth.timezone, "input"
    if birth.latitude is not None and birth.longitude is not None:
        tz_name = _timezone_finder().timezone_at(lat=birth.latitude, lng=birth.longitude)
        if tz_name is None:
            raise InvalidTimezone(f"Could not determine timezone for ({birth.latitude}, {birth.longitude})")
        return tz_name, "coordinates"
    return settings.reference_timezone, "reference"


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezone(f"Unknown timezone '{name}'") from exc


def normalize_birth(birth: BirthInput, settings: EngineSettings, log: DecisionLog) -> NormalizedBirth:
    """
    Apply the timezone once. The absolute instant is compared with solar
    terms; the local clock (reference standard time, optional LMT) drives
    the day and hour pillars.
    """
    civil = birth.civil_date()
    tz_name, tz_source = resolve_birth_timezone(birth, settings)
    birth_tz = _zone(tz_name)
    reference_tz = _zone(settings.reference_timezone)

    if not birth.has_time:
        instant = datetime.combine(civil, time(0, 0), tzinfo=birth_tz)
        log.add(TIMEZONE_ADJUSTMENT,
                f"No birth time supplied; civil date {civil.isoformat()} used as-is, "
                f"boundaries compared at 00:00 {tz_name} ({format_offset(instant.utcoffset())}); "
                f"no offset applied")
        return NormalizedBirth(civil, False, instant, None, tz_name, tz_source, 0.0)

    minute = birth.minute or 0
    instant = datetime.combine(civil, time(birth.hour, minute), tzinfo=birth_tz)
    in_reference = instant.astimezone(reference_tz)

    dst = in_reference.dst() or timedelta(0)
    offset = standard_offset(in_reference) if settings.strip_dst else in_reference.utcoffset()
    local_clock = in_reference.replace(tzinfo=None)
    if settings.strip_dst:
        local_clock -= dst

    lmt = 0.0
    if settings.apply_lmt and birth.longitude is not None:
        meridian = offset.total_seconds() / 3600 * 15
        lmt = lmt_correction(birth.longitude, meridian)
        local_clock += timedelta(minutes=lmt)

    parts = [
        f"Birth clock {instant:%Y-%m-%d %H:%M} {tz_name} ({format_offset(instant.utcoffset())})",
        f"-> {local_clock:%Y-%m-%d %H:%M} {settings.reference_timezone} ({format_offset(offset)})",
    ]
    if settings.strip_dst and dst:
        parts.append(f"daylight saving removed ({int(dst.total_seconds() // 60)} min)")
    if lmt:
        parts.append(f"local mean time correction {lmt:+.1f} min at longitude {birth.longitude}")
    log.add(TIMEZONE_ADJUSTMENT, "; ".join(parts))

    return NormalizedBirth(civil, True, instant, local_clock, tz_name, tz_source, lmt)


def _flag_ambiguous(message: str) -> None:
    logger.warning(message)
    warnings.warn(message, AmbiguousBoundary, stacklevel=3)


def _same_day(boundary: SolarTermBoundary, birth: NormalizedBirth) -> bool:
    return boundary.instant.astimezone(birth.instant.tzinfo).date() == birth.civil_date


def _margin(instant: datetime, boundary: datetime) -> str:
    minutes = int(abs((instant - boundary).total_seconds()) // 60)
    days, rest = divmod(minutes, 1440)
    hours, mins = divmod(rest, 60)
    if days:
        return f"{days}d {hours}h {mins}m"
    return f"{hours}h {mins}m"


def resolve_year(birth: NormalizedBirth, table: SolarTermTable,
                 log: DecisionLog) -> tuple[int, SolarTermBoundary]:
    """Effective year: civil year, or the year before when born before Li Chun."""
    civil_year = birth.civil_date.year
    li_chun = table.li_chun(civil_year)
    before = birth.instant < li_chun.instant
    effective_year = civil_year - 1 if before else civil_year
    li_chun_at = li_chun.isoformat(table.tzinfo)

    ambiguous = not birth.has_time and _same_day(li_chun, birth)
    if birth.has_time:
        side = "before" if before else "at or after"
        value = (f"Birth instant is {_margin(birth.instant, li_chun.instant)} {side} "
                 f"Li Chun {li_chun_at}; effective year {effective_year}")
    else:
        side = "before" if before else "after"
        value = (f"No birth time; civil midnight compared with Li Chun {li_chun_at} "
                 f"({side}); effective year {effective_year}")
    if ambiguous:
        value += ("; AMBIGUOUS: Li Chun falls on the birth date, a birth after "
                  f"{li_chun.instant.astimezone(birth.instant.tzinfo):%H:%M} would belong to {civil_year}")
        _flag_ambiguous(f"Year boundary ambiguous for date-only birth {birth.civil_date}")
    log.add(YEAR_BOUNDARY, value, time_sensitive=ambiguous)
    return effective_year, li_chun


def resolve_month(birth: NormalizedBirth, effective_year: int, table: SolarTermTable,
                  log: DecisionLog) -> tuple[int, SolarTermBoundary, SolarTermBoundary]:
    """Month branch from the solar-term interval holding the birth instant."""
    start, end = table.month_interval(birth.instant, effective_year)
    branch = EARTHLY_BRANCHES[start.branch_index]

    ambiguous = not birth.has_time and (_same_day(start, birth) or _same_day(end, birth))
    value = (f"Birth falls in [{start.name} {start.isoformat(table.tzinfo)}, "
             f"{end.name} {end.isoformat(table.tzinfo)}); "
             f"month branch {branch.pinyin} ({branch.chinese}, {branch.animal}, index {branch.index})")
    if ambiguous:
        value += "; AMBIGUOUS: a month term falls on the birth date and no time was given"
        _flag_ambiguous(f"Month boundary ambiguous for date-only birth {birth.civil_date}")
    log.add(MONTH_BOUNDARY, value, time_sensitive=ambiguous)

    year = year_pillar(effective_year)
    month = month_pillar(year.stem.index, branch.index)
    log.add(MONTH_CALC,
            f"Year stem {year.stem.pinyin} ({year.stem.chinese}) starts the Tiger month at "
            f"{month_pillar(year.stem.index, 2).stem.pinyin}; {branch.pinyin} month is "
            f"{(branch.index - 2) % 12} step(s) on: month stem {month.stem.pinyin} ({month.stem.chinese})",
            time_sensitive=ambiguous)
    return branch.index, start, end


def resolve_day(birth: NormalizedBirth, settings: EngineSettings,
                log: DecisionLog) -> tuple[date, bool]:
    """Roll the day-pillar date forward when the clock is at/after the cutoff."""
    cutoff = f"{settings.day_cutoff_hour:02d}:{settings.day_cutoff_minute:02d}"
    if birth.local_clock is None:
        log.add(DAY_BOUNDARY,
                f"No birth time; day pillar uses civil date {birth.civil_date.isoformat()} "
                f"(no {cutoff} rollover check possible)")
        return birth.civil_date, False

    clock = birth.local_clock
    minutes = clock.hour * 60 + clock.minute
    if minutes >= settings.cutoff_minutes:
        day = clock.date() + timedelta(days=1)
        log.add(DAY_BOUNDARY,
                f"Local time {clock:%H:%M} is at or after the {cutoff} day cutoff; "
                f"day pillar rolls forward to {day.isoformat()}")
        return day, True

    log.add(DAY_BOUNDARY,
            f"Local time {clock:%H:%M} is before the {cutoff} day cutoff; "
            f"day pillar uses {clock.date().isoformat()}")
    return clock.date(), False


def resolve_hour(birth: NormalizedBirth, settings: EngineSettings,
                 log: DecisionLog) -> Optional[int]:
    """Hour slot, or None (and no log entry) when the time is unknown."""
    if birth.local_clock is None:
        return None
    clock = birth.local_clock
    index = hour_branch_index(clock.hour, clock.minute, settings.cutoff_minutes)
    branch = EARTHLY_BRANCHES[index]
    start, end = hour_slot_range(index, settings.cutoff_minutes)
    log.add(HOUR_BOUNDARY,
            f"Local time {clock:%H:%M} falls in the {branch.pinyin} ({branch.chinese}, "
            f"{branch.animal}) slot {start}-{end}")
    return index


def resolve_boundaries(birth: BirthInput, table: SolarTermTable, settings: EngineSettings,
                       log: DecisionLog) -> BoundaryResolution:
    """Run every boundary decision for a solar-calendar birth, in log order."""
    if birth.calendar != "solar":
        raise ValueError("Convert lunar dates to solar before resolving boundaries")

    normalized = normalize_birth(birth, settings, log)
    effective_year, li_chun = resolve_year(normalized, table, log)
    branch_index, term_start, term_end = resolve_month(normalized, effective_year, table, log)
    day, rolled = resolve_day(normalized, settings, log)
    hour_index = resolve_hour(normalized, settings, log)

    logger.debug("Resolved %s: year %d, month branch %d, day %s, hour %s",
                 normalized.civil_date, effective_year, branch_index, day, hour_index)
    return BoundaryResolution(
        birth=normalized,
        effective_year=effective_year,
        li_chun=li_chun,
        month_branch_index=branch_index,
        month_term_start=term_start,
        month_term_end=term_end,
        day_date=day,
        day_rolled=rolled,
        hour_branch_index=hour_index,
    )
