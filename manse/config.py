"""
Engine policy settings.

Every value here is a policy decision (cutoff convention, thresholds,
which solar-term table to use), not a calendrical fact. Defaults can be
overridden through MANSE_* environment variables.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

ENGINE_VERSION = "manse-2.1.0"

# Range of the solar-term table generated when no table file is configured.
DEFAULT_TABLE_START_YEAR = 1900
DEFAULT_TABLE_END_YEAR = 2100

# The day cutoff must fall in the last hour before midnight: rollover and
# the Rat slot are both anchored on it.
EARLIEST_CUTOFF_MINUTES = 23 * 60
LATEST_CUTOFF_MINUTES = 23 * 60 + 59


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def parse_cutoff(value: str) -> tuple[int, int]:
    try:
        hour, minute = map(int, value.split(":"))
    except ValueError as exc:
        raise ValueError(f"Invalid day cutoff '{value}', expected HH:MM") from exc
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid day cutoff '{value}'")
    return hour, minute


@dataclass(frozen=True)
class EngineSettings:
    engine_version: str = ENGINE_VERSION
    reference_timezone: str = "Asia/Seoul"

    # Day/hour cutoff. 23:30 is the KST convention, 23:00 the classical one.
    day_cutoff_hour: int = 23
    day_cutoff_minute: int = 30

    # Day and hour pillars use standard time, never daylight saving time.
    strip_dst: bool = True
    # Local mean time correction from birth longitude (needs coordinates).
    apply_lmt: bool = False

    luck_cycle_count: int = 10
    dominant_ratio: float = 0.3
    weak_ratio: float = 0.1

    # JSON table exported by `manse terms`; None generates one with Swiss Ephemeris.
    solar_terms_path: Optional[Path] = None
    table_start_year: int = DEFAULT_TABLE_START_YEAR
    table_end_year: int = DEFAULT_TABLE_END_YEAR

    def __post_init__(self):
        if not EARLIEST_CUTOFF_MINUTES <= self.cutoff_minutes <= LATEST_CUTOFF_MINUTES:
            raise ValueError(
                f"Day cutoff {self.day_cutoff_hour:02d}:{self.day_cutoff_minute:02d} "
                f"must be between 23:00 and 23:59"
            )
        if self.table_end_year < self.table_start_year:
            raise ValueError(
                f"table_end_year {self.table_end_year} is before table_start_year {self.table_start_year}"
            )

    @property
    def cutoff_minutes(self) -> int:
        return self.day_cutoff_hour * 60 + self.day_cutoff_minute

    def with_cutoff(self, hour: int, minute: int = 0) -> "EngineSettings":
        return replace(self, day_cutoff_hour=hour, day_cutoff_minute=minute)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        defaults = cls()
        cutoff = os.getenv("MANSE_DAY_CUTOFF")
        cutoff_hour, cutoff_minute = (
            parse_cutoff(cutoff) if cutoff
            else (defaults.day_cutoff_hour, defaults.day_cutoff_minute)
        )
        terms_path = os.getenv("MANSE_SOLAR_TERMS_PATH")
        return cls(
            reference_timezone=os.getenv("MANSE_REFERENCE_TZ", defaults.reference_timezone),
            day_cutoff_hour=cutoff_hour,
            day_cutoff_minute=cutoff_minute,
            strip_dst=_env_bool("MANSE_STRIP_DST", defaults.strip_dst),
            apply_lmt=_env_bool("MANSE_APPLY_LMT", defaults.apply_lmt),
            luck_cycle_count=int(os.getenv("MANSE_LUCK_CYCLE_COUNT", defaults.luck_cycle_count)),
            dominant_ratio=float(os.getenv("MANSE_DOMINANT_RATIO", defaults.dominant_ratio)),
            weak_ratio=float(os.getenv("MANSE_WEAK_RATIO", defaults.weak_ratio)),
            solar_terms_path=Path(terms_path) if terms_path else None,
            table_start_year=int(os.getenv("MANSE_TABLE_START_YEAR", defaults.table_start_year)),
            table_end_year=int(os.getenv("MANSE_TABLE_END_YEAR", defaults.table_end_year)),
        )
