"""
Chart computation.

Orchestrates one calculation: lunar conversion (if needed), boundary
resolution, the four pillars, derived analysis and the calculation proof.

Usage from Python:
    from manse.boundaries import BirthInput
    from manse.chart import compute_chart, traditional_luck_policy

    chart = compute_chart(
        BirthInput.from_strings("1990-03-15", "10:30", timezone="Asia/Seoul"),
        luck_policy=traditional_luck_policy("male"),
    )
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Optional

from manse.astro_calendar import SolarTermTable, cached_solar_term_table, load_solar_term_table
from manse.bazi import (
    BASE_EPOCH_LABEL, LuckDirection, Pillar, Polarity, compute_luck_cycle, day_pillar,
    element_balance, hour_pillar, map_ten_relations, month_pillar, ten_relation_distribution,
    year_pillar,
)
from manse.boundaries import BirthInput, BoundaryResolution, resolve_boundaries
from manse.config import EngineSettings
from manse.lunar import lunar_to_solar
from manse.proof import CalculationProof, DecisionLog

logger = logging.getLogger(__name__)

# (resolution, pillars) -> (start_age, direction)
LuckPolicy = Callable[[BoundaryResolution, "FourPillars"], tuple]

GENDERS = ("male", "female")


@dataclass(frozen=True)
class FourPillars:
    year: Pillar
    month: Pillar
    day: Pillar
    hour: Optional[Pillar] = None

    def present(self) -> list[Pillar]:
        """Pillars that exist, in year-month-day-hour order."""
        return [p for p in (self.year, self.month, self.day, self.hour) if p is not None]

    def to_dict(self) -> dict:
        return {
            "year": self.year.to_dict(),
            "month": self.month.to_dict(),
            "day": self.day.to_dict(),
            "hour": self.hour.to_dict() if self.hour is not None else None,
        }


def compute_pillars(resolution: BoundaryResolution) -> FourPillars:
    """Four pillars from resolved (effective) inputs. Pure."""
    year = year_pillar(resolution.effective_year)
    month = month_pillar(year.stem.index, resolution.month_branch_index)
    day = day_pillar(resolution.day_date)
    hour = None
    if resolution.hour_branch_index is not None:
        hour = hour_pillar(day.stem.index, resolution.hour_branch_index)
    return FourPillars(year, month, day, hour)


def build_proof(resolution: BoundaryResolution, table: SolarTermTable,
                settings: EngineSettings, log: DecisionLog) -> CalculationProof:
    return CalculationProof(
        engine_version=settings.engine_version,
        solar_term_data_version=table.version,
        ipchun_at=resolution.li_chun.isoformat(table.tzinfo),
        month_term_start=resolution.month_term_start.isoformat(table.tzinfo),
        month_term_end=resolution.month_term_end.isoformat(table.tzinfo),
        base_epoch=BASE_EPOCH_LABEL,
        decision_log=log.entries,
    )


# ============================================================
# LUCK CYCLE POLICIES
# ============================================================

def fixed_luck_policy(start_age: int, direction: LuckDirection = LuckDirection.FORWARD) -> LuckPolicy:
    """Caller-supplied start age and direction."""
    if start_age < 0:
        raise ValueError(f"start_age must be non-negative, got {start_age}")

    def policy(resolution, pillars):
        return start_age, direction
    return policy


def traditional_luck_policy(gender: str) -> LuckPolicy:
    """
    Customary rule.

    Direction: yang year + male or yin year + female runs forward,
    otherwise backward.
    Start age: days from birth to the next month term (forward) or from the
    previous month term (backward), divided by 3 and rounded.
    """
    if gender not in GENDERS:
        raise ValueError(f"gender must be one of {GENDERS}, got '{gender}'")

    def policy(resolution, pillars):
        yang_year = pillars.year.stem.polarity is Polarity.YANG
        forward = yang_year == (gender == "male")
        instant = resolution.birth.instant
        if forward:
            delta = resolution.month_term_end.instant - instant
            direction = LuckDirection.FORWARD
        else:
            delta = instant - resolution.month_term_start.instant
            direction = LuckDirection.BACKWARD
        days = delta.total_seconds() / 86400
        return int(round(days / 3)), direction
    return policy


# ============================================================
# CHART
# ============================================================

def _to_solar(birth: BirthInput, lunar_converter) -> BirthInput:
    if birth.calendar == "solar":
        return birth
    solar = lunar_converter(birth.year, birth.month, birth.day, birth.is_leap_month)
    logger.debug("Lunar %d-%d-%d%s -> solar %s", birth.year, birth.month, birth.day,
                 " (leap)" if birth.is_leap_month else "", solar)
    return replace(birth, year=solar.year, month=solar.month, day=solar.day,
                   calendar="solar", is_leap_month=False)


def _input_echo(original: BirthInput, solar: BirthInput, resolution: BoundaryResolution) -> dict:
    birth = resolution.birth
    time_str = None
    if original.has_time:
        time_str = f"{original.hour:02d}:{original.minute or 0:02d}"
    return {
        "birth_date": f"{original.year:04d}-{original.month:02d}-{original.day:02d}",
        "birth_time": time_str,
        "calendar": original.calendar,
        "is_leap_month": original.is_leap_month,
        "solar_date": solar.civil_date().isoformat(),
        "timezone": birth.birth_timezone,
        "timezone_source": birth.timezone_source,
        "latitude": original.latitude,
        "longitude": original.longitude,
        "gender": original.gender,
        "local_clock": birth.local_clock.isoformat(timespec="minutes") if birth.local_clock else None,
        "lmt_correction_minutes": round(birth.lmt_minutes, 1),
        "effective_year": resolution.effective_year,
        "day_pillar_date": resolution.day_date.isoformat(),
        "day_rolled_over": resolution.day_rolled,
    }


def solar_term_table_for(settings: EngineSettings) -> SolarTermTable:
    """The JSON table at settings.solar_terms_path, else a generated one."""
    if settings.solar_terms_path is not None:
        return load_solar_term_table(settings.solar_terms_path)
    return cached_solar_term_table(settings.table_start_year, settings.table_end_year,
                                   settings.reference_timezone)


def compute_chart(birth: BirthInput, table: Optional[SolarTermTable] = None,
                  settings: Optional[EngineSettings] = None,
                  luck_policy: Optional[LuckPolicy] = None,
                  today: Optional[date] = None,
                  lunar_converter=lunar_to_solar) -> dict:
    """
    Compute a full chart as a plain dict.

    Args:
        birth: birth record; lunar dates are converted first
        table: solar-term table (default: solar_term_table_for(settings))
        settings: engine policy (default: EngineSettings.from_env())
        luck_policy: callable giving (start_age, direction); the luck cycle
            is omitted (None) when not supplied
        today: reference date for the current luck decade

    Raises:
        InvalidDate, MissingSolarTermData
    """
    if settings is None:
        settings = EngineSettings.from_env()
    if table is None:
        table = solar_term_table_for(settings)

    solar_birth = _to_solar(birth, lunar_converter)
    log = DecisionLog()
    resolution = resolve_boundaries(solar_birth, table, settings, log)
    pillars = compute_pillars(resolution)
    present = pillars.present()

    day_master = pillars.day.stem
    relations = map_ten_relations(day_master, present)

    luck = None
    if luck_policy is not None:
        start_age, direction = luck_policy(resolution, pillars)
        reference = today or date.today()
        luck = compute_luck_cycle(
            pillars.month,
            birth_year=resolution.birth.civil_date.year,
            start_age=start_age,
            direction=direction,
            count=settings.luck_cycle_count,
            reference_year=reference.year,
        ).to_dict()

    proof = build_proof(resolution, table, settings, log)
    logger.info("Computed chart %s for %s (table %s)",
                " / ".join(p.combined for p in present), resolution.birth.civil_date, table.version)

    return {
        "input": _input_echo(birth, solar_birth, resolution),
        "pillars": pillars.to_dict(),
        "day_master": {
            **day_master.to_dict(),
            "description": str(day_master),
        },
        "element_balance": element_balance(present, settings.dominant_ratio, settings.weak_ratio),
        "ten_relations": {
            "entries": relations,
            "distribution": ten_relation_distribution(relations),
        },
        "luck_cycle": luck,
        "calculation_proof": proof.to_dict(),
    }
