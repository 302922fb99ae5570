"""
Generate reading context for a computed chart on a given date.

Produces the annual pillar, its relation to the Day Master and the active
luck decade as one JSON payload for the interpretation layer.

Usage:
    manse context --chart chart.json --date 2026-02-15
"""

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Union

from manse.astro_calendar import SolarTermTable
from manse.bazi import STEM_BY_PINYIN, annual_pillar, ten_relation

logger = logging.getLogger(__name__)


def load_chart(path: Union[str, Path]) -> dict:
    """Load a chart previously written by `manse chart --output`."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No chart data found at {path}")
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def annual_year(target_date: date, table: Optional[SolarTermTable] = None) -> int:
    """
    Pillar year in effect on `target_date`.

    With a table that covers the year, dates before the Li Chun date belong
    to the previous year; otherwise the civil year is used.
    """
    if table is None or target_date.year not in table:
        return target_date.year
    li_chun = table.li_chun(target_date.year).instant.astimezone(table.tzinfo).date()
    return target_date.year - 1 if target_date < li_chun else target_date.year


def current_luck_decade(chart: dict, year: int) -> Optional[dict]:
    luck = chart.get("luck_cycle")
    if not luck:
        return None
    for decade in luck["decades"]:
        if decade["start_year"] <= year <= decade["end_year"]:
            return {
                "number": decade["number"],
                "pillar": decade["pillar"]["combined"],
                "pillar_chinese": decade["pillar"]["combined_chinese"],
                "period": f"{decade['start_year']}-{decade['end_year']}",
                "ages": f"{decade['start_age']}-{decade['end_age']}",
                "years_remaining": decade["end_year"] - year,
            }
    return None


def generate_reading_context(chart: dict, target_date: Union[str, date],
                             table: Optional[SolarTermTable] = None) -> dict:
    if isinstance(target_date, str):
        target_date = date.fromisoformat(target_date)

    day_master = STEM_BY_PINYIN[chart["day_master"]["pinyin"]]
    year = annual_year(target_date, table)
    ap = annual_pillar(year)
    relation = ten_relation(day_master, ap.stem)
    branch_relation = ten_relation(day_master, STEM_BY_PINYIN[ap.branch.main_qi])

    logger.debug("Reading context for %s: annual pillar %s (%s)", target_date, ap.combined, relation.key)
    return {
        "generated_at": datetime.now().isoformat(timespec="seconds"),
        "target_date": target_date.isoformat(),
        "day_master": chart["day_master"],
        "pillars": chart["pillars"],
        "annual": {
            "year": year,
            "pillar": ap.to_dict(),
            "stem_relation": relation.to_dict(),
            "branch_relation": branch_relation.to_dict(),
        },
        "current_luck_decade": current_luck_decade(chart, year),
        "time_sensitive": chart["calculation_proof"]["time_sensitive"],
    }
