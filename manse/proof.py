"""
Decision log and calculation proof.

Every boundary call the engine makes (timezone, Li Chun, month term, day
cutoff, hour slot) is written down once, in order, so the presentation
layer can show users exactly why a pillar came out the way it did.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

TIMEZONE_ADJUSTMENT = "timezone_adjustment"
YEAR_BOUNDARY = "year_boundary"
MONTH_BOUNDARY = "month_boundary"
MONTH_CALC = "month_calc"
DAY_BOUNDARY = "day_boundary"
HOUR_BOUNDARY = "hour_boundary"

DECISION_KEYS = (
    TIMEZONE_ADJUSTMENT,
    YEAR_BOUNDARY,
    MONTH_BOUNDARY,
    MONTH_CALC,
    DAY_BOUNDARY,
    HOUR_BOUNDARY,
)


@dataclass(frozen=True)
class DecisionLogEntry:
    key: str
    value: str
    time_sensitive: bool = False

    def to_dict(self) -> dict:
        return {"key": self.key, "value": self.value, "time_sensitive": self.time_sensitive}


class DecisionLog:
    """Append-only collector used while one calculation runs."""

    def __init__(self):
        self._entries = []

    def add(self, key: str, value: str, time_sensitive: bool = False) -> DecisionLogEntry:
        if key not in DECISION_KEYS:
            raise ValueError(f"Unknown decision log key '{key}'")
        entry = DecisionLogEntry(key, value, time_sensitive)
        self._entries.append(entry)
        logger.debug("%s: %s", key, value)
        return entry

    @property
    def entries(self) -> tuple:
        return tuple(self._entries)

    def keys(self) -> list[str]:
        return [e.key for e in self._entries]

    def __len__(self):
        return len(self._entries)


@dataclass(frozen=True)
class CalculationProof:
    engine_version: str
    solar_term_data_version: str
    ipchun_at: Optional[str]
    month_term_start: Optional[str]
    month_term_end: Optional[str]
    base_epoch: str
    decision_log: tuple

    @property
    def time_sensitive(self) -> bool:
        return any(e.time_sensitive for e in self.decision_log)

    def to_dict(self) -> dict:
        return {
            "engine_version": self.engine_version,
            "solar_term_data_version": self.solar_term_data_version,
            "decision_log": [e.to_dict() for e in self.decision_log],
            "time_sensitive": self.time_sensitive,
            "references": {
                "ipchun_at": self.ipchun_at,
                "month_term_start": self.month_term_start,
                "month_term_end": self.month_term_end,
                "base_epoch": self.base_epoch,
            },
        }
