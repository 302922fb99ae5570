"""
Shared fixtures.

`synthetic_table` has round-numbered boundary instants (Li Chun on Feb 4
at 12:00 KST, the other Jie terms at 06:00) for 2023-2025, so boundary
tests can be read without an almanac at hand.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from manse.astro_calendar import SolarTermTable
from manse.chart import solar_term_table_for
from manse.config import EngineSettings

KST = ZoneInfo("Asia/Seoul")

# (month, day, hour) of each Jie; Xiao Han falls in the next January.
SYNTHETIC_TERMS = (
    (2, 4, 12), (3, 6, 6), (4, 5, 6), (5, 5, 6), (6, 6, 6), (7, 7, 6),
    (8, 8, 6), (9, 8, 6), (10, 8, 6), (11, 7, 6), (12, 7, 6), (1, 6, 6),
)


def synthetic_row(year: int) -> list[datetime]:
    return [
        datetime(year + 1 if month == 1 else year, month, day, hour, tzinfo=KST)
        for month, day, hour in SYNTHETIC_TERMS
    ]


@pytest.fixture(scope="session")
def synthetic_table() -> SolarTermTable:
    return SolarTermTable("test-synthetic", "Asia/Seoul",
                          {year: synthetic_row(year) for year in (2023, 2024, 2025)})


@pytest.fixture(scope="session")
def default_table() -> SolarTermTable:
    return solar_term_table_for(EngineSettings())


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()
