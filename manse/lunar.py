"""
Lunar (Korean/Chinese lunisolar) to solar date conversion.

Runs before the engine: the pillar calculation itself only ever sees
Gregorian civil dates.
"""

from datetime import date

from lunar_python import Lunar, LunarMonth

from manse.errors import InvalidDate


def lunar_to_solar(year: int, month: int, day: int, is_leap_month: bool = False) -> date:
    """
    Gregorian date of a lunar date.

    Raises InvalidDate for a month that does not exist in that lunar year
    (including a leap month the year does not have) or a day past the
    month's length.
    """
    # lunar_python encodes a leap month as a negative month number.
    lunar_month = -month if is_leap_month else month
    month_info = LunarMonth.fromYm(year, lunar_month)
    if month_info is None:
        leap = "leap " if is_leap_month else ""
        raise InvalidDate(f"Lunar year {year} has no {leap}month {month}", year, month, day)
    if not 1 <= day <= month_info.getDayCount():
        raise InvalidDate(
            f"Lunar {year}-{month} has {month_info.getDayCount()} days, got day {day}",
            year, month, day,
        )
    solar = Lunar.fromYmd(year, lunar_month, day).getSolar()
    return date(solar.getYear(), solar.getMonth(), solar.getDay())
