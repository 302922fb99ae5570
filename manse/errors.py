"""
Exceptions and warnings raised by the calendar engine.
"""


class ManseError(ValueError):
    """Base class for user-facing engine errors."""


class InvalidDate(ManseError):
    """Civil (or lunar) date or time is not well-formed."""

    def __init__(self, message: str, year=None, month=None, day=None):
        super().__init__(message)
        self.year = year
        self.month = month
        self.day = day


class MissingSolarTermData(ManseError):
    """The solar-term table has no row for a year the calculation needs."""

    def __init__(self, year: int, version: str):
        super().__init__(f"No solar-term data for {year} in table '{version}'")
        self.year = year
        self.version = version


class AmbiguousBoundary(UserWarning):
    """
    A date-only birth falls on the same calendar day as a year or month
    boundary instant. The chart is still produced (using civil midnight);
    the matching decision-log entry is flagged time-sensitive.
    """


class InvalidTimezone(ManseError):
    """The birth timezone name is unknown or cannot be found from coordinates."""
