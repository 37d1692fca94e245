"""
Duration and rate calculation for timesheets.
"""
from typing import Optional

from ..database.models import Timesheet
from .dates import get_zone
from .rounding import Rounding

RATE_PRECISION = 4


def _first_set(*values) -> Optional[float]:
    for value in values:
        if value is not None:
            return value
    return None


def calculate_rate(hourly_rate: Optional[float], fixed_rate: Optional[float], duration: int) -> float:
    """
    Calculate the rate for a duration.

    Args:
        hourly_rate: Rate per hour, may be None
        fixed_rate: Fixed rate, wins over the hourly rate when set
        duration: Duration in seconds

    Returns:
        float: Rate rounded to four decimals
    """
    if fixed_rate is not None:
        return round(float(fixed_rate), RATE_PRECISION)
    if not hourly_rate or not duration:
        return 0.0
    return round(float(hourly_rate) * duration / 3600, RATE_PRECISION)


class TimesheetCalculator:
    """Applies rounding and rate resolution to a timesheet in place."""

    def __init__(self, rounding: Optional[Rounding] = None):
        self.rounding = rounding or Rounding()

    def calculate(self, timesheet: Timesheet) -> Timesheet:
        self.calculate_duration(timesheet)
        self.calculate_rates(timesheet)
        return timesheet

    def calculate_duration(self, timesheet: Timesheet):
        zone = get_zone(timesheet.timezone or "UTC")
        timesheet.begin = self.rounding.round_begin(timesheet.begin, zone)
        if timesheet.end is None:
            timesheet.duration = 0
            return
        timesheet.end = self.rounding.round_end(timesheet.end, zone)
        seconds = int((timesheet.end - timesheet.begin).total_seconds())
        timesheet.duration = self.rounding.round_duration(max(0, seconds))

    def calculate_rates(self, timesheet: Timesheet):
        activity = timesheet.activity
        project = timesheet.project
        customer = project.customer if project is not None else None
        user = timesheet.user

        if timesheet.hourly_rate is None:
            timesheet.hourly_rate = _first_set(
                activity.hourly_rate if activity is not None else None,
                project.hourly_rate if project is not None else None,
                customer.hourly_rate if customer is not None else None,
                user.hourly_rate if user is not None else None,
            )
        if timesheet.fixed_rate is None:
            timesheet.fixed_rate = _first_set(
                activity.fixed_rate if activity is not None else None,
                project.fixed_rate if project is not None else None,
                customer.fixed_rate if customer is not None else None,
            )

        timesheet.rate = calculate_rate(timesheet.hourly_rate, timesheet.fixed_rate, timesheet.duration)

        internal_hourly = _first_set(user.internal_rate if user is not None else None, timesheet.hourly_rate)
        timesheet.internal_rate = calculate_rate(internal_hourly, timesheet.fixed_rate, timesheet.duration)
