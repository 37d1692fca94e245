"""
Minute rounding for timesheet begin, end and duration.

Begin and end are rounded on the wall clock of the entry's timezone and
returned in UTC; sub-second precision is dropped.
"""
import enum
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional


class RoundingMode(str, enum.Enum):
    """How begin, end and duration are rounded."""
    DEFAULT = "default"  # begin floor, end ceil, duration ceil
    FLOOR = "floor"
    CEIL = "ceil"
    CLOSEST = "closest"


def _floor_seconds(value: int, step: int) -> int:
    return value - (value % step)


def _ceil_seconds(value: int, step: int) -> int:
    remainder = value % step
    if remainder == 0:
        return value
    return value + (step - remainder)


def _closest_seconds(value: int, step: int) -> int:
    remainder = value % step
    if remainder * 2 >= step:
        return value + (step - remainder)
    return value - remainder


_WALL_CLOCK_EPOCH = datetime(1970, 1, 1)

_ROUNDERS = {
    "floor": _floor_seconds,
    "ceil": _ceil_seconds,
    "closest": _closest_seconds,
}


class Rounding:
    """Rounding rule with a granularity in minutes per field (0 disables)."""

    def __init__(self, mode: RoundingMode = RoundingMode.DEFAULT, begin: int = 1, end: int = 1, duration: int = 0):
        self.mode = RoundingMode(mode)
        self.begin = max(0, int(begin))
        self.end = max(0, int(end))
        self.duration = max(0, int(duration))

    def _direction(self, field: str) -> str:
        if self.mode == RoundingMode.DEFAULT:
            return "floor" if field == "begin" else "ceil"
        return self.mode.value

    def _round_datetime(self, value: datetime, minutes: int, field: str, zone: Optional[tzinfo]) -> datetime:
        local = value.astimezone(zone or value.tzinfo).replace(microsecond=0)
        if minutes > 0:
            wall_clock = local.replace(tzinfo=None)
            stamp = int((wall_clock - _WALL_CLOCK_EPOCH).total_seconds())
            rounded = _ROUNDERS[self._direction(field)](stamp, minutes * 60)
            local = (wall_clock + timedelta(seconds=rounded - stamp)).replace(tzinfo=local.tzinfo)
        return local.astimezone(timezone.utc)

    def round_begin(self, value: datetime, zone: Optional[tzinfo] = None) -> datetime:
        return self._round_datetime(value, self.begin, "begin", zone)

    def round_end(self, value: datetime, zone: Optional[tzinfo] = None) -> datetime:
        return self._round_datetime(value, self.end, "end", zone)

    def round_duration(self, seconds: int) -> int:
        if self.duration <= 0:
            return seconds
        return _ROUNDERS[self._direction("duration")](seconds, self.duration * 60)

    def __repr__(self):
        return f"<Rounding(mode={self.mode.value}, begin={self.begin}, end={self.end}, duration={self.duration})>"
