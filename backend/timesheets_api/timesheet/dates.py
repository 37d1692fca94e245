"""
Parsing and formatting of transport datetimes.

Accepted input: ``2020-03-27T14:35:59``, ``2020-03-27 14:35:59``,
``2020-03-27 14:35`` and single digit parts such as ``2020-03-27 14:5:0``,
with an optional ``Z``, ``+13:00`` or ``+1300`` offset.
Naive values are interpreted in the factory's timezone. Output always
carries an explicit compact offset, e.g. ``2020-03-27T14:35:00+1300``.
"""
import re
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

_DATETIME = re.compile(
    r"(\d{4})-(\d{1,2})-(\d{1,2})[T ](\d{1,2}):(\d{1,2})(?::(\d{1,2})(?:\.\d+)?)?"
    r"(?:(Z)|([+-])(\d{2}):?(\d{2}))?",
    re.IGNORECASE
)


def get_zone(name: str):
    """Resolve an IANA timezone name, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def format_datetime(value: datetime, tz_name: str) -> str:
    return value.astimezone(get_zone(tz_name)).strftime(DATE_FORMAT)


class DateTimeFactory:
    """Creates timezone-aware datetimes for a user's timezone."""

    def __init__(self, tz_name: str = "UTC"):
        self.tz_name = tz_name
        self.zone = get_zone(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.zone)

    def parse(self, value: str) -> datetime:
        """
        Parse a transport datetime string.

        Args:
            value: Datetime string

        Returns:
            datetime: Timezone-aware datetime

        Raises:
            ValueError: If the value is not a supported datetime string
        """
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Invalid datetime: {value!r}")
        match = _DATETIME.fullmatch(value.strip())
        if match is None:
            raise ValueError(f"Invalid datetime: {value!r}")

        year, month, day, hour, minute, second, utc, sign, offset_hours, offset_minutes = match.groups()
        zone = self.zone
        if utc:
            zone = timezone.utc
        elif sign:
            offset = timedelta(hours=int(offset_hours), minutes=int(offset_minutes))
            zone = timezone(-offset if sign == "-" else offset)

        return datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second or 0), tzinfo=zone
        )
