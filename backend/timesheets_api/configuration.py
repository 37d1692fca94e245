"""
System configuration for timesheet rules.

Values are looked up in the ``configuration`` table first, then in the
environment, then fall back to built-in defaults. Stored values are strings
and are coerced to the type of the default.
"""
import os
from typing import Any, Dict, Optional
from fastapi import Depends
from sqlalchemy.orm import Session

from .database.connection import get_db
from .database.models import Configuration
from .timesheet.rounding import Rounding, RoundingMode

LONG_RUNNING_DURATION = "timesheet.rules.long_running_duration"
ACTIVE_ENTRIES_HARD_LIMIT = "timesheet.active_entries.hard_limit"
ROUNDING_MODE = "timesheet.rounding.default.mode"
ROUNDING_BEGIN = "timesheet.rounding.default.begin"
ROUNDING_END = "timesheet.rounding.default.end"
ROUNDING_DURATION = "timesheet.rounding.default.duration"

# name -> (environment variable, default)
SETTINGS: Dict[str, tuple] = {
    LONG_RUNNING_DURATION: ("TIMESHEET_LONG_RUNNING_DURATION", 0),
    ACTIVE_ENTRIES_HARD_LIMIT: ("TIMESHEET_ACTIVE_ENTRIES_HARD_LIMIT", 1),
    ROUNDING_MODE: ("TIMESHEET_ROUNDING_MODE", RoundingMode.DEFAULT.value),
    ROUNDING_BEGIN: ("TIMESHEET_ROUNDING_BEGIN", 1),
    ROUNDING_END: ("TIMESHEET_ROUNDING_END", 1),
    ROUNDING_DURATION: ("TIMESHEET_ROUNDING_DURATION", 0),
}


class UnknownConfigurationError(KeyError):
    """Raised for configuration names that are not defined."""


def _coerce(name: str, raw: Optional[str], default: Any) -> Any:
    if raw is None or raw == "":
        return default
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f'Configuration "{name}" expects an integer, got "{raw}"')
    return raw


class SystemConfiguration:
    """Typed access to the timesheet configuration."""

    def __init__(self, db: Session):
        self.db = db

    def find(self, name: str) -> Any:
        """
        Get the effective value of a configuration entry.

        Args:
            name: Configuration name, e.g. ``timesheet.rules.long_running_duration``

        Returns:
            Any: Stored value, environment value or default, coerced to the default's type

        Raises:
            UnknownConfigurationError: If the name is not a known setting
        """
        if name not in SETTINGS:
            raise UnknownConfigurationError(name)
        env_name, default = SETTINGS[name]

        row = self.db.query(Configuration).filter(Configuration.name == name).first()
        if row is not None and row.value not in (None, ""):
            return _coerce(name, row.value, default)
        return _coerce(name, os.getenv(env_name), default)

    def set(self, name: str, value: Any) -> Any:
        """
        Store a configuration override and return the coerced value.

        The change is flushed; the caller is responsible for committing.
        """
        if name not in SETTINGS:
            raise UnknownConfigurationError(name)
        default = SETTINGS[name][1]
        raw = None if value is None else str(value)
        coerced = _coerce(name, raw, default)
        if name == ROUNDING_MODE:
            RoundingMode(coerced)

        row = self.db.query(Configuration).filter(Configuration.name == name).first()
        if row is None:
            row = Configuration(name=name)
            self.db.add(row)
        row.value = raw
        self.db.flush()
        return coerced

    def all(self) -> Dict[str, Any]:
        return {name: self.find(name) for name in SETTINGS}

    @property
    def long_running_duration(self) -> int:
        """Maximum duration of a single entry in minutes, 0 disables the rule."""
        return self.find(LONG_RUNNING_DURATION)

    @property
    def active_entries_hard_limit(self) -> int:
        return max(1, self.find(ACTIVE_ENTRIES_HARD_LIMIT))

    @property
    def rounding(self) -> Rounding:
        return Rounding(
            mode=RoundingMode(self.find(ROUNDING_MODE)),
            begin=self.find(ROUNDING_BEGIN),
            end=self.find(ROUNDING_END),
            duration=self.find(ROUNDING_DURATION),
        )


# PUBLIC_INTERFACE
def get_configuration(db: Session = Depends(get_db)) -> SystemConfiguration:
    """
    Dependency to get the system configuration bound to the request session.

    Args:
        db: Database session

    Returns:
        SystemConfiguration: Configuration accessor
    """
    return SystemConfiguration(db)
