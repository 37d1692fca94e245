"""
Registry of the meta-fields timesheets may carry.

Only registered names can be written through the API. The process-wide
registry is seeded from ``TIMESHEET_META_FIELDS``, a JSON list such as
``[{"name": "ticket", "visible": true, "label": "Ticket"}]``.
"""
import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class UnknownMetaFieldError(Exception):
    """Raised when a meta-field name is not part of the configured schema."""

    def __init__(self, name: str):
        super().__init__("Unknown meta-field requested")
        self.name = name


@dataclass(frozen=True)
class MetaFieldDefinition:
    """Schema entry for a timesheet meta-field."""
    name: str
    visible: bool = False
    label: Optional[str] = None


class MetaFieldRegistry:
    """Named meta-field definitions."""

    def __init__(self):
        self._definitions: Dict[str, MetaFieldDefinition] = {}

    def register(self, definition: MetaFieldDefinition) -> MetaFieldDefinition:
        self._definitions[definition.name] = definition
        return definition

    def unregister(self, name: str):
        self._definitions.pop(name, None)

    def get(self, name: str) -> MetaFieldDefinition:
        """
        Get a definition by name.

        Raises:
            UnknownMetaFieldError: If no definition is registered under the name
        """
        try:
            return self._definitions[name]
        except KeyError:
            raise UnknownMetaFieldError(name)

    def names(self) -> List[str]:
        return list(self._definitions)

    def clear(self):
        self._definitions.clear()

    @classmethod
    def from_env(cls, variable: str = "TIMESHEET_META_FIELDS") -> "MetaFieldRegistry":
        registry = cls()
        raw = os.getenv(variable)
        if not raw:
            return registry
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Ignoring invalid {variable}: {e}")
            return registry
        for entry in entries:
            registry.register(MetaFieldDefinition(
                name=entry["name"],
                visible=bool(entry.get("visible", False)),
                label=entry.get("label"),
            ))
        return registry


meta_field_registry = MetaFieldRegistry.from_env()
