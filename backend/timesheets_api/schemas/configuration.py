"""
System configuration schemas.
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class ConfigurationUpdateRequest(BaseModel):
    """Set one configuration value; an empty value restores the default."""
    name: str = Field(..., description="Configuration name, e.g. timesheet.rules.long_running_duration")
    value: Optional[str] = Field(None, description="New value")


class ConfigurationResponse(BaseModel):
    """Effective configuration values by name."""
    configuration: Dict[str, Any] = Field(default_factory=dict)
