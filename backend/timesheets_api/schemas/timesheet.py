"""
Timesheet-related Pydantic schemas.

Defines request/response models for the timesheet resource. JSON keys are
camelCase (``hourlyRate``, ``metaFields``); snake_case names are accepted
on input as well.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..database.models import Timesheet, Project, Activity
from ..timesheet.dates import format_datetime


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimesheetCreateRequest(CamelModel):
    """Timesheet creation request schema."""
    project: Optional[int] = Field(None, description="Project ID")
    activity: Optional[int] = Field(None, description="Activity ID")
    begin: Optional[str] = Field(None, description="Begin, e.g. 2020-03-27T14:35:00 (default: now)")
    end: Optional[str] = Field(None, description="End (null for a running entry)")
    description: Optional[str] = Field(None, description="Work description")
    fixed_rate: Optional[float] = Field(None, ge=0, description="Fixed rate, overrides the computed rate")
    hourly_rate: Optional[float] = Field(None, ge=0, description="Hourly rate")
    user: Optional[int] = Field(None, description="Owner user ID (requires permission for other users)")
    tags: Optional[str] = Field(None, description="Comma separated tag names")
    exported: Optional[bool] = Field(None, description="Exported flag (requires export permission)")
    billable: Optional[bool] = Field(None, description="Billable flag (default: customer billable)")


class TimesheetUpdateRequest(TimesheetCreateRequest):
    """Timesheet partial update request schema; only sent fields are applied."""


class MetaFieldRequest(BaseModel):
    """Meta-field update request schema."""
    name: Optional[str] = Field(None, description="Meta-field name")
    value: Optional[str] = Field(None, description="Meta-field value")


class MetaFieldResponse(BaseModel):
    """Meta-field response schema."""
    name: str = Field(..., description="Meta-field name")
    value: Optional[str] = Field(None, description="Meta-field value")


class CustomerExpanded(CamelModel):
    """Customer summary nested in expanded responses."""
    id: int
    name: str
    visible: bool
    billable: bool


class ProjectExpanded(CamelModel):
    """Project nested in expanded responses."""
    id: int
    name: str
    visible: bool
    customer: CustomerExpanded

    @classmethod
    def from_project(cls, project: Project) -> "ProjectExpanded":
        return cls(
            id=project.id,
            name=project.name,
            visible=project.visible,
            customer=CustomerExpanded(
                id=project.customer.id,
                name=project.customer.name,
                visible=project.customer.visible,
                billable=project.customer.billable,
            ),
        )


class ActivityExpanded(CamelModel):
    """Activity nested in expanded responses."""
    id: int
    name: str
    visible: bool
    project: Optional[int] = None

    @classmethod
    def from_activity(cls, activity: Activity) -> "ActivityExpanded":
        return cls(id=activity.id, name=activity.name, visible=activity.visible, project=activity.project_id)


class TimesheetCollection(CamelModel):
    """Timesheet summary as returned in collections."""
    id: int = Field(..., description="Timesheet ID")
    begin: str = Field(..., description="Begin with explicit UTC offset")
    end: Optional[str] = Field(None, description="End, null while running")
    duration: int = Field(..., description="Duration in seconds")
    description: Optional[str] = Field(None, description="Work description")
    rate: float = Field(..., description="Computed or fixed rate")
    internal_rate: Optional[float] = Field(None, description="Internal rate")
    exported: bool = Field(..., description="Whether the record is exported")
    billable: bool = Field(..., description="Whether the record is billable")
    user: int = Field(..., description="Owner user ID")
    project: int = Field(..., description="Project ID")
    activity: int = Field(..., description="Activity ID")
    tags: List[str] = Field(default_factory=list, description="Tag names")
    meta_fields: List[MetaFieldResponse] = Field(default_factory=list, description="Visible meta-fields")

    @classmethod
    def from_timesheet(cls, timesheet: Timesheet):
        return cls.model_validate(_payload(timesheet, expanded=False))


class TimesheetEntity(TimesheetCollection):
    """Single timesheet including rate inputs."""
    hourly_rate: Optional[float] = Field(None, description="Hourly rate")
    fixed_rate: Optional[float] = Field(None, description="Fixed rate")


class TimesheetCollectionFull(TimesheetCollection):
    """Timesheet summary with expanded project and activity."""
    project: ProjectExpanded
    activity: ActivityExpanded

    @classmethod
    def from_timesheet(cls, timesheet: Timesheet):
        return cls.model_validate(_payload(timesheet, expanded=True))


class TimesheetEntityFull(TimesheetEntity):
    """Single timesheet with expanded project and activity."""
    project: ProjectExpanded
    activity: ActivityExpanded

    @classmethod
    def from_timesheet(cls, timesheet: Timesheet):
        return cls.model_validate(_payload(timesheet, expanded=True))


def _payload(timesheet: Timesheet, expanded: bool) -> Dict[str, Any]:
    return {
        "id": timesheet.id,
        "begin": format_datetime(timesheet.begin, timesheet.timezone),
        "end": format_datetime(timesheet.end, timesheet.timezone) if timesheet.end is not None else None,
        "duration": timesheet.duration or 0,
        "description": timesheet.description,
        "rate": timesheet.rate or 0.0,
        "internal_rate": timesheet.internal_rate,
        "hourly_rate": timesheet.hourly_rate,
        "fixed_rate": timesheet.fixed_rate,
        "exported": timesheet.exported,
        "billable": timesheet.billable,
        "user": timesheet.user_id,
        "project": ProjectExpanded.from_project(timesheet.project) if expanded else timesheet.project_id,
        "activity": ActivityExpanded.from_activity(timesheet.activity) if expanded else timesheet.activity_id,
        "tags": timesheet.tag_names,
        "meta_fields": [
            MetaFieldResponse(name=meta.name, value=meta.value)
            for meta in timesheet.meta_fields if meta.visible
        ],
    }


def serialize_timesheet(timesheet: Timesheet, full: bool = False, entity: bool = True):
    """
    Build the response model for a timesheet.

    Args:
        timesheet: Timesheet to serialize
        full: Expand project and activity
        entity: Include rate inputs (single entity) instead of the collection shape

    Returns:
        The matching TimesheetCollection/TimesheetEntity model
    """
    if entity:
        model = TimesheetEntityFull if full else TimesheetEntity
    else:
        model = TimesheetCollectionFull if full else TimesheetCollection
    return model.from_timesheet(timesheet)
