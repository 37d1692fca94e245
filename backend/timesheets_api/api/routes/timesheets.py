"""
Timesheet API routes.

Provides the timesheet resource: list and filter, CRUD, running entries,
recent entries, stop, restart, duplicate, export flag and meta-fields.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request, Response
from sqlalchemy.orm import Session

from ...auth.dependencies import get_current_user
from ...auth.voter import voter, can_view_other_timesheets, VIEW, EDIT, DELETE, STOP, START, DUPLICATE, EXPORT
from ...configuration import SystemConfiguration, get_configuration
from ...database.connection import get_db
from ...database.models import Timesheet, User
from ...errors import ValidationFailed
from ...schemas.timesheet import (
    TimesheetCreateRequest, TimesheetUpdateRequest, MetaFieldRequest,
    TimesheetCollectionFull, TimesheetEntity,
    serialize_timesheet
)
from ...timesheet.dates import DateTimeFactory
from ...timesheet.repository import (
    TimesheetRepository, TimesheetQuery, PageOutOfRange,
    ORDER_BY_COLUMNS, DEFAULT_PAGE_SIZE, split_tag_names
)
from ...timesheet.service import TimesheetService, INVALID

router = APIRouter(prefix="/timesheets", tags=["Timesheets"])

_TRUE = ("1", "true")
_FALSE = ("0", "false")


def _id_list(request: Request, *names: str) -> List[int]:
    """Collect ids from repeated and comma separated query parameters."""
    ids: List[int] = []
    for name in names:
        for raw in request.query_params.getlist(name):
            for part in raw.split(","):
                part = part.strip()
                if not part:
                    continue
                try:
                    ids.append(int(part))
                except ValueError:
                    raise ValidationFailed({name: [INVALID]})
    return ids


def _flag(name: str, value: Optional[str]) -> Optional[bool]:
    if value is None or value == "":
        return None
    if value.lower() in _TRUE:
        return True
    if value.lower() in _FALSE:
        return False
    raise ValidationFailed({name: [INVALID]})


def _date(name: str, value: Optional[str], dates: DateTimeFactory):
    if not value:
        return None
    try:
        return dates.parse(value)
    except ValueError:
        raise ValidationFailed({name: [INVALID]})


def _user_scope(value: Optional[str], current_user: User) -> Optional[int]:
    """Resolve the ``user`` parameter; None means all users."""
    if value is None or value == "" or not can_view_other_timesheets(current_user):
        return current_user.id
    if value == "all":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationFailed({"user": [INVALID]})


def _get_timesheet(db: Session, timesheet_id: int, current_user: User, attribute: str) -> Timesheet:
    """
    Load a timesheet and check the requested permission.

    Raises:
        HTTPException: 404 if missing, 403 if the attribute is not granted
    """
    timesheet = TimesheetRepository(db).get(timesheet_id)
    if timesheet is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Timesheet object not found"
        )
    voter.deny_unless_granted(current_user, attribute, timesheet)
    return timesheet


# PUBLIC_INTERFACE
def get_timesheet_service(
    current_user: User = Depends(get_current_user),
    configuration: SystemConfiguration = Depends(get_configuration),
    db: Session = Depends(get_db)
) -> TimesheetService:
    """
    Dependency to get a timesheet service for the current user.

    Args:
        current_user: Authenticated user
        configuration: System configuration
        db: Database session

    Returns:
        TimesheetService: Service bound to the request session
    """
    return TimesheetService(db, configuration, current_user)


# PUBLIC_INTERFACE
@router.get("", response_model=None,
            summary="List timesheets",
            description="Get a paginated, filterable list of timesheets. "
                        "Use full=true to expand project and activity.")
async def list_timesheets(
    request: Request,
    response: Response,
    tags: Optional[str] = Query(None, description="Comma separated tag names (OR)"),
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(DEFAULT_PAGE_SIZE, ge=1, description="Page size"),
    order: str = Query("DESC", description="ASC or DESC"),
    order_by: str = Query("begin", alias="orderBy", description="id, begin, end or rate"),
    active: Optional[str] = Query(None, description="1 for running, 0 for stopped entries"),
    exported: Optional[str] = Query(None, description="1 for exported, 0 for not exported entries"),
    begin: Optional[str] = Query(None, description="Only entries beginning at or after this date"),
    end: Optional[str] = Query(None, description="Only entries beginning at or before this date"),
    modified_after: Optional[str] = Query(None, description="Only entries modified after this date"),
    user: Optional[str] = Query(None, description="User ID or 'all' (requires permission)"),
    full: Optional[str] = Query(None, description="Expand project and activity"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    List timesheets visible to the current user.

    Customers, projects and activities accept repeated parameters
    (``project=1&project=2``), plural names and comma separated lists.
    """
    if order.upper() not in ("ASC", "DESC"):
        raise ValidationFailed({"order": [INVALID]})
    if order_by not in ORDER_BY_COLUMNS:
        raise ValidationFailed({"orderBy": [INVALID]})

    dates = DateTimeFactory(current_user.timezone)
    query = TimesheetQuery(
        user_id=_user_scope(user, current_user),
        customers=_id_list(request, "customer", "customers"),
        projects=_id_list(request, "project", "projects"),
        activities=_id_list(request, "activity", "activities"),
        tags=split_tag_names(tags),
        begin=_date("begin", begin, dates),
        end=_date("end", end, dates),
        active=_flag("active", active),
        exported=_flag("exported", exported),
        modified_after=_date("modified_after", modified_after, dates),
        order_by=order_by,
        order=order.upper(),
        page=page,
        size=size,
    )

    try:
        pagination = TimesheetRepository(db).find_page(query)
    except PageOutOfRange as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    response.headers["X-Page"] = str(pagination.page)
    response.headers["X-Per-Page"] = str(pagination.size)
    response.headers["X-Total-Count"] = str(pagination.total)
    response.headers["X-Total-Pages"] = str(pagination.pages)

    expanded = _flag("full", full) is True
    return [serialize_timesheet(ts, full=expanded, entity=False) for ts in pagination.items]


# PUBLIC_INTERFACE
@router.get("/active", response_model=List[TimesheetCollectionFull],
            summary="List running timesheets",
            description="Get the running timesheets of the current user.")
async def list_active_timesheets(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get all running entries of the current user, newest first."""
    timesheets = TimesheetRepository(db).find_active(current_user.id)
    return [serialize_timesheet(ts, full=True, entity=False) for ts in timesheets]


# PUBLIC_INTERFACE
@router.get("/recent", response_model=List[TimesheetCollectionFull],
            summary="List recent timesheets",
            description="Get the latest timesheet of the current user for each distinct project and activity.")
async def list_recent_timesheets(
    size: int = Query(10, ge=1, description="Maximum number of entries"),
    begin: Optional[str] = Query(None, description="Only entries beginning at or after this date"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Get recently used project and activity combinations.

    Returns one entry per project/activity pair, the newest one, ordered
    by begin descending.
    """
    since = _date("begin", begin, DateTimeFactory(current_user.timezone))
    timesheets = TimesheetRepository(db).find_recent(current_user.id, since, size)
    return [serialize_timesheet(ts, full=True, entity=False) for ts in timesheets]


# PUBLIC_INTERFACE
@router.get("/{timesheet_id}", response_model=None,
            summary="Get timesheet",
            description="Get a single timesheet. Use full=true to expand project and activity.")
async def get_timesheet(
    timesheet_id: int,
    full: Optional[str] = Query(None, description="Expand project and activity"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Get a timesheet by ID.

    Raises:
        HTTPException: 404 if the timesheet does not exist, 403 if it may not be viewed
    """
    timesheet = _get_timesheet(db, timesheet_id, current_user, VIEW)
    return serialize_timesheet(timesheet, full=_flag("full", full) is True)


# PUBLIC_INTERFACE
@router.post("", response_model=TimesheetEntity,
             summary="Create timesheet",
             description="Create a timesheet. Without end a running entry is started.")
async def create_timesheet(
    request: TimesheetCreateRequest,
    service: TimesheetService = Depends(get_timesheet_service)
):
    """
    Create a new timesheet.

    Begin defaults to now. Rates are resolved from activity, project,
    customer and user when not given.
    """
    timesheet = service.create(request)
    return serialize_timesheet(timesheet)


# PUBLIC_INTERFACE
@router.patch("/{timesheet_id}", response_model=TimesheetEntity,
              summary="Update timesheet",
              description="Update the given fields of a timesheet.")
async def update_timesheet(
    timesheet_id: int,
    request: TimesheetUpdateRequest,
    service: TimesheetService = Depends(get_timesheet_service),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Partially update a timesheet."""
    timesheet = _get_timesheet(db, timesheet_id, current_user, EDIT)
    timesheet = service.update(timesheet, request)
    return serialize_timesheet(timesheet)


# PUBLIC_INTERFACE
@router.delete("/{timesheet_id}", status_code=status.HTTP_204_NO_CONTENT,
               summary="Delete timesheet",
               description="Delete a timesheet permanently.")
async def delete_timesheet(
    timesheet_id: int,
    service: TimesheetService = Depends(get_timesheet_service),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a timesheet."""
    timesheet = _get_timesheet(db, timesheet_id, current_user, DELETE)
    service.delete(timesheet)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@router.patch("/{timesheet_id}/stop", response_model=TimesheetEntity,
              summary="Stop timesheet",
              description="Stop a running timesheet at the current time.")
async def stop_timesheet(
    timesheet_id: int,
    service: TimesheetService = Depends(get_timesheet_service),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Stop a running timesheet."""
    timesheet = _get_timesheet(db, timesheet_id, current_user, STOP)
    return serialize_timesheet(service.stop(timesheet))


# PUBLIC_INTERFACE
@router.patch("/{timesheet_id}/restart", response_model=TimesheetEntity,
              summary="Restart timesheet",
              description="Start a new running timesheet for the same project and activity. "
                          "With copy=all description, rates, tags and visible meta-fields are copied.")
async def restart_timesheet(
    timesheet_id: int,
    copy: Optional[str] = Query(None, description="'all' to copy the record's data"),
    begin: Optional[str] = Query(None, description="Begin of the new entry (default: now)"),
    service: TimesheetService = Depends(get_timesheet_service),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Restart a timesheet as a new running entry of the current user."""
    timesheet = _get_timesheet(db, timesheet_id, current_user, START)
    return serialize_timesheet(service.restart(timesheet, begin=begin, copy=copy))


# PUBLIC_INTERFACE
@router.patch("/{timesheet_id}/duplicate", response_model=TimesheetEntity,
              summary="Duplicate timesheet",
              description="Create a copy of a timesheet including tags and meta-fields.")
async def duplicate_timesheet(
    timesheet_id: int,
    service: TimesheetService = Depends(get_timesheet_service),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Duplicate a timesheet."""
    timesheet = _get_timesheet(db, timesheet_id, current_user, DUPLICATE)
    return serialize_timesheet(service.duplicate(timesheet))


# PUBLIC_INTERFACE
@router.patch("/{timesheet_id}/export", response_model=TimesheetEntity,
              summary="Toggle export flag",
              description="Switch the exported flag of a timesheet.")
async def export_timesheet(
    timesheet_id: int,
    service: TimesheetService = Depends(get_timesheet_service),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Toggle the exported flag."""
    timesheet = _get_timesheet(db, timesheet_id, current_user, EXPORT)
    return serialize_timesheet(service.toggle_export(timesheet))


# PUBLIC_INTERFACE
@router.patch("/{timesheet_id}/meta", response_model=TimesheetEntity,
              summary="Set meta-field",
              description="Set the value of a registered meta-field.")
async def set_timesheet_meta(
    timesheet_id: int,
    request: Optional[MetaFieldRequest] = None,
    service: TimesheetService = Depends(get_timesheet_service),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Set a meta-field value.

    Raises:
        HTTPException: 404 if the timesheet does not exist, 400 if name or value is missing
        UnknownMetaFieldError: If the meta-field is not registered (500)
    """
    timesheet = _get_timesheet(db, timesheet_id, current_user, EDIT)
    request = request or MetaFieldRequest()
    return serialize_timesheet(service.set_meta(timesheet, request.name, request.value))
