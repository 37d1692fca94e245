"""
Test data helpers for timesheets.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from timesheets_api.database.models import Activity, Project, Timesheet, User
from timesheets_api.timesheet.calculator import TimesheetCalculator
from timesheets_api.timesheet.repository import TimesheetRepository

DEFAULT_START = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


def create_timesheets(
    db: Session,
    user: User,
    project: Project,
    activity: Activity,
    amount: int = 1,
    start: datetime = DEFAULT_START,
    step: timedelta = timedelta(days=1),
    duration: timedelta = timedelta(hours=1),
    running: bool = False,
    exported: bool = False,
    tags: Optional[List[str]] = None,
    meta: Optional[Dict[str, tuple]] = None,
    description: Optional[str] = None,
    hourly_rate: Optional[float] = None,
    fixed_rate: Optional[float] = None,
) -> List[Timesheet]:
    """
    Create and persist timesheets, one per ``step`` beginning at ``start``.

    Args:
        meta: name -> (value, visible)

    Returns:
        List[Timesheet]: The created timesheets in creation order
    """
    repository = TimesheetRepository(db)
    calculator = TimesheetCalculator()
    timesheets = []
    for i in range(amount):
        begin = start + step * i
        timesheet = Timesheet(
            user=user,
            project=project,
            activity=activity,
            begin=begin,
            end=None if running else begin + duration,
            timezone=user.timezone,
            description=description,
            hourly_rate=hourly_rate,
            fixed_rate=fixed_rate,
            billable=True,
            exported=exported,
        )
        for tag in repository.find_or_create_tags(tags or []):
            timesheet.add_tag(tag)
        for name, (value, visible) in (meta or {}).items():
            timesheet.set_meta_field(name, value, visible=visible)
        calculator.calculate(timesheet)
        db.add(timesheet)
        db.commit()
        timesheets.append(timesheet)

    for timesheet in timesheets:
        db.refresh(timesheet)
    return timesheets
