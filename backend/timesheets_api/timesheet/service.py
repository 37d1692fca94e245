"""
Timesheet service.

Applies the business rules behind the timesheet endpoints: reference
validation, date parsing in the caller's timezone, rounding and rate
calculation, the long running rule, the active entries limit, tags and
meta-fields. Every public operation runs as one unit of work; on any error
the session is rolled back and nothing is persisted.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ..auth.voter import has_permission
from ..configuration import SystemConfiguration
from ..database.models import Activity, Project, Timesheet, User, utc_now
from ..errors import ValidationErrors, ValidationFailed
from ..schemas.timesheet import TimesheetCreateRequest, TimesheetUpdateRequest
from .calculator import TimesheetCalculator
from .dates import DateTimeFactory
from .meta_fields import MetaFieldRegistry, meta_field_registry
from .repository import TimesheetRepository, split_tag_names

logger = logging.getLogger(__name__)

BLANK = "This value should not be blank."
INVALID = "This value is not valid."
ACTIVITY_PROJECT_MISMATCH = "Activity needs to be global or belong to the selected project."
END_BEFORE_BEGIN = "End date must not be earlier than start date."
ALREADY_STOPPED = "Timesheet entry already stopped."
NOT_NULL = 'Parameter "{}" of value "NULL" violated a constraint "This value should not be null."'

COPY_ALL = "all"


def _access_denied() -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied.")


class TimesheetService:
    """Timesheet operations on behalf of the current user."""

    def __init__(self, db: Session, configuration: SystemConfiguration, current_user: User,
                 meta_fields: MetaFieldRegistry = meta_field_registry):
        self.db = db
        self.configuration = configuration
        self.current_user = current_user
        self.meta_fields = meta_fields
        self.repository = TimesheetRepository(db)
        self.dates = DateTimeFactory(current_user.timezone)

    @contextmanager
    def _unit_of_work(self):
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # Reference resolution

    def _resolve_project(self, project_id: Optional[int], errors: ValidationErrors) -> Optional[Project]:
        if project_id is None:
            errors.add("project", BLANK)
            return None
        project = self.db.get(Project, project_id)
        # hidden projects or projects of hidden customers cannot be booked
        if project is None or not project.visible or not project.customer.visible:
            errors.add("project", INVALID)
            return None
        return project

    def _resolve_activity(self, activity_id: Optional[int], errors: ValidationErrors) -> Optional[Activity]:
        if activity_id is None:
            errors.add("activity", BLANK)
            return None
        activity = self.db.get(Activity, activity_id)
        if activity is None or not activity.visible:
            errors.add("activity", INVALID)
            return None
        return activity

    @staticmethod
    def _check_activity_project(activity: Optional[Activity], project: Optional[Project], errors: ValidationErrors):
        if activity is None or project is None or "activity" in errors:
            return
        if activity.project_id is not None and activity.project_id != project.id:
            errors.add("activity", ACTIVITY_PROJECT_MISMATCH)

    def _resolve_owner(self, user_id: Optional[int], errors: ValidationErrors) -> Optional[User]:
        if user_id is None or user_id == self.current_user.id:
            return self.current_user
        if not has_permission(self.current_user, "create_other_timesheet"):
            raise _access_denied()
        user = self.db.get(User, user_id)
        if user is None or not user.active:
            errors.add("user", INVALID)
            return None
        return user

    def _parse(self, field: str, value: Optional[str], errors: ValidationErrors) -> Optional[datetime]:
        try:
            return self.dates.parse(value)
        except ValueError:
            errors.add(field, INVALID)
            return None

    def _deny_export_unless_granted(self, owner_id: int):
        suffix = "own" if owner_id == self.current_user.id else "other"
        if not has_permission(self.current_user, f"edit_export_{suffix}_timesheet"):
            raise _access_denied()

    def _apply_tags(self, timesheet: Timesheet, value: Optional[str]):
        tags = self.repository.find_or_create_tags(split_tag_names(value))
        wanted = {id(tag) for tag in tags}
        for link in list(timesheet.tag_links):
            if id(link.tag) not in wanted:
                timesheet.tag_links.remove(link)
        for tag in tags:
            timesheet.add_tag(tag)

    # Calculation and rules

    def _calculate(self, timesheet: Timesheet, errors: ValidationErrors):
        if timesheet.end is not None and timesheet.end < timesheet.begin:
            errors.add("end", END_BEFORE_BEGIN)
            return
        TimesheetCalculator(self.configuration.rounding).calculate(timesheet)

        max_minutes = self.configuration.long_running_duration
        if max_minutes > 0 and timesheet.end is not None and timesheet.duration > max_minutes * 60:
            hours, minutes = divmod(max_minutes, 60)
            errors.add("duration", f"Maximum {hours}:{minutes:02d} hours allowed.")

    def _stop_active_entries(self, user: User):
        """Stop the oldest running entries so a new one fits into the hard limit."""
        limit = self.configuration.active_entries_hard_limit
        active = self.repository.find_active(user.id)
        calculator = TimesheetCalculator(self.configuration.rounding)
        for timesheet in active[limit - 1:]:
            timesheet.end = self.dates.now()
            calculator.calculate(timesheet)
            logger.info(f"Stopped active timesheet {timesheet.id} of user {user.id} (hard limit {limit})")

    # Operations

    def create(self, request: TimesheetCreateRequest) -> Timesheet:
        """
        Create a timesheet.

        Args:
            request: Creation payload

        Returns:
            Timesheet: The persisted timesheet

        Raises:
            ValidationFailed: On invalid references or times
            HTTPException: 403 when booking for another user or setting the export flag without permission
        """
        with self._unit_of_work():
            errors = ValidationErrors()
            owner = self._resolve_owner(request.user, errors)
            project = self._resolve_project(request.project, errors)
            activity = self._resolve_activity(request.activity, errors)
            self._check_activity_project(activity, project, errors)
            begin = self._parse("begin", request.begin, errors) if request.begin else self.dates.now()
            end = self._parse("end", request.end, errors) if request.end else None
            if request.exported:
                self._deny_export_unless_granted(owner.id if owner is not None else self.current_user.id)
            errors.raise_if_any()

            timesheet = Timesheet(
                user=owner,
                project=project,
                activity=activity,
                begin=begin,
                end=end,
                timezone=self.dates.tz_name,
                description=request.description,
                hourly_rate=request.hourly_rate,
                fixed_rate=request.fixed_rate,
                billable=request.billable if request.billable is not None else project.customer.billable,
                exported=bool(request.exported),
            )
            self._apply_tags(timesheet, request.tags)
            self._calculate(timesheet, errors)
            errors.raise_if_any()

            if timesheet.is_running:
                self._stop_active_entries(owner)
            self.db.add(timesheet)

        self.db.refresh(timesheet)
        logger.info(f"Timesheet {timesheet.id} created for user {timesheet.user_id} by {self.current_user.id}")
        return timesheet

    def update(self, timesheet: Timesheet, request: TimesheetUpdateRequest) -> Timesheet:
        """
        Apply a partial update; only fields present in the request are changed.

        Raises:
            ValidationFailed: On invalid references or times
            HTTPException: 403 when reassigning or changing the export flag without permission
        """
        sent = request.model_fields_set
        with self._unit_of_work():
            errors = ValidationErrors()

            if "user" in sent and request.user is not None and request.user != timesheet.user_id:
                if not has_permission(self.current_user, "edit_other_timesheet"):
                    raise _access_denied()
                owner = self._resolve_owner(request.user, errors)
                if owner is not None:
                    timesheet.user = owner
            if "project" in sent:
                project = self._resolve_project(request.project, errors)
                if project is not None:
                    timesheet.project = project
            if "activity" in sent:
                activity = self._resolve_activity(request.activity, errors)
                if activity is not None:
                    timesheet.activity = activity
            if "project" in sent or "activity" in sent:
                self._check_activity_project(timesheet.activity, timesheet.project, errors)

            if "begin" in sent:
                if request.begin is None:
                    errors.add("begin", BLANK)
                else:
                    begin = self._parse("begin", request.begin, errors)
                    if begin is not None:
                        timesheet.begin = begin
            if "end" in sent:
                if request.end is None:
                    timesheet.end = None
                else:
                    end = self._parse("end", request.end, errors)
                    if end is not None:
                        timesheet.end = end

            if "description" in sent:
                timesheet.description = request.description
            if "billable" in sent and request.billable is not None:
                timesheet.billable = request.billable
            if "hourly_rate" in sent:
                timesheet.hourly_rate = request.hourly_rate
            if "fixed_rate" in sent:
                timesheet.fixed_rate = request.fixed_rate
            if "tags" in sent:
                self._apply_tags(timesheet, request.tags)
            if "exported" in sent and request.exported is not None and request.exported != timesheet.exported:
                self._deny_export_unless_granted(timesheet.user_id)
                timesheet.exported = request.exported

            if not errors:
                self._calculate(timesheet, errors)
            errors.raise_if_any()
            timesheet.modified_at = utc_now()

        self.db.refresh(timesheet)
        logger.info(f"Timesheet {timesheet.id} updated by {self.current_user.id}")
        return timesheet

    def stop(self, timesheet: Timesheet) -> Timesheet:
        """
        Stop a running timesheet at the current time.

        Raises:
            ValidationFailed: If already stopped or the long running rule is violated
        """
        with self._unit_of_work():
            if not timesheet.is_running:
                raise ValidationFailed({"end": [ALREADY_STOPPED]})
            errors = ValidationErrors()
            timesheet.end = self.dates.now()
            self._calculate(timesheet, errors)
            errors.raise_if_any()
            timesheet.modified_at = utc_now()

        self.db.refresh(timesheet)
        logger.info(f"Timesheet {timesheet.id} stopped by {self.current_user.id}")
        return timesheet

    def restart(self, timesheet: Timesheet, begin: Optional[str] = None, copy: Optional[str] = None) -> Timesheet:
        """
        Start a new running entry for the current user from an existing one.

        Project and activity are always taken over. With ``copy=all`` the
        description, rates, tags and visible meta-fields are copied too.

        Args:
            timesheet: Source timesheet
            begin: Optional begin of the new entry (default: now)
            copy: ``all`` to copy the record's data

        Returns:
            Timesheet: The new running timesheet
        """
        with self._unit_of_work():
            errors = ValidationErrors()
            start = self._parse("begin", begin, errors) if begin else self.dates.now()
            errors.raise_if_any()

            restarted = Timesheet(
                user=self.current_user,
                project=timesheet.project,
                activity=timesheet.activity,
                begin=start,
                end=None,
                timezone=self.dates.tz_name,
                billable=timesheet.billable,
            )
            if copy == COPY_ALL:
                restarted.description = timesheet.description
                restarted.hourly_rate = timesheet.hourly_rate
                restarted.fixed_rate = timesheet.fixed_rate
                for tag in timesheet.tags:
                    restarted.add_tag(tag)
                for meta in timesheet.meta_fields:
                    if meta.visible:
                        restarted.set_meta_field(meta.name, meta.value, visible=True)

            self._calculate(restarted, errors)
            errors.raise_if_any()
            self._stop_active_entries(self.current_user)
            self.db.add(restarted)

        self.db.refresh(restarted)
        logger.info(f"Timesheet {timesheet.id} restarted as {restarted.id} by {self.current_user.id}")
        return restarted

    def duplicate(self, timesheet: Timesheet) -> Timesheet:
        """Clone a timesheet including tags and meta-fields; the copy is not exported."""
        with self._unit_of_work():
            errors = ValidationErrors()
            copy = Timesheet(
                user=timesheet.user,
                project=timesheet.project,
                activity=timesheet.activity,
                begin=timesheet.begin,
                end=timesheet.end,
                timezone=timesheet.timezone,
                description=timesheet.description,
                hourly_rate=timesheet.hourly_rate,
                fixed_rate=timesheet.fixed_rate,
                billable=timesheet.billable,
                exported=False,
            )
            for tag in timesheet.tags:
                copy.add_tag(tag)
            for meta in timesheet.meta_fields:
                copy.set_meta_field(meta.name, meta.value, visible=meta.visible)

            self._calculate(copy, errors)
            errors.raise_if_any()
            self.db.add(copy)

        self.db.refresh(copy)
        logger.info(f"Timesheet {timesheet.id} duplicated as {copy.id} by {self.current_user.id}")
        return copy

    def toggle_export(self, timesheet: Timesheet) -> Timesheet:
        with self._unit_of_work():
            timesheet.exported = not timesheet.exported
            timesheet.modified_at = utc_now()

        self.db.refresh(timesheet)
        logger.info(f"Timesheet {timesheet.id} exported={timesheet.exported} by {self.current_user.id}")
        return timesheet

    def set_meta(self, timesheet: Timesheet, name: Optional[str], value: Optional[str]) -> Timesheet:
        """
        Set the value of a registered meta-field.

        Raises:
            HTTPException: 400 if name or value is missing
            UnknownMetaFieldError: If the name is not registered
        """
        if name is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=NOT_NULL.format("name"))
        if value is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=NOT_NULL.format("value"))
        definition = self.meta_fields.get(name)

        with self._unit_of_work():
            timesheet.set_meta_field(name, value, visible=definition.visible)
            timesheet.modified_at = utc_now()

        self.db.refresh(timesheet)
        logger.info(f"Timesheet {timesheet.id} meta-field '{name}' set by {self.current_user.id}")
        return timesheet

    def delete(self, timesheet: Timesheet):
        timesheet_id = timesheet.id
        with self._unit_of_work():
            self.db.delete(timesheet)
        logger.info(f"Timesheet {timesheet_id} deleted by {self.current_user.id}")
