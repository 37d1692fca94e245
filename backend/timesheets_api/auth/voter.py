"""
Role based permissions for timesheet records.
"""
from typing import Dict, FrozenSet
from fastapi import HTTPException, status

from ..database.models import Timesheet, User, UserRole

VIEW = "view"
EDIT = "edit"
DELETE = "delete"
STOP = "stop"
START = "start"
DUPLICATE = "duplicate"
EXPORT = "export"

ATTRIBUTES = (VIEW, EDIT, DELETE, STOP, START, DUPLICATE, EXPORT)

_USER_PERMISSIONS = frozenset({
    "view_own_timesheet",
    "edit_own_timesheet",
    "delete_own_timesheet",
    "start_own_timesheet",
    "create_own_timesheet",
})

_TEAMLEAD_PERMISSIONS = _USER_PERMISSIONS | frozenset({
    "view_other_timesheet",
    "edit_other_timesheet",
    "delete_other_timesheet",
    "start_other_timesheet",
    "create_other_timesheet",
    "edit_export_own_timesheet",
    "edit_export_other_timesheet",
})

_ADMIN_PERMISSIONS = _TEAMLEAD_PERMISSIONS | frozenset({
    "edit_exported_timesheet",
})

ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[str]] = {
    UserRole.USER: _USER_PERMISSIONS,
    UserRole.TEAMLEAD: _TEAMLEAD_PERMISSIONS,
    UserRole.ADMIN: _ADMIN_PERMISSIONS,
}

# attribute -> permission prefix; "_own_timesheet" / "_other_timesheet" is appended
_PERMISSION_PREFIX = {
    VIEW: "view",
    EDIT: "edit",
    DELETE: "delete",
    STOP: "edit",
    START: "start",
    DUPLICATE: "edit",
    EXPORT: "edit_export",
}

# attributes that mutate the record and are locked once it is exported
_LOCKED_WHEN_EXPORTED = frozenset({EDIT, DELETE, STOP, DUPLICATE})


def has_permission(user: User, permission: str) -> bool:
    return permission in ROLE_PERMISSIONS.get(user.role, frozenset())


def can_view_other_timesheets(user: User) -> bool:
    return has_permission(user, "view_other_timesheet")


class TimesheetVoter:
    """Decides whether a user may apply an attribute to a timesheet."""

    def vote(self, user: User, attribute: str, timesheet: Timesheet) -> bool:
        if attribute not in ATTRIBUTES:
            raise ValueError(f"Unknown timesheet attribute: {attribute}")

        suffix = "own" if timesheet.user_id == user.id else "other"
        if not has_permission(user, f"{_PERMISSION_PREFIX[attribute]}_{suffix}_timesheet"):
            return False

        if timesheet.exported and attribute in _LOCKED_WHEN_EXPORTED:
            return has_permission(user, "edit_exported_timesheet")

        return True

    def deny_unless_granted(self, user: User, attribute: str, timesheet: Timesheet):
        """
        Raise a 403 error unless the user is granted the attribute.

        Raises:
            HTTPException: If access is denied
        """
        if not self.vote(user, attribute, timesheet):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied."
            )


voter = TimesheetVoter()
