"""
Timesheet queries: filtering, ordering, pagination and lookups.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..database.models import Timesheet, TimesheetTag, Project, Tag

ORDER_BY_COLUMNS = {
    "id": Timesheet.id,
    "begin": Timesheet.begin,
    "end": Timesheet.end,
    "rate": Timesheet.rate,
}

DEFAULT_PAGE_SIZE = 50


@dataclass
class TimesheetQuery:
    """Filter and paging options for timesheet lists."""
    user_id: Optional[int] = None  # None means all users
    customers: List[int] = field(default_factory=list)
    projects: List[int] = field(default_factory=list)
    activities: List[int] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    begin: Optional[datetime] = None
    end: Optional[datetime] = None
    active: Optional[bool] = None
    exported: Optional[bool] = None
    modified_after: Optional[datetime] = None
    order_by: str = "begin"
    order: str = "DESC"
    page: int = 1
    size: int = DEFAULT_PAGE_SIZE


@dataclass
class Pagination:
    """One page of a query result."""
    items: List[Timesheet]
    page: int
    size: int
    total: int

    @property
    def pages(self) -> int:
        return max(1, math.ceil(self.total / self.size))


class PageOutOfRange(Exception):
    """Raised when the requested page is beyond the last page."""

    def __init__(self, page: int, pages: int):
        super().__init__(f'Page "{page}" does not exist. The currentPage must be inferior to "{pages}"')
        self.page = page
        self.pages = pages


def split_tag_names(value: Optional[str]) -> List[str]:
    """Split a comma separated tag list, dropping blanks and duplicates."""
    if not value:
        return []
    names: List[str] = []
    for name in value.split(","):
        name = name.strip()
        if name and name.lower() not in (n.lower() for n in names):
            names.append(name)
    return names


class TimesheetRepository:
    """Data access for timesheets and tags."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, timesheet_id: int) -> Optional[Timesheet]:
        return self.db.get(Timesheet, timesheet_id)

    def find_tags(self, names: List[str]) -> List[Tag]:
        """Find existing tags, matching names case-insensitively."""
        if not names:
            return []
        lowered = [name.lower() for name in names]
        return self.db.query(Tag).filter(func.lower(Tag.name).in_(lowered)).all()

    def find_or_create_tags(self, names: List[str]) -> List[Tag]:
        """Resolve tag names in the given order, creating missing tags."""
        existing = {tag.name.lower(): tag for tag in self.find_tags(names)}
        tags = []
        for name in names:
            tag = existing.get(name.lower())
            if tag is None:
                tag = Tag(name=name)
                self.db.add(tag)
                existing[name.lower()] = tag
            tags.append(tag)
        return tags

    def _filtered(self, query: TimesheetQuery):
        q = self.db.query(Timesheet)

        if query.user_id is not None:
            q = q.filter(Timesheet.user_id == query.user_id)
        if query.customers:
            q = q.join(Project, Timesheet.project_id == Project.id).filter(Project.customer_id.in_(query.customers))
        if query.projects:
            q = q.filter(Timesheet.project_id.in_(query.projects))
        if query.activities:
            q = q.filter(Timesheet.activity_id.in_(query.activities))
        if query.tags:
            # unknown tag names are ignored; no known name means no tag filter
            tag_ids = [tag.id for tag in self.find_tags(query.tags)]
            if tag_ids:
                q = q.filter(Timesheet.tag_links.any(TimesheetTag.tag_id.in_(tag_ids)))
        if query.begin is not None:
            q = q.filter(Timesheet.begin >= query.begin)
        if query.end is not None:
            q = q.filter(Timesheet.begin <= query.end)
        if query.active is True:
            q = q.filter(Timesheet.end.is_(None))
        elif query.active is False:
            q = q.filter(Timesheet.end.isnot(None))
        if query.exported is not None:
            q = q.filter(Timesheet.exported == query.exported)
        if query.modified_after is not None:
            q = q.filter(Timesheet.modified_at > query.modified_after)
        return q

    def find_page(self, query: TimesheetQuery) -> Pagination:
        """
        Find one page of timesheets matching the query.

        Args:
            query: Filter, ordering and paging options

        Returns:
            Pagination: The requested page and the total count

        Raises:
            PageOutOfRange: If the page is beyond the last page
        """
        q = self._filtered(query)
        total = q.count()
        pagination = Pagination(items=[], page=query.page, size=query.size, total=total)
        if query.page > pagination.pages:
            raise PageOutOfRange(query.page, pagination.pages)

        column = ORDER_BY_COLUMNS[query.order_by]
        if query.order.upper() == "ASC":
            q = q.order_by(column.asc(), Timesheet.id.asc())
        else:
            q = q.order_by(column.desc(), Timesheet.id.desc())

        pagination.items = q.offset((query.page - 1) * query.size).limit(query.size).all()
        return pagination

    def find_active(self, user_id: int) -> List[Timesheet]:
        return self.db.query(Timesheet).filter(
            Timesheet.user_id == user_id,
            Timesheet.end.is_(None)
        ).order_by(Timesheet.begin.desc(), Timesheet.id.desc()).all()

    def find_recent(self, user_id: Optional[int], begin: Optional[datetime], limit: int) -> List[Timesheet]:
        """Latest timesheet per distinct project/activity pair, newest first."""
        latest = select(func.max(Timesheet.id))
        if user_id is not None:
            latest = latest.where(Timesheet.user_id == user_id)
        if begin is not None:
            latest = latest.where(Timesheet.begin >= begin)
        latest = latest.group_by(Timesheet.project_id, Timesheet.activity_id)

        return self.db.query(Timesheet).filter(
            Timesheet.id.in_(latest)
        ).order_by(Timesheet.begin.desc(), Timesheet.id.desc()).limit(limit).all()
