"""
SQLAlchemy database models for the timesheets API.

Defines all database tables and relationships for users, customers,
projects, activities, timesheets, tags, meta-fields and system configuration.
"""
import os
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text, Float,
    ForeignKey, UniqueConstraint, Index, Enum, TypeDecorator
)
from sqlalchemy.orm import declarative_base, relationship
import enum

Base = declarative_base()

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime column stored as naive UTC.

    SQLite drops offsets, so values are normalized to UTC on the way in
    and tagged as UTC on the way out.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime given for a timezone-aware column")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class UserRole(str, enum.Enum):
    """User roles, ordered by privilege."""
    USER = "user"
    TEAMLEAD = "teamlead"
    ADMIN = "admin"


class User(Base):
    """User model."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(180), nullable=False, unique=True)
    email = Column(String(180), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER)
    active = Column(Boolean, nullable=False, default=True)
    timezone = Column(String(64), nullable=False, default=DEFAULT_TIMEZONE)
    hourly_rate = Column(Float, nullable=True)
    internal_rate = Column(Float, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    # Relationships
    timesheets = relationship("Timesheet", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role={self.role})>"


class Customer(Base):
    """Customer model, owner of projects."""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    visible = Column(Boolean, nullable=False, default=True)
    billable = Column(Boolean, nullable=False, default=True)
    hourly_rate = Column(Float, nullable=True)
    fixed_rate = Column(Float, nullable=True)

    # Relationships
    projects = relationship("Project", back_populates="customer", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}')>"


class Project(Base):
    """Project model for time tracking."""
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    name = Column(String(150), nullable=False)
    visible = Column(Boolean, nullable=False, default=True)
    hourly_rate = Column(Float, nullable=True)
    fixed_rate = Column(Float, nullable=True)

    # Relationships
    customer = relationship("Customer", back_populates="projects")
    activities = relationship("Activity", back_populates="project")

    __table_args__ = (
        Index('idx_project_customer', 'customer_id'),
    )

    def __repr__(self):
        return f"<Project(id={self.id}, name='{self.name}', customer_id={self.customer_id})>"


class Activity(Base):
    """Activity model; activities without a project are global."""
    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True)
    name = Column(String(150), nullable=False)
    visible = Column(Boolean, nullable=False, default=True)
    hourly_rate = Column(Float, nullable=True)
    fixed_rate = Column(Float, nullable=True)

    # Relationships
    project = relationship("Project", back_populates="activities")

    def __repr__(self):
        return f"<Activity(id={self.id}, name='{self.name}', project_id={self.project_id})>"


class Tag(Base):
    """Tag model; names are unique and matched case-insensitively."""
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)

    def __repr__(self):
        return f"<Tag(id={self.id}, name='{self.name}')>"


class Timesheet(Base):
    """Timesheet record; ``end`` is null while the entry is running."""
    __tablename__ = "timesheets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False)
    activity_id = Column(Integer, ForeignKey("activities.id"), nullable=False)
    begin = Column(UTCDateTime, nullable=False)
    end = Column(UTCDateTime, nullable=True)
    timezone = Column(String(64), nullable=False, default=DEFAULT_TIMEZONE)
    duration = Column(Integer, nullable=False, default=0)  # seconds
    description = Column(Text, nullable=True)
    hourly_rate = Column(Float, nullable=True)
    fixed_rate = Column(Float, nullable=True)
    rate = Column(Float, nullable=False, default=0.0)
    internal_rate = Column(Float, nullable=True)
    billable = Column(Boolean, nullable=False, default=True)
    exported = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    modified_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)

    # Relationships
    user = relationship("User", back_populates="timesheets")
    project = relationship("Project")
    activity = relationship("Activity")
    tag_links = relationship("TimesheetTag", back_populates="timesheet",
                             cascade="all, delete-orphan", order_by="TimesheetTag.id")
    meta_fields = relationship("TimesheetMeta", back_populates="timesheet",
                               cascade="all, delete-orphan", order_by="TimesheetMeta.id")

    __table_args__ = (
        Index('idx_timesheet_user_begin', 'user_id', 'begin'),
        Index('idx_timesheet_end', 'end'),
        Index('idx_timesheet_project_activity', 'project_id', 'activity_id'),
    )

    @property
    def is_running(self) -> bool:
        return self.end is None

    @property
    def tags(self):
        return [link.tag for link in self.tag_links]

    @property
    def tag_names(self):
        return [link.tag.name for link in self.tag_links]

    def add_tag(self, tag: Tag):
        if any(link.tag is tag for link in self.tag_links):
            return
        self.tag_links.append(TimesheetTag(tag=tag))

    def get_meta_field(self, name: str):
        for meta in self.meta_fields:
            if meta.name == name:
                return meta
        return None

    def set_meta_field(self, name: str, value, visible: bool = False):
        meta = self.get_meta_field(name)
        if meta is None:
            meta = TimesheetMeta(name=name)
            self.meta_fields.append(meta)
        meta.value = value
        meta.visible = visible
        return meta

    def __repr__(self):
        return f"<Timesheet(id={self.id}, user_id={self.user_id}, begin={self.begin}, end={self.end})>"


class TimesheetTag(Base):
    """Ordered association between timesheets and tags."""
    __tablename__ = "timesheet_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timesheet_id = Column(Integer, ForeignKey("timesheets.id"), nullable=False)
    tag_id = Column(Integer, ForeignKey("tags.id"), nullable=False)

    # Relationships
    timesheet = relationship("Timesheet", back_populates="tag_links")
    tag = relationship("Tag")

    __table_args__ = (
        UniqueConstraint('timesheet_id', 'tag_id', name='uq_timesheet_tag'),
    )

    def __repr__(self):
        return f"<TimesheetTag(timesheet_id={self.timesheet_id}, tag_id={self.tag_id})>"


class TimesheetMeta(Base):
    """Named meta-field value attached to a timesheet."""
    __tablename__ = "timesheet_meta"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timesheet_id = Column(Integer, ForeignKey("timesheets.id"), nullable=False)
    name = Column(String(50), nullable=False)
    value = Column(Text, nullable=True)
    visible = Column(Boolean, nullable=False, default=False)

    # Relationships
    timesheet = relationship("Timesheet", back_populates="meta_fields")

    __table_args__ = (
        UniqueConstraint('timesheet_id', 'name', name='uq_timesheet_meta_name'),
    )

    def __repr__(self):
        return f"<TimesheetMeta(timesheet_id={self.timesheet_id}, name='{self.name}')>"


class Configuration(Base):
    """System configuration override, stored as a string."""
    __tablename__ = "configuration"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    value = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<Configuration(name='{self.name}', value='{self.value}')>"
