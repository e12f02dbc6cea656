"""SQLModel tables for projects, tasks and direct messages."""

import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, Column, DateTime
from sqlalchemy import UniqueConstraint, func


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything is stored as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


class Project(SQLModel, table=True):
    """Project grouping tasks and members."""

    __tablename__ = "projects"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    owner_id: Optional[int] = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )


class ProjectMember(SQLModel, table=True):
    """Project membership."""

    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True, max_length=36)
    user_id: int = Field(foreign_key="users.id", index=True)
    role: str = Field(default="MEMBER", max_length=50)


class Task(SQLModel, table=True):
    """Tracked work item."""

    __tablename__ = "tasks"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    task_number: int = Field(default=0, index=True)
    title: str = Field(max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: str = Field(default="NEW", index=True, max_length=20)
    priority: str = Field(default="MEDIUM", max_length=20)
    network_type: Optional[str] = Field(default=None, max_length=50)
    due_date: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    is_archived: bool = Field(default=False, index=True)
    assignee_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    creator_id: int = Field(foreign_key="users.id", index=True)
    project_id: Optional[str] = Field(default=None, foreign_key="projects.id", index=True, max_length=36)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class Message(SQLModel, table=True):
    """Direct message between two employees."""

    __tablename__ = "messages"

    id: Optional[int] = Field(default=None, primary_key=True)
    sender_id: int = Field(foreign_key="users.id", index=True)
    receiver_id: int = Field(foreign_key="users.id", index=True)
    content: str = Field(max_length=10000)
    is_read: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
