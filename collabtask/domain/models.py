from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column, DateTime, Index, UniqueConstraint
from sqlmodel import Field, SQLModel


def now_utc() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


class SharePermission(StrEnum):
    VIEW = "view"
    EDIT = "edit"
    FULL = "full"


# Caller-controllable task fields and the value each takes when a client omits it.
TASK_FIELD_DEFAULTS: dict[str, Any] = {
    "title": None,
    "description": None,
    "status": "todo",
    "priority": "medium",
    "due_date": None,
}

TERMINAL_TASK_STATUSES = frozenset({"done", "completed", "archived", "canceled"})


def is_active_status(status: str | None) -> bool:
    if status is None:
        return True
    return status.strip().lower() not in TERMINAL_TASK_STATUSES


class EventRecord(SQLModel, table=True):
    __tablename__ = "events"

    event_id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    event_type: str = Field(index=True)
    ts: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True), index=True)
    actor_id: str | None = Field(default=None, index=True)
    payload: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class ActionLog(SQLModel, table=True):
    __tablename__ = "action_logs"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    actor_id: str = Field(index=True)
    task_id: str | None = Field(default=None, index=True)
    action_type: str = Field(index=True)
    ts: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True), index=True)
    detail: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    email: str = Field(index=True, unique=True)
    full_name: str
    created_at: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True), index=True)


class Team(SQLModel, table=True):
    __tablename__ = "teams"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str = Field(index=True)
    description: str | None = None
    created_by: str = Field(index=True)
    created_at: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True), index=True)
    updated_at: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True))


class TeamMember(SQLModel, table=True):
    __tablename__ = "team_members"
    __table_args__ = (
        Index("ix_team_members_team_position", "team_id", "position"),
    )

    team_id: str = Field(foreign_key="teams.id", primary_key=True)
    user_id: str = Field(primary_key=True, index=True)
    position: int = Field(default=0)
    joined_at: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True))


class Task(SQLModel, table=True):
    __tablename__ = "tasks"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    title: str | None = None
    description: str | None = None
    status: str = Field(default="todo", index=True)
    priority: str = Field(default="medium", index=True)
    due_date: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    created_by: str = Field(index=True)
    assigned_user: str | None = Field(default=None, index=True)
    version: int = Field(default=1)
    last_modified: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True))
    updated_by: str | None = None
    created_at: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True), index=True)


class SharedTask(SQLModel, table=True):
    __tablename__ = "shared_tasks"
    __table_args__ = (
        UniqueConstraint("task_id", "team_id", name="uq_shared_tasks_task_team"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    task_id: str = Field(index=True)
    team_id: str = Field(index=True)
    permissions: SharePermission = Field(default=SharePermission.EDIT)
    shared_by: str
    shared_at: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True))


class Subtask(SQLModel, table=True):
    __tablename__ = "subtasks"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    parent_task_id: str = Field(index=True)
    title: str
    is_completed: bool = Field(default=False)
    created_by: str
    created_at: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True))


class Comment(SQLModel, table=True):
    __tablename__ = "comments"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    task_id: str = Field(index=True)
    user_id: str = Field(index=True)
    comment: str
    created_at: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True), index=True)


class Attachment(SQLModel, table=True):
    __tablename__ = "attachments"
    __table_args__ = (
        UniqueConstraint("task_id", "public_id", name="uq_attachments_task_public_id"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    task_id: str = Field(index=True)
    filename: str
    file_url: str
    public_id: str
    uploaded_by: str
    uploaded_at: datetime = Field(default_factory=now_utc, sa_type=DateTime(timezone=True))


class EventEnvelope(BaseModel):
    event_id: str = PydanticField(default_factory=lambda: str(uuid4()))
    event_type: str
    ts: datetime = PydanticField(default_factory=now_utc)
    actor_id: str | None = None
    payload: dict[str, Any]


class ORMReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    email: str
    full_name: str


class UserRead(ORMReadModel):
    id: str
    email: str
    full_name: str
    created_at: datetime


class DevLoginRequest(BaseModel):
    email: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TaskCreate(BaseModel):
    title: str
    description: str | None = None
    status: str = "todo"
    priority: str = "medium"
    due_date: datetime | None = None
    assigned_user: str | None = None
    assignee_email: str | None = None


class TaskUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    due_date: datetime | None = None
    assignee_email: str | None = None
    version: int | None = None
    last_modified: datetime | None = None


class TaskConflictPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    due_date: datetime | None = None
    assigned_user: str | None = None
    assignee_email: str | None = None


class TaskConflictResolveRequest(BaseModel):
    strategy: str
    client_task: TaskConflictPayload


class TaskAssignRequest(BaseModel):
    assignee_id: str


class SmartAssignRequest(BaseModel):
    team_id: str | None = None


class TaskRead(ORMReadModel):
    id: str
    title: str | None
    description: str | None
    status: str
    priority: str
    due_date: datetime | None
    created_by: str
    assigned_user: str | None
    version: int
    last_modified: datetime
    updated_by: str | None
    created_at: datetime


class SharedWithRead(BaseModel):
    team_id: str
    team_name: str | None
    permissions: SharePermission
    shared_by: str
    shared_at: datetime


class TaskDetailRead(TaskRead):
    shared_with: list[SharedWithRead] = PydanticField(default_factory=list)


class SmartAssignRead(BaseModel):
    task: TaskRead
    note: str


class TaskCountRead(BaseModel):
    total: int


class TeamCreate(BaseModel):
    name: str
    description: str | None = None


class TeamUpdate(BaseModel):
    name: str | None = None
    description: str | None = None


class TeamInviteRequest(BaseModel):
    email: str


class TeamRead(ORMReadModel):
    id: str
    name: str
    description: str | None
    created_by: str
    created_at: datetime
    members: list[str] = PydanticField(default_factory=list)


class ShareCreate(BaseModel):
    task_id: str
    team_id: str
    permissions: SharePermission = SharePermission.EDIT


class SharePermissionsUpdate(BaseModel):
    permissions: SharePermission


class SharedTaskRead(ORMReadModel):
    id: str
    task_id: str
    team_id: str
    permissions: SharePermission
    shared_by: str
    shared_at: datetime


class SubtaskCreate(BaseModel):
    title: str
    is_completed: bool = False


class SubtaskUpdate(BaseModel):
    title: str | None = None
    is_completed: bool | None = None


class SubtaskRead(ORMReadModel):
    id: str
    parent_task_id: str
    title: str
    is_completed: bool
    created_by: str
    created_at: datetime
    updated_at: datetime


class CommentCreate(BaseModel):
    comment: str


class CommentRead(ORMReadModel):
    id: str
    task_id: str
    user_id: str
    comment: str
    created_at: datetime


class AttachmentCreate(BaseModel):
    filename: str
    file_url: str
    public_id: str


class AttachmentRead(ORMReadModel):
    id: str
    task_id: str
    filename: str
    file_url: str
    public_id: str
    uploaded_by: str
    uploaded_at: datetime


class ActionLogRead(ORMReadModel):
    id: str
    actor_id: str
    task_id: str | None
    action_type: str
    ts: datetime
    detail: dict[str, Any]


def task_snapshot(task: Task) -> dict[str, Any]:
    return TaskRead.model_validate(task).model_dump(mode="json")
