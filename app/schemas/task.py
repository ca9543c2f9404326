from datetime import date, datetime
from typing import Literal

from pydantic import Field, field_validator
from app.utils.sanitization import sanitize_string, blank_to_none
from app.schemas.user import CamelModel, UserResponse
from app.schemas.project import Project

TaskStatus = Literal["not-started", "in-progress", "completed"]


# ── Common base for readable/writeable fields ──
class TaskBase(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    project_id: int
    due_date: datetime | None = None

    @field_validator("title", mode="before")
    @classmethod
    def sanitize_title(cls, v):
        return sanitize_string(v)

    @field_validator("description", mode="before")
    @classmethod
    def sanitize_description(cls, v):
        return blank_to_none(v)


class TaskCreate(TaskBase):
    status: TaskStatus = "not-started"


class CoWorkTaskCreate(TaskBase):
    """Tasks posted straight to the shared pool always start out not-started."""


class TaskUpdate(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    status: TaskStatus | None = None
    project_id: int | None = None
    due_date: datetime | None = None

    @field_validator("title", mode="before")
    @classmethod
    def sanitize_title(cls, v):
        return sanitize_string(v)

    @field_validator("description", mode="before")
    @classmethod
    def sanitize_description(cls, v):
        return blank_to_none(v)


class TaskStatusUpdate(CamelModel):
    status: TaskStatus


class ArchiveRequest(CamelModel):
    before: date | None = None
    status: TaskStatus | None = None
    project_id: int | None = None


class Task(CamelModel):
    id: int
    title: str
    description: str | None = None
    status: str
    user_id: int
    project_id: int | None = None
    created_at: datetime
    due_date: datetime | None = None
    is_co_work: bool
    is_archived: bool
    username: str | None = None
    project_name: str | None = None
    original_user_id: int | None = None
    original_username: str | None = None


class BulkDeleteResult(CamelModel):
    deleted_count: int
    start_date: date
    end_date: date


class BackupSnapshot(CamelModel):
    users: list[UserResponse]
    projects: list[Project]
    tasks: list[Task]
    timestamp: datetime


class RestoreResult(CamelModel):
    users: int
    projects: int
    tasks: int
