from datetime import datetime

from pydantic import Field, field_validator
from app.schemas.user import CamelModel
from app.utils.sanitization import sanitize_string


class ProjectCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    is_active: bool = True

    @field_validator("name", mode="before")
    @classmethod
    def sanitize(cls, v):
        return sanitize_string(v)


class ProjectUpdate(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    is_active: bool | None = None

    @field_validator("name", mode="before")
    @classmethod
    def sanitize(cls, v):
        return sanitize_string(v)


class Project(CamelModel):
    id: int
    name: str
    is_active: bool
    created_at: datetime | None = None
