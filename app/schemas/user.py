import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from app.utils.sanitization import sanitize_string

Team = Literal["PM", "CM", "CC", "AT", "MT"]

PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class UserBase(CamelModel):
    username: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    team: Team

    @field_validator("username", mode="before")
    @classmethod
    def sanitize(cls, v):
        return sanitize_string(v)


class UserCreate(UserBase):
    password: str

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, v):
        if not PASSWORD_RE.match(v):
            raise ValueError("Password must contain uppercase, lowercase, number and special character")
        return v


class AdminUserCreate(UserCreate):
    is_admin: bool = False


class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    username: str | None = None


class UserUpdate(CamelModel):
    username: str | None = Field(None, min_length=1, max_length=50)
    email: EmailStr | None = None
    team: Team | None = None
    is_admin: bool | None = None
    is_approved: bool | None = None

    @field_validator("username", mode="before")
    @classmethod
    def sanitize(cls, v):
        return sanitize_string(v)


class UserResponse(UserBase):
    id: int
    is_admin: bool
    is_approved: bool
    created_at: datetime | None = None


class UserExists(BaseModel):
    exists: bool
