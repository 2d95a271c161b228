"""User model — a principal with a global role and, except for super admins, a company."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from customsdesk.models.base import TimestampMixin, new_uuid


class Role(StrEnum):
    SUPER_ADMIN = "SUPER_ADMIN"
    BROKER_ADMIN = "BROKER_ADMIN"
    BROKER_USER = "BROKER_USER"
    CLIENT_USER = "CLIENT_USER"


STAFF_ROLES = (Role.BROKER_ADMIN, Role.BROKER_USER)


class User(TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    email: str = Field(max_length=320, unique=True, nullable=False, index=True)
    username: str = Field(max_length=100, unique=True, nullable=False, index=True)
    password_hash: str = Field(nullable=False)
    display_name: str = Field(default="", max_length=255)
    role: Role = Field(nullable=False, index=True)

    # NULL only for SUPER_ADMIN
    company_id: uuid.UUID | None = Field(
        default=None, foreign_key="companies.id", nullable=True, index=True,
    )
    is_active: bool = Field(default=True)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


# ── Pydantic schemas ─────────────────────────────────────────

class UserCreate(SQLModel):
    email: str = Field(max_length=320)
    username: str = Field(max_length=100)
    password: str = Field(min_length=8, max_length=128)
    display_name: str = Field(default="", max_length=255)
    role: Role
    company_id: uuid.UUID | None = None


class UserUpdate(SQLModel):
    email: str | None = Field(default=None, max_length=320)
    username: str | None = Field(default=None, max_length=100)
    password: str | None = Field(default=None, min_length=8, max_length=128)
    display_name: str | None = Field(default=None, max_length=255)
    is_active: bool | None = None


class UserRead(SQLModel):
    id: uuid.UUID
    email: str
    username: str
    display_name: str
    role: Role
    company_id: uuid.UUID | None
    is_active: bool
