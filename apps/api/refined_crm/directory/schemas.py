from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import ClassVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from refined_crm.crm.schemas import RequestModel
from refined_crm.platform.security.roles import Role


class CustomFieldType(StrEnum):
    TEXT = "Text"
    NUMBER = "Number"
    DATE = "Date"


class UserSummary(BaseModel):
    """Minimal entry used to fill assignment pickers."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    email: str


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    full_name: str
    role: str
    created_at: datetime


class UserUpdate(RequestModel):
    non_nullable: ClassVar[frozenset[str]] = frozenset({"email", "full_name", "role"})

    email: EmailStr | None = None
    full_name: str | None = Field(default=None, min_length=2)
    role: Role | None = None


class CustomFieldCreate(RequestModel):
    label: str = Field(min_length=1)
    field_type: CustomFieldType = Field(alias="type")


class CustomFieldRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    label: str
    field_type: str = Field(serialization_alias="type")
    created_by_id: UUID | None
    created_at: datetime
