from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from refined_crm.platform.security.finalization import ConversionStatus


class TaskStatus(StrEnum):
    NOT_YET = "NotYet"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


class RequestModel(BaseModel):
    """Accepts snake_case or the camelCase aliases clients send; unknown keys are rejected."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", use_enum_values=True)
    # optional on partial updates, but an explicit null would violate NOT NULL
    non_nullable: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_explicit_nulls(self) -> RequestModel:
        nulled = sorted(name for name in self.model_fields_set & self.non_nullable if getattr(self, name) is None)
        if nulled:
            raise ValueError(f"cannot be null: {', '.join(nulled)}")
        return self


class CompanyCreate(RequestModel):
    name: str = Field(min_length=1)
    website: str | None = None
    phone: str | None = None
    email: EmailStr | None = None
    address: str | None = None
    conversion_status: ConversionStatus = Field(
        default=ConversionStatus.WAITING, alias="conversionStatus", validate_default=True
    )
    custom_fields: dict[str, Any] | None = Field(default=None, alias="customFields")
    assigned_data_collector_id: UUID | None = None
    assigned_converter_id: UUID | None = None


class CompanyUpdate(RequestModel):
    non_nullable: ClassVar[frozenset[str]] = frozenset({"name", "conversion_status"})

    name: str | None = Field(default=None, min_length=1)
    website: str | None = None
    phone: str | None = None
    email: EmailStr | None = None
    address: str | None = None
    conversion_status: ConversionStatus | None = Field(default=None, alias="conversionStatus")
    custom_fields: dict[str, Any] | None = Field(default=None, alias="customFields")
    assigned_data_collector_id: UUID | None = None
    assigned_converter_id: UUID | None = None
    row_version: int | None = None


class CompanyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    website: str | None
    phone: str | None
    email: str | None
    address: str | None
    conversion_status: str
    custom_fields: dict[str, Any] | None
    assigned_data_collector_id: UUID | None
    assigned_converter_id: UUID | None
    finalization_status: str
    finalized_by_id: UUID | None
    finalized_at: datetime | None
    created_by_id: UUID | None
    created_at: datetime
    updated_at: datetime
    row_version: int


class FinalizeResponse(BaseModel):
    message: str
    company: CompanyRead


class ContactCreate(RequestModel):
    name: str = Field(min_length=1)
    email: EmailStr | None = None
    phone: str | None = None
    company_id: UUID = Field(alias="companyId")


class ContactUpdate(RequestModel):
    non_nullable: ClassVar[frozenset[str]] = frozenset({"name", "company_id"})

    name: str | None = Field(default=None, min_length=1)
    email: EmailStr | None = None
    phone: str | None = None
    company_id: UUID | None = Field(default=None, alias="companyId")
    row_version: int | None = None


class ContactRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str | None
    phone: str | None
    company_id: UUID
    company_name: str | None = None
    created_by_id: UUID | None
    created_at: datetime
    updated_at: datetime
    row_version: int


class TaskCreate(RequestModel):
    title: str = Field(min_length=1)
    description: str | None = None
    status: TaskStatus = Field(default=TaskStatus.NOT_YET, validate_default=True)
    deadline: datetime | None = None
    company_id: UUID | None = Field(default=None, alias="companyId")
    assigned_to_id: UUID | None = Field(default=None, alias="assignedToId")


class TaskUpdate(RequestModel):
    non_nullable: ClassVar[frozenset[str]] = frozenset({"title", "status"})

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    status: TaskStatus | None = None
    deadline: datetime | None = None
    assigned_to_id: UUID | None = Field(default=None, alias="assignedToId")
    row_version: int | None = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None
    status: str
    deadline: datetime | None
    company_id: UUID | None
    assigned_to_id: UUID | None
    assigned_by_id: UUID | None
    created_at: datetime
    updated_at: datetime
    row_version: int


class TicketCreate(RequestModel):
    title: str = Field(min_length=1)
    description: str | None = None
    company_id: UUID | None = Field(default=None, alias="companyId")
    assigned_to_id: UUID | None = Field(default=None, alias="assignedToId")


class TicketUpdate(RequestModel):
    non_nullable: ClassVar[frozenset[str]] = frozenset({"title", "is_resolved"})

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    assigned_to_id: UUID | None = Field(default=None, alias="assignedToId")
    is_resolved: bool | None = Field(default=None, alias="isResolved")
    row_version: int | None = None


class TicketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None
    company_id: UUID | None
    raised_by_id: UUID
    assigned_to_id: UUID | None
    is_resolved: bool
    resolved_at: datetime | None
    created_at: datetime
    updated_at: datetime
    row_version: int


class CommentCreate(RequestModel):
    company_id: UUID = Field(alias="companyId")
    content: str = Field(min_length=1)
    parent_comment_id: UUID | None = Field(default=None, alias="parentCommentId")


class CommentUpdate(RequestModel):
    content: str = Field(min_length=1)


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    author_id: UUID
    content: str
    parent_comment_id: UUID | None
    created_at: datetime
    updated_at: datetime


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    recipient_id: UUID
    message: str
    kind: str
    entity_type: str | None
    entity_id: UUID | None
    is_read: bool
    created_at: datetime


class UnreadCount(BaseModel):
    count: int
