from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from refined_crm.platform.security.policies import RoleGroup
from refined_crm.platform.security.roles import Capability, Role


class PermissionMatrixRead(BaseModel):
    version: int
    roles: dict[Role, dict[Capability, bool]]


class RoleCapabilitiesUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    expected_version: int
    capabilities: dict[Capability, bool] = Field(min_length=1)
    note: str | None = None


class MatrixResetRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    expected_version: int
    note: str | None = None


class PermissionMatrixVersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    version: int
    created_by: UUID | None
    note: str | None
    created_at: datetime


class MyPermissionsRead(BaseModel):
    """Courtesy view for clients to hide controls; the server re-checks every request."""

    user_id: UUID
    role: Role | None
    matrix_version: int
    permissions: dict[Capability, bool]
    groups: list[RoleGroup]
