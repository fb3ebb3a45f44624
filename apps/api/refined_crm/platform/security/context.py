from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from refined_crm.platform.security.matrix import PermissionMatrix, get_permission_matrix
from refined_crm.platform.security.policies import get_permissions
from refined_crm.platform.security.roles import PermissionVector, Role


@dataclass(slots=True)
class AuthContext:
    """A verified actor plus the permission matrix pinned for the current request."""

    user_id: uuid.UUID
    role: Role | None
    claimed_role: str | None = None
    correlation_id: str | None = None
    matrix: PermissionMatrix = field(default_factory=get_permission_matrix)

    @property
    def permissions(self) -> PermissionVector:
        return get_permissions(self.role, self.matrix)

    @property
    def actor_id(self) -> str:
        return str(self.user_id)
