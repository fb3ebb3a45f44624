from __future__ import annotations

import logging

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from refined_crm import audit
from refined_crm.authz.models import PermissionMatrixVersion
from refined_crm.authz.schemas import (
    MatrixResetRequest,
    MyPermissionsRead,
    PermissionMatrixRead,
    PermissionMatrixVersionRead,
    RoleCapabilitiesUpdate,
)
from refined_crm.core.database import atomic
from refined_crm.metrics import observe_matrix_commit
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.errors import MatrixInvariantError, MatrixVersionConflict
from refined_crm.platform.security.guard import authorize_operation, require_actor
from refined_crm.platform.security.matrix import (
    PermissionMatrix,
    commit_permission_matrix,
    get_permission_matrix,
    install_permission_matrix,
)
from refined_crm.platform.security.policies import groups_for
from refined_crm.platform.security.roles import Role


logger = logging.getLogger("refined_crm.authz")


def _to_read(matrix: PermissionMatrix) -> PermissionMatrixRead:
    return PermissionMatrixRead.model_validate(matrix.to_payload())


class AuthorizationAdminService:
    def get_matrix(self, ctx: AuthContext | None) -> PermissionMatrixRead:
        actor = authorize_operation(ctx, "permissions.manage")
        return _to_read(actor.matrix)

    def my_permissions(self, ctx: AuthContext | None) -> MyPermissionsRead:
        actor = require_actor(ctx)
        return MyPermissionsRead(
            user_id=actor.user_id,
            role=actor.role,
            matrix_version=actor.matrix.version,
            permissions=actor.permissions.to_dict(),
            groups=groups_for(actor.role, actor.matrix),
        )

    def update_role_capabilities(
        self,
        session: Session,
        ctx: AuthContext | None,
        role: Role,
        dto: RoleCapabilitiesUpdate,
    ) -> PermissionMatrixRead:
        actor = authorize_operation(ctx, "permissions.manage")
        current = self.refresh_active_matrix(session)
        vector = current.vector_for(role)
        for capability, granted in dto.capabilities.items():
            vector = vector.with_capability(capability, granted)

        try:
            candidate = current.with_vector(role, vector)
        except MatrixInvariantError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        return self._commit(session, actor, current, candidate, dto.expected_version, action=f"update_role:{role.value}", note=dto.note)

    def reset_matrix(self, session: Session, ctx: AuthContext | None, dto: MatrixResetRequest) -> PermissionMatrixRead:
        actor = authorize_operation(ctx, "permissions.manage")
        current = self.refresh_active_matrix(session)
        return self._commit(session, actor, current, current.reset_to_defaults(), dto.expected_version, action="reset", note=dto.note)

    def list_versions(self, session: Session, ctx: AuthContext | None) -> list[PermissionMatrixVersionRead]:
        authorize_operation(ctx, "permissions.manage")
        rows = session.scalars(select(PermissionMatrixVersion).order_by(PermissionMatrixVersion.version.desc())).all()
        return [PermissionMatrixVersionRead.model_validate(row) for row in rows]

    def load_latest(self, session: Session) -> PermissionMatrix:
        """Install the newest persisted matrix, or keep the defaults when none is stored."""

        row = session.scalar(select(PermissionMatrixVersion).order_by(PermissionMatrixVersion.version.desc()).limit(1))
        if row is None:
            return get_permission_matrix()
        matrix = PermissionMatrix.from_dict(row.version, row.vectors)
        install_permission_matrix(matrix)
        logger.info("authz.matrix.loaded", extra={"matrix_version": matrix.version})
        return matrix

    def refresh_active_matrix(self, session: Session) -> PermissionMatrix:
        """Install the persisted head when another process has committed a newer version."""

        active = get_permission_matrix()
        head = session.scalar(select(func.max(PermissionMatrixVersion.version)))
        if head is None or head <= active.version:
            return active
        return self.load_latest(session)

    def _commit(
        self,
        session: Session,
        actor: AuthContext,
        current: PermissionMatrix,
        candidate: PermissionMatrix,
        expected_version: int,
        *,
        action: str,
        note: str | None,
    ) -> PermissionMatrixRead:
        try:
            with atomic(session):
                head = session.scalar(
                    select(PermissionMatrixVersion)
                    .order_by(PermissionMatrixVersion.version.desc())
                    .limit(1)
                    .with_for_update()
                )
                persisted = head.version if head is not None else current.version
                if expected_version != persisted or expected_version != current.version:
                    raise MatrixVersionConflict(expected=expected_version, current=max(persisted, current.version))
                session.add(
                    PermissionMatrixVersion(
                        version=candidate.version,
                        vectors=candidate.to_dict(),
                        created_by=actor.user_id,
                        note=note,
                    )
                )
                session.flush()
                commit_permission_matrix(candidate, expected_version=expected_version)
        except MatrixVersionConflict as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
        except IntegrityError:
            observe_matrix_commit("conflict")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"permission matrix version {candidate.version} was committed concurrently",
            )
        except MatrixInvariantError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

        audit.record_change(
            actor,
            "authz.permission_matrix",
            candidate.version,
            action,
            before=current.to_payload(),
            after=candidate.to_payload(),
        )
        return _to_read(candidate)


authorization_admin_service = AuthorizationAdminService()
