from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from refined_crm.api.errors import failure_response
from refined_crm.authz.schemas import (
    MatrixResetRequest,
    MyPermissionsRead,
    PermissionMatrixRead,
    PermissionMatrixVersionRead,
    RoleCapabilitiesUpdate,
)
from refined_crm.authz.service import authorization_admin_service
from refined_crm.core.auth import get_current_actor
from refined_crm.core.database import get_db
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.errors import AuthorizationError
from refined_crm.platform.security.roles import Role


admin_router = APIRouter(prefix="/admin/permissions", tags=["admin.authz"])
me_router = APIRouter(prefix="/api/me", tags=["auth"])


@admin_router.get("", response_model=PermissionMatrixRead)
def get_matrix(
    request: Request,
    actor: AuthContext | None = Depends(get_current_actor),
) -> PermissionMatrixRead | JSONResponse:
    try:
        return authorization_admin_service.get_matrix(actor)
    except (HTTPException, AuthorizationError) as exc:
        return failure_response(request, exc, code="authz_matrix_read_failed")


@admin_router.get("/history", response_model=list[PermissionMatrixVersionRead])
def list_matrix_versions(
    request: Request,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> list[PermissionMatrixVersionRead] | JSONResponse:
    try:
        return authorization_admin_service.list_versions(db, actor)
    except (HTTPException, AuthorizationError) as exc:
        return failure_response(request, exc, code="authz_matrix_history_failed")


@admin_router.patch("/{role}", response_model=PermissionMatrixRead)
def update_role_capabilities(
    request: Request,
    role: Role,
    dto: RoleCapabilitiesUpdate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> PermissionMatrixRead | JSONResponse:
    try:
        return authorization_admin_service.update_role_capabilities(db, actor, role, dto)
    except (HTTPException, AuthorizationError) as exc:
        return failure_response(request, exc, code="authz_matrix_update_failed")


@admin_router.post("/reset", response_model=PermissionMatrixRead)
def reset_matrix(
    request: Request,
    dto: MatrixResetRequest,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> PermissionMatrixRead | JSONResponse:
    try:
        return authorization_admin_service.reset_matrix(db, actor, dto)
    except (HTTPException, AuthorizationError) as exc:
        return failure_response(request, exc, code="authz_matrix_reset_failed")


@me_router.get("/permissions", response_model=MyPermissionsRead)
def my_permissions(
    request: Request,
    actor: AuthContext | None = Depends(get_current_actor),
) -> MyPermissionsRead | JSONResponse:
    try:
        return authorization_admin_service.my_permissions(actor)
    except AuthorizationError as exc:
        return failure_response(request, exc, code=exc.reason_code)
