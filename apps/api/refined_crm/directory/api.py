from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from refined_crm.api.errors import failure_response
from refined_crm.core.auth import get_current_actor
from refined_crm.core.database import get_db
from refined_crm.directory.schemas import CustomFieldCreate, CustomFieldRead, UserRead, UserSummary, UserUpdate
from refined_crm.directory.service import custom_field_service, user_directory_service
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.errors import AuthorizationError

users_router = APIRouter(prefix="/api/users", tags=["directory.users"])
custom_fields_router = APIRouter(prefix="/api/custom-fields", tags=["directory.custom_fields"])

Failure = (HTTPException, AuthorizationError)


@users_router.get("/list", response_model=list[UserSummary])
def list_user_summaries(
    request: Request,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> list[UserSummary] | JSONResponse:
    try:
        return user_directory_service.list_user_summaries(db, actor)
    except Failure as exc:
        return failure_response(request, exc, code="directory_user_list_failed")


@users_router.get("", response_model=list[UserRead])
def list_users(
    request: Request,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> list[UserRead] | JSONResponse:
    try:
        return user_directory_service.list_users(db, actor)
    except Failure as exc:
        return failure_response(request, exc, code="directory_user_list_failed")


@users_router.get("/{user_id}", response_model=UserRead)
def get_user(
    request: Request,
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> UserRead | JSONResponse:
    try:
        return user_directory_service.get_user(db, actor, user_id)
    except Failure as exc:
        return failure_response(request, exc, code="directory_user_get_failed")


@users_router.put("/{user_id}", response_model=UserRead)
def update_user(
    request: Request,
    user_id: uuid.UUID,
    dto: UserUpdate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> UserRead | JSONResponse:
    try:
        return user_directory_service.update_user(db, actor, user_id, dto)
    except Failure as exc:
        return failure_response(request, exc, code="directory_user_update_failed")


@users_router.delete("/{user_id}", response_model=None)
def delete_user(
    request: Request,
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> dict[str, str] | JSONResponse:
    try:
        user_directory_service.delete_user(db, actor, user_id)
    except Failure as exc:
        return failure_response(request, exc, code="directory_user_delete_failed")
    return {"message": "User deleted successfully"}


@custom_fields_router.get("", response_model=list[CustomFieldRead])
def list_custom_fields(
    request: Request,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> list[CustomFieldRead] | JSONResponse:
    try:
        return custom_field_service.list_custom_fields(db, actor)
    except Failure as exc:
        return failure_response(request, exc, code="directory_custom_field_list_failed")


@custom_fields_router.post("", response_model=CustomFieldRead, status_code=status.HTTP_201_CREATED)
def create_custom_field(
    request: Request,
    dto: CustomFieldCreate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> CustomFieldRead | JSONResponse:
    try:
        return custom_field_service.create_custom_field(db, actor, dto)
    except Failure as exc:
        return failure_response(request, exc, code="directory_custom_field_create_failed")


@custom_fields_router.delete("/{field_id}", response_model=None)
def delete_custom_field(
    request: Request,
    field_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> dict[str, str] | JSONResponse:
    try:
        custom_field_service.delete_custom_field(db, actor, field_id)
    except Failure as exc:
        return failure_response(request, exc, code="directory_custom_field_delete_failed")
    return {"message": "Custom field deleted successfully"}
