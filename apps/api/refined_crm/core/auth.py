from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Depends
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from refined_crm.context import bind_actor, get_correlation_id
from refined_crm.authz.service import authorization_admin_service
from refined_crm.core.config import get_settings
from refined_crm.core.database import get_db
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.roles import Role, parse_role


logger = logging.getLogger("refined_crm.auth")


@dataclass
class AuthUser:
    sub: str
    role: str | None


def issue_token(user_id: uuid.UUID | str, role: Role | str, *, expires_in: timedelta | None = None) -> str:
    settings = get_settings()
    expires_at = datetime.now(timezone.utc) + (expires_in or timedelta(days=settings.jwt_expire_days))
    claims = {"sub": str(user_id), "role": str(role), "exp": expires_at}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> AuthUser | None:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        logger.info("auth.token_rejected", extra={"error": str(exc)})
        return None

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        return None
    role = payload.get("role")
    return AuthUser(sub=subject, role=role if isinstance(role, str) else None)


async def get_current_user(request: Request) -> AuthUser | None:
    """Resolve the bearer token; a missing or invalid token yields ``None``.

    Rejection happens in the guard so that unauthenticated calls are reported
    with the same error envelope as every other access decision.
    """

    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return decode_token(auth_header.removeprefix("Bearer ").strip())


async def get_current_actor(
    auth_user: AuthUser | None = Depends(get_current_user),
    session: Session = Depends(get_db),
) -> AuthContext | None:
    if auth_user is None:
        return None
    try:
        user_id = uuid.UUID(auth_user.sub)
    except ValueError:
        logger.info("auth.token_rejected", extra={"error": "subject is not a user id"})
        return None
    # bound here so the route and everything it calls log as this actor
    bind_actor(str(user_id), auth_user.role)
    # pin the newest committed matrix, which another worker may have written
    matrix = await run_in_threadpool(authorization_admin_service.refresh_active_matrix, session)
    return AuthContext(
        user_id=user_id,
        role=parse_role(auth_user.role),
        claimed_role=auth_user.role,
        correlation_id=get_correlation_id(),
        matrix=matrix,
    )
