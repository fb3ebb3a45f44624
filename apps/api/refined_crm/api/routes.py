from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from refined_crm.authz.api import admin_router, me_router
from refined_crm.core.auth import get_current_actor
from refined_crm.core.config import get_settings
from refined_crm.crm.api import (
    comments_router,
    contacts_router,
    notifications_router,
    router as companies_router,
    tasks_router,
    tickets_router,
)
from refined_crm.directory.api import custom_fields_router, users_router
from refined_crm.metrics import generate_metrics_payload, metrics_content_type
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.policies import RoleGroup, is_in_group

router = APIRouter()
router.include_router(companies_router)
router.include_router(tasks_router)
router.include_router(tickets_router)
router.include_router(contacts_router)
router.include_router(comments_router)
router.include_router(notifications_router)
router.include_router(users_router)
router.include_router(custom_fields_router)
router.include_router(admin_router)
router.include_router(me_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/metrics", tags=["system"])
def metrics(actor: AuthContext | None = Depends(get_current_actor)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if actor is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    if not is_in_group(actor.role, RoleGroup.ADMINISTRATORS, actor.matrix):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing role group: ADMINISTRATORS")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
