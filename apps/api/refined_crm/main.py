from collections.abc import Callable
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from refined_crm.api.errors import authorization_error_handler
from refined_crm.api.routes import router as api_router
from refined_crm.authz.service import authorization_admin_service
from refined_crm.core.config import get_settings
from refined_crm.core.database import SessionLocal
from refined_crm.core.events import InternalEvent, event_bus
from refined_crm.crm.notifier import WorkflowNotifier
from refined_crm.logging import configure_logging
from refined_crm.middleware.correlation_id import CorrelationIdMiddleware
from refined_crm.middleware.rate_limit import CrmMutationRateLimitMiddleware
from refined_crm.middleware.request_logging import RequestLoggingMiddleware
from refined_crm.otel import get_fastapi_server_request_hook, setup_otel
from refined_crm.platform.security.errors import AuthorizationError, MatrixInvariantError


configure_logging()
logger = logging.getLogger("refined_crm.lifecycle")


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system.started", extra={"status": "ok"})


def _on_notification_created(event: InternalEvent) -> None:
    payload = event.payload.get("payload", {})
    logger.debug(
        "crm.notification.delivered",
        extra={"entity_type": payload.get("entity_type"), "entity_id": payload.get("entity_id")},
    )


def _load_permission_matrix(session_factory: Callable[[], Session]) -> None:
    try:
        with session_factory() as session:
            authorization_admin_service.load_latest(session)
    except (SQLAlchemyError, MatrixInvariantError) as exc:
        logger.exception("authz.matrix.load_failed", extra={"error": str(exc)})


@asynccontextmanager
async def lifespan(app: FastAPI):
    unsubscribers = [
        event_bus.subscribe("system.started", _on_system_started),
        event_bus.subscribe(WorkflowNotifier.event_type, _on_notification_created),
    ]
    if get_settings().load_permission_matrix_on_startup:
        _load_permission_matrix(app.state.session_factory)
    event_bus.publish("system.started", {"service": "api"})
    try:
        yield
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()


app = FastAPI(title="Refined CRM API", version="0.1.0", lifespan=lifespan)
app.state.session_factory = SessionLocal
app.add_middleware(CrmMutationRateLimitMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_exception_handler(AuthorizationError, authorization_error_handler)  # type: ignore[arg-type]
app.include_router(api_router)

settings = get_settings()
setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
