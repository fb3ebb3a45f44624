from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from refined_crm.api.errors import failure_response
from refined_crm.core.auth import get_current_actor
from refined_crm.core.database import get_db
from refined_crm.crm.schemas import (
    CommentCreate,
    CommentRead,
    CommentUpdate,
    CompanyCreate,
    CompanyRead,
    CompanyUpdate,
    ContactCreate,
    ContactRead,
    ContactUpdate,
    FinalizeResponse,
    NotificationRead,
    TaskCreate,
    TaskRead,
    TaskUpdate,
    TicketCreate,
    TicketRead,
    TicketUpdate,
    UnreadCount,
)
from refined_crm.crm.service import (
    comment_service,
    company_service,
    contact_service,
    notification_service,
    task_service,
    ticket_service,
)
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.errors import AuthorizationError

router = APIRouter(prefix="/api/companies", tags=["crm.companies"])
tasks_router = APIRouter(prefix="/api/tasks", tags=["crm.tasks"])
tickets_router = APIRouter(prefix="/api/tickets", tags=["crm.tickets"])
contacts_router = APIRouter(prefix="/api/contacts", tags=["crm.contacts"])
comments_router = APIRouter(prefix="/api/comments", tags=["crm.comments"])
notifications_router = APIRouter(prefix="/api/notifications", tags=["crm.notifications"])

Failure = (HTTPException, AuthorizationError)


@router.get("", response_model=list[CompanyRead])
def list_companies(
    request: Request,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> list[CompanyRead] | JSONResponse:
    try:
        return company_service.list_companies(db, actor)
    except Failure as exc:
        return failure_response(request, exc, code="crm_company_list_failed")


@router.get("/finalized", response_model=list[CompanyRead])
def list_finalized_companies(
    request: Request,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> list[CompanyRead] | JSONResponse:
    try:
        return company_service.list_companies(db, actor, finalized_only=True)
    except Failure as exc:
        return failure_response(request, exc, code="crm_company_list_failed")


@router.get("/{company_id}", response_model=CompanyRead)
def get_company(
    request: Request,
    company_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> CompanyRead | JSONResponse:
    try:
        return company_service.get_company(db, actor, company_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_company_get_failed")


@router.post("", response_model=CompanyRead, status_code=status.HTTP_201_CREATED)
def create_company(
    request: Request,
    dto: CompanyCreate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> CompanyRead | JSONResponse:
    try:
        return company_service.create_company(db, actor, dto)
    except Failure as exc:
        return failure_response(request, exc, code="crm_company_create_failed")


@router.put("/{company_id}", response_model=CompanyRead)
@router.patch("/{company_id}", response_model=CompanyRead)
def update_company(
    request: Request,
    company_id: uuid.UUID,
    dto: CompanyUpdate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> CompanyRead | JSONResponse:
    try:
        return company_service.update_company(db, actor, company_id, dto)
    except Failure as exc:
        return failure_response(request, exc, code="crm_company_update_failed")


@router.delete("/{company_id}", response_model=None)
def delete_company(
    request: Request,
    company_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> dict[str, str] | JSONResponse:
    try:
        company_service.delete_company(db, actor, company_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_company_delete_failed")
    return {"message": "Company deleted successfully"}


@router.put("/{company_id}/finalize", response_model=FinalizeResponse)
def finalize_company(
    request: Request,
    company_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> FinalizeResponse | JSONResponse:
    try:
        return company_service.finalize_company(db, actor, company_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_company_finalize_failed")


@tasks_router.get("", response_model=list[TaskRead])
def list_tasks(
    request: Request,
    assigned_to_me: bool = Query(default=False),
    company_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> list[TaskRead] | JSONResponse:
    try:
        return task_service.list_tasks(db, actor, assigned_to_me=assigned_to_me, company_id=company_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_task_list_failed")


@tasks_router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    request: Request,
    dto: TaskCreate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> TaskRead | JSONResponse:
    try:
        return task_service.create_task(db, actor, dto)
    except Failure as exc:
        return failure_response(request, exc, code="crm_task_create_failed")


@tasks_router.put("/{task_id}", response_model=TaskRead)
def update_task(
    request: Request,
    task_id: uuid.UUID,
    dto: TaskUpdate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> TaskRead | JSONResponse:
    try:
        return task_service.update_task(db, actor, task_id, dto)
    except Failure as exc:
        return failure_response(request, exc, code="crm_task_update_failed")


@tasks_router.delete("/{task_id}", response_model=None)
def delete_task(
    request: Request,
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> dict[str, str] | JSONResponse:
    try:
        task_service.delete_task(db, actor, task_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_task_delete_failed")
    return {"message": "Task deleted successfully"}


@tickets_router.get("", response_model=list[TicketRead])
def list_tickets(
    request: Request,
    assigned_to_me: bool = Query(default=False),
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> list[TicketRead] | JSONResponse:
    try:
        return ticket_service.list_tickets(db, actor, assigned_to_me=assigned_to_me)
    except Failure as exc:
        return failure_response(request, exc, code="crm_ticket_list_failed")


@tickets_router.post("", response_model=TicketRead, status_code=status.HTTP_201_CREATED)
def create_ticket(
    request: Request,
    dto: TicketCreate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> TicketRead | JSONResponse:
    try:
        return ticket_service.create_ticket(db, actor, dto)
    except Failure as exc:
        return failure_response(request, exc, code="crm_ticket_create_failed")


@tickets_router.put("/{ticket_id}", response_model=TicketRead)
def update_ticket(
    request: Request,
    ticket_id: uuid.UUID,
    dto: TicketUpdate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> TicketRead | JSONResponse:
    try:
        return ticket_service.update_ticket(db, actor, ticket_id, dto)
    except Failure as exc:
        return failure_response(request, exc, code="crm_ticket_update_failed")


@tickets_router.delete("/{ticket_id}", response_model=None)
def delete_ticket(
    request: Request,
    ticket_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> dict[str, str] | JSONResponse:
    try:
        ticket_service.delete_ticket(db, actor, ticket_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_ticket_delete_failed")
    return {"message": "Ticket deleted successfully"}


@contacts_router.get("", response_model=list[ContactRead])
def list_contacts(
    request: Request,
    company_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> list[ContactRead] | JSONResponse:
    try:
        return contact_service.list_contacts(db, actor, company_id=company_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_contact_list_failed")


@contacts_router.get("/{contact_id}", response_model=ContactRead)
def get_contact(
    request: Request,
    contact_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> ContactRead | JSONResponse:
    try:
        return contact_service.get_contact(db, actor, contact_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_contact_get_failed")


@contacts_router.post("", response_model=ContactRead, status_code=status.HTTP_201_CREATED)
def create_contact(
    request: Request,
    dto: ContactCreate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> ContactRead | JSONResponse:
    try:
        return contact_service.create_contact(db, actor, dto)
    except Failure as exc:
        return failure_response(request, exc, code="crm_contact_create_failed")


@contacts_router.put("/{contact_id}", response_model=ContactRead)
def update_contact(
    request: Request,
    contact_id: uuid.UUID,
    dto: ContactUpdate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> ContactRead | JSONResponse:
    try:
        return contact_service.update_contact(db, actor, contact_id, dto)
    except Failure as exc:
        return failure_response(request, exc, code="crm_contact_update_failed")


@contacts_router.delete("/{contact_id}", response_model=None)
def delete_contact(
    request: Request,
    contact_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> dict[str, str] | JSONResponse:
    try:
        contact_service.delete_contact(db, actor, contact_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_contact_delete_failed")
    return {"message": "Contact deleted successfully"}


@comments_router.get("/company/{company_id}", response_model=list[CommentRead])
def list_comments(
    request: Request,
    company_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> list[CommentRead] | JSONResponse:
    try:
        return comment_service.list_comments(db, actor, company_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_comment_list_failed")


@comments_router.post("", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
def create_comment(
    request: Request,
    dto: CommentCreate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> CommentRead | JSONResponse:
    try:
        return comment_service.create_comment(db, actor, dto)
    except Failure as exc:
        return failure_response(request, exc, code="crm_comment_create_failed")


@comments_router.put("/{comment_id}", response_model=CommentRead)
def update_comment(
    request: Request,
    comment_id: uuid.UUID,
    dto: CommentUpdate,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> CommentRead | JSONResponse:
    try:
        return comment_service.update_comment(db, actor, comment_id, dto)
    except Failure as exc:
        return failure_response(request, exc, code="crm_comment_update_failed")


@comments_router.delete("/{comment_id}", response_model=None)
def delete_comment(
    request: Request,
    comment_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> dict[str, str] | JSONResponse:
    try:
        comment_service.delete_comment(db, actor, comment_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_comment_delete_failed")
    return {"message": "Comment deleted successfully"}


@notifications_router.get("", response_model=list[NotificationRead])
def list_notifications(
    request: Request,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> list[NotificationRead] | JSONResponse:
    try:
        return notification_service.list_notifications(db, actor, limit=limit)
    except Failure as exc:
        return failure_response(request, exc, code="crm_notification_list_failed")


@notifications_router.get("/unread-count", response_model=UnreadCount)
def unread_count(
    request: Request,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> UnreadCount | JSONResponse:
    try:
        return UnreadCount(count=notification_service.unread_count(db, actor))
    except Failure as exc:
        return failure_response(request, exc, code="crm_notification_count_failed")


@notifications_router.put("/mark-all-read", response_model=UnreadCount)
def mark_all_read(
    request: Request,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> UnreadCount | JSONResponse:
    try:
        return UnreadCount(count=notification_service.mark_all_read(db, actor))
    except Failure as exc:
        return failure_response(request, exc, code="crm_notification_update_failed")


@notifications_router.put("/{notification_id}/read", response_model=NotificationRead)
def mark_read(
    request: Request,
    notification_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> NotificationRead | JSONResponse:
    try:
        return notification_service.mark_read(db, actor, notification_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_notification_update_failed")


@notifications_router.delete("/{notification_id}", response_model=None)
def delete_notification(
    request: Request,
    notification_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: AuthContext | None = Depends(get_current_actor),
) -> dict[str, str] | JSONResponse:
    try:
        notification_service.delete_notification(db, actor, notification_id)
    except Failure as exc:
        return failure_response(request, exc, code="crm_notification_delete_failed")
    return {"message": "Notification deleted successfully"}
