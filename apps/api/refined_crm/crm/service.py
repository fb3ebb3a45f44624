from __future__ import annotations

import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import and_, func, select, update
from sqlalchemy.orm import Session

from refined_crm import audit, events
from refined_crm.core.database import atomic
from refined_crm.crm.models import Comment, Company, Contact, Notification, Task, Ticket, utcnow
from refined_crm.crm.notifier import (
    NotificationEvent,
    WorkflowNotifier,
    actor_label,
    company_assigned,
    company_finalized,
    task_assigned,
    task_updated,
    ticket_raised,
    ticket_reassigned,
    ticket_resolved,
    workflow_notifier,
)
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
)
from refined_crm.metrics import observe_company_finalized
from refined_crm.otel import get_tracer, start_span
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.errors import InvalidTransition
from refined_crm.platform.security.finalization import FinalizationStatus
from refined_crm.platform.security.guard import (
    authorize_author_or_admin,
    authorize_company_delete,
    authorize_company_write,
    authorize_finalize,
    authorize_operation,
    authorize_work_item_update,
    require_actor,
)
from refined_crm.platform.security.rls import apply_company_visibility, can_view_company


tracer = get_tracer("refined_crm.crm")


def _not_found(entity: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{entity} not found")


def _conflict() -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail="row_version conflict")


def _publish(event_type: str, ctx: AuthContext, payload: dict[str, Any]) -> None:
    events.publish(events.build_envelope(event_type, payload, actor_user_id=ctx.actor_id))


def _load_locked(session: Session, model: type[Any], record_id: uuid.UUID) -> Any:
    return session.scalar(
        select(model).where(model.id == record_id).with_for_update().execution_options(populate_existing=True)
    )


def _check_row_version(expected: int | None, current: int) -> None:
    if expected is not None and expected != current:
        raise _conflict()


class CompanyService:
    entity_type = "company"

    def __init__(self, notifier: WorkflowNotifier = workflow_notifier) -> None:
        self.notifier = notifier

    def _load_for_update(self, session: Session, ctx: AuthContext, company_id: uuid.UUID) -> Company:
        company = _load_locked(session, Company, company_id)
        if company is None or not can_view_company(ctx, company):
            raise _not_found("company")
        return company

    def _assignment_events(
        self,
        ctx: AuthContext,
        company: Company,
        previous: tuple[uuid.UUID | None, uuid.UUID | None] = (None, None),
    ) -> list[NotificationEvent]:
        by = actor_label(ctx.role)
        current = (company.assigned_data_collector_id, company.assigned_converter_id)
        return [
            company_assigned(assignee, company.id, company.name, by)
            for assignee, before in zip(current, previous)
            if assignee is not None and assignee != before
        ]

    def list_companies(self, session: Session, ctx: AuthContext | None, *, finalized_only: bool = False) -> list[CompanyRead]:
        actor = require_actor(ctx)
        query = apply_company_visibility(select(Company), Company, actor)
        if finalized_only:
            query = query.where(Company.finalization_status == FinalizationStatus.FINALIZED.value).order_by(
                Company.finalized_at.desc()
            )
        else:
            query = query.order_by(Company.created_at.desc())
        return [CompanyRead.model_validate(row) for row in session.scalars(query).all()]

    def get_company(self, session: Session, ctx: AuthContext | None, company_id: uuid.UUID) -> CompanyRead:
        actor = require_actor(ctx)
        company = session.get(Company, company_id)
        if company is None or not can_view_company(actor, company):
            raise _not_found("company")
        return CompanyRead.model_validate(company)

    def create_company(self, session: Session, ctx: AuthContext | None, dto: CompanyCreate) -> CompanyRead:
        actor = authorize_operation(ctx, "company.create")
        with atomic(session):
            company = Company(**dto.model_dump(), created_by_id=actor.user_id)
            session.add(company)
            session.flush()
            notifications = self.notifier.emit(session, self._assignment_events(actor, company), actor_id=actor.user_id)
            created = CompanyRead.model_validate(company)
            audit.record_change(
                actor,
                self.entity_type,
                company.id,
                "create",
                after=created.model_dump(mode="json"),
            )

        self.notifier.dispatch(notifications)
        _publish("crm.company.created", actor, {"company_id": str(created.id)})
        return created

    def update_company(
        self,
        session: Session,
        ctx: AuthContext | None,
        company_id: uuid.UUID,
        dto: CompanyUpdate,
    ) -> CompanyRead:
        actor = authorize_operation(ctx, "company.update")
        changes = dto.model_dump(exclude_unset=True, exclude={"row_version"})

        with atomic(session):
            company = self._load_for_update(session, actor, company_id)
            _check_row_version(dto.row_version, company.row_version)
            authorize_company_write(actor, company, changes)
            if not changes:
                return CompanyRead.model_validate(company)

            before = CompanyRead.model_validate(company).model_dump(mode="json")
            previous_assignees = (company.assigned_data_collector_id, company.assigned_converter_id)
            result = session.execute(
                update(Company)
                .where(and_(Company.id == company.id, Company.row_version == company.row_version))
                .values(**changes, updated_at=utcnow(), row_version=Company.row_version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise _conflict()

            session.refresh(company)
            notifications = self.notifier.emit(
                session,
                self._assignment_events(actor, company, previous_assignees),
                actor_id=actor.user_id,
            )
            updated = CompanyRead.model_validate(company)
            audit.record_change(
                actor,
                self.entity_type,
                company.id,
                "update",
                before=before,
                after=updated.model_dump(mode="json"),
            )

        self.notifier.dispatch(notifications)
        _publish("crm.company.updated", actor, {"company_id": str(updated.id), "row_version": updated.row_version})
        return updated

    def delete_company(self, session: Session, ctx: AuthContext | None, company_id: uuid.UUID) -> None:
        actor = authorize_operation(ctx, "company.delete")
        with atomic(session):
            company = self._load_for_update(session, actor, company_id)
            authorize_company_delete(actor, company)
            before = CompanyRead.model_validate(company).model_dump(mode="json")
            session.delete(company)
            audit.record_change(
                actor,
                self.entity_type,
                company_id,
                "delete",
                before=before,
            )
        _publish("crm.company.deleted", actor, {"company_id": str(company_id)})

    def finalize_company(self, session: Session, ctx: AuthContext | None, company_id: uuid.UUID) -> FinalizeResponse:
        actor = authorize_operation(ctx, "company.finalize")
        with start_span(tracer, "crm.company.finalize", actor, company_id=str(company_id)) as span:
            with atomic(session):
                company = self._load_for_update(session, actor, company_id)
                stamp = authorize_finalize(actor, company)
                before = CompanyRead.model_validate(company).model_dump(mode="json")
                result = session.execute(
                    update(Company)
                    .where(
                        and_(
                            Company.id == company.id,
                            Company.row_version == company.row_version,
                            Company.finalization_status == FinalizationStatus.PENDING.value,
                        )
                    )
                    .values(**stamp.as_values(), updated_at=utcnow(), row_version=Company.row_version + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise InvalidTransition("already finalized")

                session.refresh(company)
                by = actor_label(actor.role)
                recipients = (company.assigned_data_collector_id, company.assigned_converter_id)
                notifications = self.notifier.emit(
                    session,
                    [company_finalized(recipient, company.id, company.name, by) for recipient in recipients if recipient],
                    actor_id=actor.user_id,
                )
                finalized = CompanyRead.model_validate(company)
                audit.record_change(
                    actor,
                    self.entity_type,
                    company.id,
                    "finalize",
                    before=before,
                    after=finalized.model_dump(mode="json"),
                )
            span.set_attribute("finalized", True)

        observe_company_finalized()
        self.notifier.dispatch(notifications)
        _publish("crm.company.finalized", actor, {"company_id": str(finalized.id)})
        return FinalizeResponse(message="Company data finalized successfully", company=finalized)


class ContactService:
    """Contacts carry no lifecycle of their own; they are visible wherever their company is."""

    entity_type = "contact"

    def _visible_company(self, session: Session, ctx: AuthContext, company_id: uuid.UUID) -> Company:
        company = session.get(Company, company_id)
        if company is None or not can_view_company(ctx, company):
            raise _not_found("company")
        return company

    def _load_for_update(self, session: Session, ctx: AuthContext, contact_id: uuid.UUID) -> Contact:
        contact = _load_locked(session, Contact, contact_id)
        if contact is None or not can_view_company(ctx, contact.company):
            raise _not_found("contact")
        return contact

    def list_contacts(
        self,
        session: Session,
        ctx: AuthContext | None,
        *,
        company_id: uuid.UUID | None = None,
    ) -> list[ContactRead]:
        actor = require_actor(ctx)
        query = apply_company_visibility(
            select(Contact).join(Company, Contact.company_id == Company.id),
            Company,
            actor,
        )
        if company_id is not None:
            query = query.where(Contact.company_id == company_id)
        rows = session.scalars(query.order_by(Contact.created_at.desc())).all()
        return [ContactRead.model_validate(row) for row in rows]

    def get_contact(self, session: Session, ctx: AuthContext | None, contact_id: uuid.UUID) -> ContactRead:
        actor = require_actor(ctx)
        contact = session.get(Contact, contact_id)
        if contact is None or not can_view_company(actor, contact.company):
            raise _not_found("contact")
        return ContactRead.model_validate(contact)

    def create_contact(self, session: Session, ctx: AuthContext | None, dto: ContactCreate) -> ContactRead:
        actor = authorize_operation(ctx, "contact.create")
        with atomic(session):
            self._visible_company(session, actor, dto.company_id)
            contact = Contact(**dto.model_dump(), created_by_id=actor.user_id)
            session.add(contact)
            session.flush()
            created = ContactRead.model_validate(contact)
            audit.record_change(
                actor,
                self.entity_type,
                contact.id,
                "create",
                after=created.model_dump(mode="json"),
            )

        _publish("crm.contact.created", actor, {"contact_id": str(created.id), "company_id": str(created.company_id)})
        return created

    def update_contact(
        self,
        session: Session,
        ctx: AuthContext | None,
        contact_id: uuid.UUID,
        dto: ContactUpdate,
    ) -> ContactRead:
        actor = authorize_operation(ctx, "contact.update")
        changes = dto.model_dump(exclude_unset=True, exclude={"row_version"})

        with atomic(session):
            contact = self._load_for_update(session, actor, contact_id)
            _check_row_version(dto.row_version, contact.row_version)
            if not changes:
                return ContactRead.model_validate(contact)
            if "company_id" in changes:
                self._visible_company(session, actor, changes["company_id"])

            before = ContactRead.model_validate(contact).model_dump(mode="json")
            result = session.execute(
                update(Contact)
                .where(and_(Contact.id == contact.id, Contact.row_version == contact.row_version))
                .values(**changes, updated_at=utcnow(), row_version=Contact.row_version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise _conflict()

            session.expire(contact, ["company"])
            session.refresh(contact)
            updated = ContactRead.model_validate(contact)
            audit.record_change(
                actor,
                self.entity_type,
                contact.id,
                "update",
                before=before,
                after=updated.model_dump(mode="json"),
            )

        _publish("crm.contact.updated", actor, {"contact_id": str(updated.id), "row_version": updated.row_version})
        return updated

    def delete_contact(self, session: Session, ctx: AuthContext | None, contact_id: uuid.UUID) -> None:
        actor = authorize_operation(ctx, "contact.delete")
        with atomic(session):
            contact = self._load_for_update(session, actor, contact_id)
            before = ContactRead.model_validate(contact).model_dump(mode="json")
            session.delete(contact)
            audit.record_change(
                actor,
                self.entity_type,
                contact_id,
                "delete",
                before=before,
            )
        _publish("crm.contact.deleted", actor, {"contact_id": str(contact_id)})


class TaskService:
    entity_type = "task"

    def __init__(self, notifier: WorkflowNotifier = workflow_notifier) -> None:
        self.notifier = notifier

    def list_tasks(
        self,
        session: Session,
        ctx: AuthContext | None,
        *,
        assigned_to_me: bool = False,
        company_id: uuid.UUID | None = None,
    ) -> list[TaskRead]:
        actor = require_actor(ctx)
        if not actor.permissions.can_read:
            return []
        query = select(Task).order_by(Task.created_at.desc())
        if assigned_to_me:
            query = query.where(Task.assigned_to_id == actor.user_id)
        if company_id is not None:
            query = query.where(Task.company_id == company_id)
        return [TaskRead.model_validate(row) for row in session.scalars(query).all()]

    def create_task(self, session: Session, ctx: AuthContext | None, dto: TaskCreate) -> TaskRead:
        actor = authorize_operation(ctx, "task.create")
        with atomic(session):
            task = Task(**dto.model_dump(), assigned_by_id=actor.user_id)
            session.add(task)
            session.flush()
            candidates = []
            if task.assigned_to_id is not None:
                candidates.append(task_assigned(task.assigned_to_id, task.id, task.title, actor_label(actor.role)))
            notifications = self.notifier.emit(session, candidates, actor_id=actor.user_id)
            created = TaskRead.model_validate(task)
            audit.record_change(
                actor,
                self.entity_type,
                task.id,
                "create",
                after=created.model_dump(mode="json"),
            )

        self.notifier.dispatch(notifications)
        _publish("crm.task.created", actor, {"task_id": str(created.id)})
        return created

    def update_task(self, session: Session, ctx: AuthContext | None, task_id: uuid.UUID, dto: TaskUpdate) -> TaskRead:
        actor = authorize_operation(ctx, "task.update")
        changes = dto.model_dump(exclude_unset=True, exclude={"row_version"})

        with atomic(session):
            task = _load_locked(session, Task, task_id)
            if task is None:
                raise _not_found("task")
            _check_row_version(dto.row_version, task.row_version)
            authorize_work_item_update(actor, task, changes, resource="task")
            if not changes:
                return TaskRead.model_validate(task)

            before = TaskRead.model_validate(task).model_dump(mode="json")
            previous_assignee = task.assigned_to_id
            result = session.execute(
                update(Task)
                .where(and_(Task.id == task.id, Task.row_version == task.row_version))
                .values(**changes, updated_at=utcnow(), row_version=Task.row_version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise _conflict()

            session.refresh(task)
            by = actor_label(actor.role)
            candidates: list[NotificationEvent] = []
            if task.assigned_to_id is not None and task.assigned_to_id != previous_assignee:
                candidates.append(task_assigned(task.assigned_to_id, task.id, task.title, by))
            elif task.assigned_to_id is not None:
                candidates.append(task_updated(task.assigned_to_id, task.id, task.title, by))
            if task.assigned_by_id is not None:
                candidates.append(task_updated(task.assigned_by_id, task.id, task.title, by))
            notifications = self.notifier.emit(session, candidates, actor_id=actor.user_id)

            updated = TaskRead.model_validate(task)
            audit.record_change(
                actor,
                self.entity_type,
                task.id,
                "update",
                before=before,
                after=updated.model_dump(mode="json"),
            )

        self.notifier.dispatch(notifications)
        _publish("crm.task.updated", actor, {"task_id": str(updated.id), "row_version": updated.row_version})
        return updated

    def delete_task(self, session: Session, ctx: AuthContext | None, task_id: uuid.UUID) -> None:
        actor = authorize_operation(ctx, "task.delete")
        with atomic(session):
            task = _load_locked(session, Task, task_id)
            if task is None:
                raise _not_found("task")
            before = TaskRead.model_validate(task).model_dump(mode="json")
            session.delete(task)
            audit.record_change(
                actor,
                self.entity_type,
                task_id,
                "delete",
                before=before,
            )


class TicketService:
    entity_type = "ticket"

    def __init__(self, notifier: WorkflowNotifier = workflow_notifier) -> None:
        self.notifier = notifier

    def _company_name(self, session: Session, company_id: uuid.UUID | None) -> str | None:
        if company_id is None:
            return None
        return session.scalar(select(Company.name).where(Company.id == company_id))

    def list_tickets(self, session: Session, ctx: AuthContext | None, *, assigned_to_me: bool = False) -> list[TicketRead]:
        actor = require_actor(ctx)
        if not actor.permissions.can_read:
            return []
        query = select(Ticket).order_by(Ticket.created_at.desc())
        if assigned_to_me:
            query = query.where(Ticket.assigned_to_id == actor.user_id)
        return [TicketRead.model_validate(row) for row in session.scalars(query).all()]

    def create_ticket(self, session: Session, ctx: AuthContext | None, dto: TicketCreate) -> TicketRead:
        actor = authorize_operation(ctx, "ticket.create")
        with atomic(session):
            ticket = Ticket(**dto.model_dump(), raised_by_id=actor.user_id)
            session.add(ticket)
            session.flush()
            candidates = []
            if ticket.assigned_to_id is not None:
                candidates.append(
                    ticket_raised(
                        ticket.assigned_to_id,
                        ticket.id,
                        ticket.title,
                        actor_label(actor.role),
                        self._company_name(session, ticket.company_id),
                    )
                )
            notifications = self.notifier.emit(session, candidates, actor_id=actor.user_id)
            created = TicketRead.model_validate(ticket)
            audit.record_change(
                actor,
                self.entity_type,
                ticket.id,
                "create",
                after=created.model_dump(mode="json"),
            )

        self.notifier.dispatch(notifications)
        _publish("crm.ticket.created", actor, {"ticket_id": str(created.id)})
        return created

    def update_ticket(self, session: Session, ctx: AuthContext | None, ticket_id: uuid.UUID, dto: TicketUpdate) -> TicketRead:
        actor = authorize_operation(ctx, "ticket.update")
        changes = dto.model_dump(exclude_unset=True, exclude={"row_version"})

        with atomic(session):
            ticket = _load_locked(session, Ticket, ticket_id)
            if ticket is None:
                raise _not_found("ticket")
            _check_row_version(dto.row_version, ticket.row_version)
            authorize_work_item_update(actor, ticket, changes, resource="ticket")
            if not changes:
                return TicketRead.model_validate(ticket)

            if "is_resolved" in changes:
                changes["resolved_at"] = utcnow() if changes["is_resolved"] else None
            before = TicketRead.model_validate(ticket).model_dump(mode="json")
            was_resolved = ticket.is_resolved
            previous_assignee = ticket.assigned_to_id
            result = session.execute(
                update(Ticket)
                .where(and_(Ticket.id == ticket.id, Ticket.row_version == ticket.row_version))
                .values(**changes, updated_at=utcnow(), row_version=Ticket.row_version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise _conflict()

            session.refresh(ticket)
            by = actor_label(actor.role)
            candidates: list[NotificationEvent] = []
            if ticket.is_resolved and not was_resolved:
                candidates.append(ticket_resolved(ticket.raised_by_id, ticket.id, ticket.title, by))
            if ticket.assigned_to_id is not None and ticket.assigned_to_id != previous_assignee:
                candidates.append(
                    ticket_reassigned(
                        ticket.assigned_to_id,
                        ticket.id,
                        ticket.title,
                        by,
                        self._company_name(session, ticket.company_id),
                    )
                )
            notifications = self.notifier.emit(session, candidates, actor_id=actor.user_id)

            updated = TicketRead.model_validate(ticket)
            audit.record_change(
                actor,
                self.entity_type,
                ticket.id,
                "update",
                before=before,
                after=updated.model_dump(mode="json"),
            )

        self.notifier.dispatch(notifications)
        _publish("crm.ticket.updated", actor, {"ticket_id": str(updated.id), "row_version": updated.row_version})
        return updated

    def delete_ticket(self, session: Session, ctx: AuthContext | None, ticket_id: uuid.UUID) -> None:
        actor = authorize_operation(ctx, "ticket.delete")
        with atomic(session):
            ticket = _load_locked(session, Ticket, ticket_id)
            if ticket is None:
                raise _not_found("ticket")
            before = TicketRead.model_validate(ticket).model_dump(mode="json")
            session.delete(ticket)
            audit.record_change(
                actor,
                self.entity_type,
                ticket_id,
                "delete",
                before=before,
            )


class CommentService:
    entity_type = "comment"

    def _visible_company(self, session: Session, ctx: AuthContext, company_id: uuid.UUID) -> Company:
        company = session.get(Company, company_id)
        if company is None or not can_view_company(ctx, company):
            raise _not_found("company")
        return company

    def list_comments(self, session: Session, ctx: AuthContext | None, company_id: uuid.UUID) -> list[CommentRead]:
        actor = require_actor(ctx)
        self._visible_company(session, actor, company_id)
        rows = session.scalars(
            select(Comment).where(Comment.company_id == company_id).order_by(Comment.created_at.asc())
        ).all()
        return [CommentRead.model_validate(row) for row in rows]

    def create_comment(self, session: Session, ctx: AuthContext | None, dto: CommentCreate) -> CommentRead:
        actor = authorize_operation(ctx, "comment.create")
        with atomic(session):
            self._visible_company(session, actor, dto.company_id)
            comment = Comment(**dto.model_dump(), author_id=actor.user_id)
            session.add(comment)
            session.flush()
            created = CommentRead.model_validate(comment)
            audit.record_change(
                actor,
                self.entity_type,
                comment.id,
                "create",
                after=created.model_dump(mode="json"),
            )
        return created

    def update_comment(
        self,
        session: Session,
        ctx: AuthContext | None,
        comment_id: uuid.UUID,
        dto: CommentUpdate,
    ) -> CommentRead:
        actor = authorize_operation(ctx, "comment.update")
        with atomic(session):
            comment = _load_locked(session, Comment, comment_id)
            if comment is None:
                raise _not_found("comment")
            authorize_author_or_admin(actor, comment, operation="comment.update")
            before = CommentRead.model_validate(comment).model_dump(mode="json")
            comment.content = dto.content
            comment.updated_at = utcnow()
            session.flush()
            updated = CommentRead.model_validate(comment)
            audit.record_change(
                actor,
                self.entity_type,
                comment.id,
                "update",
                before=before,
                after=updated.model_dump(mode="json"),
            )
        return updated

    def delete_comment(self, session: Session, ctx: AuthContext | None, comment_id: uuid.UUID) -> None:
        actor = authorize_operation(ctx, "comment.delete")
        with atomic(session):
            comment = _load_locked(session, Comment, comment_id)
            if comment is None:
                raise _not_found("comment")
            authorize_author_or_admin(actor, comment, operation="comment.delete")
            session.delete(comment)
            audit.record_change(actor, self.entity_type, comment_id, "delete")


class NotificationService:
    def _owned(self, session: Session, ctx: AuthContext, notification_id: uuid.UUID) -> Notification:
        notification = session.get(Notification, notification_id)
        if notification is None or notification.recipient_id != ctx.user_id:
            raise _not_found("notification")
        return notification

    def list_notifications(self, session: Session, ctx: AuthContext | None, *, limit: int = 50) -> list[NotificationRead]:
        actor = require_actor(ctx)
        rows = session.scalars(
            select(Notification)
            .where(Notification.recipient_id == actor.user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        ).all()
        return [NotificationRead.model_validate(row) for row in rows]

    def unread_count(self, session: Session, ctx: AuthContext | None) -> int:
        actor = require_actor(ctx)
        return session.scalar(
            select(func.count())
            .select_from(Notification)
            .where(and_(Notification.recipient_id == actor.user_id, Notification.is_read.is_(False)))
        ) or 0

    def mark_read(self, session: Session, ctx: AuthContext | None, notification_id: uuid.UUID) -> NotificationRead:
        actor = require_actor(ctx)
        with atomic(session):
            notification = self._owned(session, actor, notification_id)
            notification.is_read = True
            session.flush()
            read = NotificationRead.model_validate(notification)
        return read

    def mark_all_read(self, session: Session, ctx: AuthContext | None) -> int:
        actor = require_actor(ctx)
        with atomic(session):
            result = session.execute(
                update(Notification)
                .where(and_(Notification.recipient_id == actor.user_id, Notification.is_read.is_(False)))
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount

    def delete_notification(self, session: Session, ctx: AuthContext | None, notification_id: uuid.UUID) -> None:
        actor = require_actor(ctx)
        with atomic(session):
            session.delete(self._owned(session, actor, notification_id))


company_service = CompanyService()
task_service = TaskService()
ticket_service = TicketService()
contact_service = ContactService()
comment_service = CommentService()
notification_service = NotificationService()
