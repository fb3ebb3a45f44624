"""Workflow notifier.

Notifications are written to ``crm_notification`` inside the caller's
transaction, so they commit or roll back together with the state change that
caused them. After commit the caller hands the same events to
:meth:`WorkflowNotifier.dispatch`, which publishes them on the event bus for
any live delivery channel. A retried request may notify twice; a committed
change never loses its notification.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy.orm import Session

from refined_crm import events
from refined_crm.crm.models import Notification
from refined_crm.metrics import observe_notification
from refined_crm.platform.security.roles import Role


logger = logging.getLogger("refined_crm.notifier")


class NotificationKind(StrEnum):
    TASK_ASSIGNED = "task.assigned"
    TASK_UPDATED = "task.updated"
    TICKET_RAISED = "ticket.raised"
    TICKET_REASSIGNED = "ticket.reassigned"
    TICKET_RESOLVED = "ticket.resolved"
    COMPANY_ASSIGNED = "company.assigned"
    COMPANY_FINALIZED = "company.finalized"
    DEADLINE_APPROACHING = "task.deadline_approaching"
    TASK_OVERDUE = "task.overdue"


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    recipient_id: uuid.UUID
    message: str
    kind: NotificationKind
    entity_type: str | None = None
    entity_id: uuid.UUID | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "recipientId": str(self.recipient_id),
            "message": self.message,
            "kind": self.kind.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id is not None else None,
        }


def actor_label(role: Role | None) -> str:
    return f"A {role.value}" if role is not None else "Someone"


def _company_suffix(company_name: str | None) -> str:
    return f" for {company_name}" if company_name else ""


def task_assigned(recipient_id: uuid.UUID, task_id: uuid.UUID, title: str, by: str) -> NotificationEvent:
    return NotificationEvent(recipient_id, f'{by} assigned you a new task: "{title}"', NotificationKind.TASK_ASSIGNED, "task", task_id)


def task_updated(recipient_id: uuid.UUID, task_id: uuid.UUID, title: str, by: str) -> NotificationEvent:
    return NotificationEvent(recipient_id, f'{by} updated task: "{title}"', NotificationKind.TASK_UPDATED, "task", task_id)


def ticket_raised(
    recipient_id: uuid.UUID,
    ticket_id: uuid.UUID,
    title: str,
    by: str,
    company_name: str | None = None,
) -> NotificationEvent:
    message = f'{by} raised a ticket{_company_suffix(company_name)}: "{title}" and assigned it to you'
    return NotificationEvent(recipient_id, message, NotificationKind.TICKET_RAISED, "ticket", ticket_id)


def ticket_reassigned(
    recipient_id: uuid.UUID,
    ticket_id: uuid.UUID,
    title: str,
    by: str,
    company_name: str | None = None,
) -> NotificationEvent:
    message = f'{by} reassigned a ticket{_company_suffix(company_name)} to you: "{title}"'
    return NotificationEvent(recipient_id, message, NotificationKind.TICKET_REASSIGNED, "ticket", ticket_id)


def ticket_resolved(recipient_id: uuid.UUID, ticket_id: uuid.UUID, title: str, by: str) -> NotificationEvent:
    return NotificationEvent(recipient_id, f'{by} resolved your ticket: "{title}"', NotificationKind.TICKET_RESOLVED, "ticket", ticket_id)


def company_assigned(recipient_id: uuid.UUID, company_id: uuid.UUID, name: str, by: str) -> NotificationEvent:
    return NotificationEvent(recipient_id, f'{by} assigned you company "{name}"', NotificationKind.COMPANY_ASSIGNED, "company", company_id)


def company_finalized(recipient_id: uuid.UUID, company_id: uuid.UUID, name: str, by: str) -> NotificationEvent:
    return NotificationEvent(recipient_id, f'{by} finalized company "{name}"', NotificationKind.COMPANY_FINALIZED, "company", company_id)


def deadline_approaching(
    recipient_id: uuid.UUID,
    task_id: uuid.UUID,
    title: str,
    deadline: datetime,
    company_name: str | None = None,
) -> NotificationEvent:
    message = f'Deadline Alert: Task "{title}"{_company_suffix(company_name)} is due on {deadline:%Y-%m-%d}'
    return NotificationEvent(recipient_id, message, NotificationKind.DEADLINE_APPROACHING, "task", task_id)


def task_overdue(recipient_id: uuid.UUID, task_id: uuid.UUID, title: str, company_name: str | None = None) -> NotificationEvent:
    message = f'OVERDUE: Task "{title}"{_company_suffix(company_name)} is past its deadline!'
    return NotificationEvent(recipient_id, message, NotificationKind.TASK_OVERDUE, "task", task_id)


class WorkflowNotifier:
    event_type = "crm.notification.created"

    def emit(
        self,
        session: Session,
        candidates: Iterable[NotificationEvent],
        *,
        actor_id: uuid.UUID | None,
    ) -> list[NotificationEvent]:
        """Persist one notification per affected user, never to ``actor_id``."""

        emitted: list[NotificationEvent] = []
        seen: set[tuple[uuid.UUID, NotificationKind, uuid.UUID | None]] = set()
        for event in candidates:
            if actor_id is not None and event.recipient_id == actor_id:
                continue
            key = (event.recipient_id, event.kind, event.entity_id)
            if key in seen:
                continue
            seen.add(key)
            session.add(
                Notification(
                    recipient_id=event.recipient_id,
                    message=event.message,
                    kind=event.kind.value,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                )
            )
            emitted.append(event)

        if emitted:
            session.flush()
        for kind, count in Counter(event.kind for event in emitted).items():
            observe_notification(kind.value, count)
        return emitted

    def dispatch(self, emitted: Iterable[NotificationEvent]) -> int:
        dispatched = 0
        for event in emitted:
            events.publish(events.build_envelope(self.event_type, event.to_payload()))
            dispatched += 1
        if dispatched:
            logger.info("crm.notifications.dispatched", extra={"recipient_count": dispatched})
        return dispatched


workflow_notifier = WorkflowNotifier()
