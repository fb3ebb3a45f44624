"""Periodic deadline and overdue checks.

The jobs only read task state and hand notifications to the workflow
notifier; they never change a task.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from refined_crm.core.celery_app import celery_app
from refined_crm.core.database import SessionLocal, atomic
from refined_crm.crm.models import Company, Task
from refined_crm.crm.notifier import NotificationEvent, WorkflowNotifier, deadline_approaching, task_overdue, workflow_notifier
from refined_crm.crm.schemas import TaskStatus
from refined_crm.metrics import observe_job
from refined_crm.otel import get_tracer, start_span


logger = logging.getLogger("refined_crm.jobs")
tracer = get_tracer("refined_crm.jobs")


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


class DeadlineJobRunner:
    def __init__(self, notifier: WorkflowNotifier = workflow_notifier) -> None:
        self.notifier = notifier

    def _open_tasks(self):  # type: ignore[no-untyped-def]
        return (
            select(Task, Company.name)
            .outerjoin(Company, Task.company_id == Company.id)
            .where(and_(Task.status != TaskStatus.COMPLETED.value, Task.assigned_to_id.is_not(None)))
            .order_by(Task.deadline.asc())
        )

    def _run(self, session: Session, job_type: str, candidates: list[NotificationEvent]) -> int:
        started = time.perf_counter()
        with start_span(tracer, f"crm.job.{job_type}", candidate_count=len(candidates)) as span:
            try:
                with atomic(session):
                    emitted = self.notifier.emit(session, candidates, actor_id=None)
            except Exception as exc:
                observe_job(job_type, "Failed", time.perf_counter() - started)
                logger.exception("crm.job.failed", extra={"job_type": job_type, "error": str(exc)})
                raise
            span.set_attribute("notification_count", len(emitted))

        self.notifier.dispatch(emitted)
        observe_job(job_type, "Succeeded", time.perf_counter() - started)
        logger.info("crm.job.completed", extra={"job_type": job_type, "count": len(emitted)})
        return len(emitted)

    def run_deadline_reminders(self, session: Session, now: datetime | None = None) -> int:
        """Remind assignees of open tasks due from ``now`` until the end of tomorrow.

        Deadlines already passed belong to the overdue notices.
        """

        window_start = now or datetime.now(timezone.utc)
        window_end = _start_of_day(window_start) + timedelta(days=2)
        rows = session.execute(
            self._open_tasks().where(and_(Task.deadline >= window_start, Task.deadline < window_end))
        ).all()
        candidates = [
            deadline_approaching(task.assigned_to_id, task.id, task.title, task.deadline, company_name)
            for task, company_name in rows
        ]
        return self._run(session, "deadline_reminders", candidates)

    def run_overdue_notices(self, session: Session, now: datetime | None = None) -> int:
        cutoff = now or datetime.now(timezone.utc)
        rows = session.execute(self._open_tasks().where(Task.deadline < cutoff)).all()
        candidates = [task_overdue(task.assigned_to_id, task.id, task.title, company_name) for task, company_name in rows]
        return self._run(session, "overdue_notices", candidates)


deadline_job_runner = DeadlineJobRunner()


@celery_app.task(name="crm.jobs.deadline_reminders")
def deadline_reminders_task() -> int:
    session = SessionLocal()
    try:
        return deadline_job_runner.run_deadline_reminders(session)
    finally:
        session.close()


@celery_app.task(name="crm.jobs.overdue_notices")
def overdue_notices_task() -> int:
    session = SessionLocal()
    try:
        return deadline_job_runner.run_overdue_notices(session)
    finally:
        session.close()
