from celery import Celery
from celery.schedules import crontab

from refined_crm.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "refined_crm",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["refined_crm.crm.jobs"],
)
celery_app.conf.timezone = "UTC"
celery_app.conf.beat_schedule = {
    "crm-deadline-reminders": {
        "task": "crm.jobs.deadline_reminders",
        "schedule": crontab(hour=settings.deadline_reminder_hour, minute=0),
    },
    "crm-overdue-notices": {
        "task": "crm.jobs.overdue_notices",
        "schedule": crontab(hour=settings.overdue_notice_hour, minute=0),
    },
}
