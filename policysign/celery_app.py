from celery import Celery

from policysign.config import settings

celery = Celery(
    "policysign",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["policysign.esign.celery_tasks"],
)

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

celery.conf.beat_schedule = {
    "sweep-expired-signature-requests": {
        "task": "esign.sweep_expired",
        "schedule": settings.sweep_interval_seconds,
    },
    "send-due-signature-reminders": {
        "task": "esign.send_due_reminders",
        "schedule": settings.reminder_task_interval_seconds,
    },
}
