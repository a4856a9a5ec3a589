from celery import Celery

from lexhold.config import settings

celery_app = Celery(
    "lexhold",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["lexhold.tasks.notifications", "lexhold.tasks.reminders"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.celery_task_always_eager,
    beat_schedule={
        "send-due-reminders": {
            "task": "lexhold.tasks.reminders.send_due_reminders",
            "schedule": float(settings.reminder_sweep_seconds),
        },
        "expire-holds": {
            "task": "lexhold.tasks.reminders.expire_holds",
            "schedule": float(settings.reminder_sweep_seconds),
        },
    },
)
