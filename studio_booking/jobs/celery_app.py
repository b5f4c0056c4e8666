"""Celery application configuration"""

from celery import Celery
from studio_booking.config import settings

# Create Celery app
celery_app = Celery(
    "studio_booking",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "studio_booking.jobs.tasks",
    ],
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.local_timezone,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Beat schedule for periodic tasks
    beat_schedule={
        "dispatch-due-reminders": {
            "task": "dispatch_due_reminders",
            "schedule": 300.0,  # Every 5 minutes
        },
    },
)
