"""
Celery application instance.

Configured with Redis broker and backend. Beat runs the daily heartbeat
reminder sweep.
"""

from celery import Celery
from celery.schedules import crontab

from vantage.core.config import settings

celery_app = Celery(
    "vantage",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "vantage.workers.email_tasks",
        "vantage.workers.reminder_tasks",
    ],
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Results
    result_expires=3600,
    # Retry policy
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Concurrency
    worker_prefetch_multiplier=1,
    # Publishing gives up with the notification timeout instead of hanging
    broker_connection_timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
    broker_transport_options={
        "socket_timeout": settings.NOTIFICATION_TIMEOUT_SECONDS,
        "socket_connect_timeout": settings.NOTIFICATION_TIMEOUT_SECONDS,
    },
    redis_socket_timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
    redis_socket_connect_timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
    # Routing
    task_default_queue="default",
    task_queues={
        "default": {},
        "email": {},
        "reminders": {},
    },
    task_routes={
        "vantage.workers.email_tasks.*": {"queue": "email"},
        "vantage.workers.reminder_tasks.*": {"queue": "reminders"},
    },
    # Schedule
    beat_schedule={
        "daily-heartbeat-reminders": {
            "task": "vantage.workers.reminder_tasks.send_heartbeat_reminders",
            "schedule": crontab(hour=8, minute=0),
        },
    },
)
