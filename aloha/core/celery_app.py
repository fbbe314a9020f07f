from celery import Celery
from celery.schedules import crontab
from aloha.core.config import settings

celery_app = Celery(
    "aloha",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["aloha.tasks.security_tasks"]
)

# Celery Configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    task_track_started=True,

    task_time_limit=300,        # Hard limit (5 min)
    task_soft_time_limit=240,   # Soft limit (4 min)

    task_acks_late=True,
    task_reject_on_worker_lost=True,

    result_expires=3600,  # 1 hour
)

celery_app.conf.beat_schedule = {
    "purge-expired-blacklisted-tokens-hourly": {
        "task": "aloha.tasks.security_tasks.cleanup_expired_blacklisted_tokens",
        "schedule": crontab(minute=15),
    },
}
