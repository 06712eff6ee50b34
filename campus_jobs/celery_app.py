from __future__ import annotations

from celery import Celery

from campus_jobs.config import settings

celery_app = Celery(
    "campus_booking",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["campus_jobs.tasks"],
)

celery_app.conf.timezone = settings.timezone
celery_app.conf.broker_connection_retry_on_startup = True
celery_app.conf.beat_schedule = {
    "complete-elapsed": {
        "task": "jobs.complete_elapsed",
        "schedule": float(settings.completion_sweep_seconds),
    },
}
