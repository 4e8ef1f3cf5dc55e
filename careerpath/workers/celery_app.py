from celery import Celery

from careerpath.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "careerpath",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    beat_schedule={
        "purge-expired-records": {
            "task": "maintenance.purge_expired",
            "schedule": 3600.0,
        },
    },
)

celery_app.autodiscover_tasks([
    "careerpath.workers.maintenance",
    "careerpath.workers.notifications",
])
