from celery import Celery
from celery.schedules import crontab

from .config import get_settings

settings = get_settings()

app = Celery(
    "time_capsule",
    broker=settings.celery_broker_url,
    backend=settings.celery_broker_url,
    include=["capsule_api.tasks"],
)
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

app.conf.beat_schedule = {
    "reconcile-due-capsules-every-10-minutes": {
        "task": "capsule_api.tasks.reconcile_due_capsules",
        "schedule": crontab(minute="*/10"),
    },
}
