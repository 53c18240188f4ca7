"""Celery application configuration."""

from celery import Celery

from cdn_broker.settings import get_settings
from cdn_broker.utils.schedule import parse_schedule

settings = get_settings()

celery_app = Celery(
    "cdn_broker_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    beat_schedule={
        "check-routes-to-update": {
            "task": "cdn_broker_worker.tasks.check_routes_to_update",
            "schedule": parse_schedule(settings.route_check_schedule),
        },
        "delete-orphaned-certs": {
            "task": "cdn_broker_worker.tasks.delete_orphaned_certs",
            "schedule": parse_schedule(settings.schedule),
        },
    },
)

# Import tasks to register them with Celery
# This must be done after celery_app is created
from cdn_broker_worker import tasks  # noqa: F401, E402
