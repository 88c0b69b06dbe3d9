from celery import Celery
from .config import settings

celery_app = Celery(
    "dockback_controller",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["controller.app.tasks"],
)

celery_app.conf.task_routes = {
    "controller.tasks.*": {"queue": "dockback-controller"},
}

celery_app.conf.beat_schedule = {
    "dispatch-due-policies": {
        "task": "controller.tasks.dispatch_due_policies",
        "schedule": float(settings.dispatch_interval_seconds),
    },
    "collect-orphaned-jobs": {
        "task": "controller.tasks.collect_orphaned_jobs",
        "schedule": float(settings.orphan_collect_interval_seconds),
    },
}
