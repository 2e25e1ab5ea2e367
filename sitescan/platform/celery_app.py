from celery import Celery
from kombu import Queue

from sitescan.platform.config import settings


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Celery only runs maintenance here; scan tasks are claimed from the
    database by the task workers (sitescan-worker).

    Queue Structure:
    - scan.maintenance: cache purge and stale task recovery
    """
    celery_app = Celery(
        "sitescan",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer=settings.CELERY_RESULT_SERIALIZER,
        accept_content=[settings.CELERY_ACCEPT_CONTENT],
        timezone="UTC",
        enable_utc=True,
        task_time_limit=settings.CELERY_TASK_TIME_LIMIT,

        result_expires=3600,  # Results expire after 1 hour

        task_routes={
            "sitescan.features.scan.workers.maintenance_tasks.purge_expired_cache": {"queue": "scan.maintenance"},
            "sitescan.features.scan.workers.maintenance_tasks.requeue_stale_tasks": {"queue": "scan.maintenance"},
        },

        task_queues=(
            Queue("default"),
            Queue("scan.maintenance"),
        ),

        task_default_queue="default",

        worker_prefetch_multiplier=1,  # Fair distribution

        # Celery Beat schedule for periodic tasks
        beat_schedule={
            "purge-expired-cache": {
                "task": "sitescan.features.scan.workers.maintenance_tasks.purge_expired_cache",
                "schedule": 900.0,  # every 15 minutes
            },
            "requeue-stale-tasks": {
                "task": "sitescan.features.scan.workers.maintenance_tasks.requeue_stale_tasks",
                "schedule": 300.0,  # every 5 minutes
            },
        },
    )

    celery_app.autodiscover_tasks(["sitescan.features.scan.workers"], related_name="maintenance_tasks")

    return celery_app


# Global Celery app instance
celery_app = create_celery_app()
