from celery import Celery

from fulfillment.config import get_settings

settings = get_settings()

# Create Celery application
celery_app = Celery(
    "fulfillment",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["fulfillment.tasks.inventory_tasks"]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task settings
    task_track_started=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=240,  # Soft limit 4 minutes

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Retry settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Periodic low-stock scan
    beat_schedule={
        "replenish-low-stock": {
            "task": "replenish_low_stock",
            "schedule": float(settings.REPLENISH_INTERVAL_SECONDS),
        },
    },
)
