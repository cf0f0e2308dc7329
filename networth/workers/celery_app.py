"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init

from networth.config import settings
from networth.core.exceptions import PersistFailure, StoreUnavailable

celery_app = Celery(
    "networth",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Beat fires crontabs in the reporting timezone
    timezone=settings.SNAPSHOT_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=900,
    task_soft_time_limit=840,
    # Re-queue tasks if a worker crashes mid-execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_retry_delay=60,
)


class RetryableTask(celery_app.Task):
    """
    Base task class with exponential-backoff retry on transient store errors.

    Only StoreUnavailable and PersistFailure are retried; snapshot writes are
    upserts, so a retry never duplicates a row.
    """

    abstract = True
    autoretry_for = (StoreUnavailable, PersistFailure)
    max_retries = 3
    retry_backoff = True        # 60s -> 120s -> 240s
    retry_backoff_max = 600
    retry_jitter = True


celery_app.Task = RetryableTask


@worker_process_init.connect
def _configure_worker_logging(**kwargs):
    from networth.core.logging_config import setup_logging

    setup_logging()


from networth.workers.tasks import snapshot_tasks  # noqa: E402,F401

celery_app.conf.beat_schedule = {
    "create-daily-net-worth-snapshots": {
        "task": "create_daily_net_worth_snapshots",
        "schedule": crontab(
            hour=settings.SNAPSHOT_SWEEP_HOUR, minute=settings.SNAPSHOT_SWEEP_MINUTE
        ),
    },
}
