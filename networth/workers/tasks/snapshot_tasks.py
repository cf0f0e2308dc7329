"""
Celery tasks for net-worth snapshot capture.

- Beat fires ``create_daily_net_worth_snapshots`` once a day at
  SNAPSHOT_SWEEP_HOUR:SNAPSHOT_SWEEP_MINUTE in SNAPSHOT_TIMEZONE.
- ``snapshot_on_balance_change`` is the queue-delivered variant of the
  account change notification endpoint.

Retries (StoreUnavailable, PersistFailure) come from RetryableTask.
"""

import asyncio
import time

from networth.core.database import task_session_factory
from networth.core.logging_config import get_logger, log_celery_task
from networth.schemas.snapshot import AccountChangeEvent
from networth.services.snapshot_orchestrator import snapshot_orchestrator
from networth.workers.celery_app import celery_app

logger = get_logger(__name__)


async def _run_daily_sweep() -> dict:
    async with task_session_factory() as session_factory:
        report = await snapshot_orchestrator.run_daily_sweep(session_factory=session_factory)
    return report.to_dict()


async def _run_balance_change(event: AccountChangeEvent) -> dict:
    async with task_session_factory() as session_factory:
        async with session_factory() as db:
            result = await snapshot_orchestrator.handle_balance_change(db, event)

    if result is None:
        return {"written": False}
    return {
        "written": result.written,
        "total_net_worth": str(result.total_net_worth) if result.total_net_worth is not None else None,
        "account_count": result.account_count,
        "snapshot_date": result.snapshot_date.isoformat(),
    }


@celery_app.task(bind=True, name="create_daily_net_worth_snapshots")
def create_daily_net_worth_snapshots(self):
    """
    Snapshot every user with an account for today.

    Per-user failures are part of the returned report; only a failed batch
    commit fails (and retries) the task.
    """
    started = time.monotonic()
    report = asyncio.run(_run_daily_sweep())
    log_celery_task(
        logger,
        task_name="create_daily_net_worth_snapshots",
        task_id=self.request.id or "",
        status="success",
        duration_ms=(time.monotonic() - started) * 1000,
        written=len(report["written"]),
        failed=len(report["failed"]),
    )
    return report


@celery_app.task(bind=True, name="snapshot_on_balance_change")
def snapshot_on_balance_change(self, event: dict):
    """Re-aggregate one user's snapshot for an account change payload."""
    change = AccountChangeEvent.model_validate(event)
    return asyncio.run(_run_balance_change(change))
