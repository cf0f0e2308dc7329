"""
Entry points that decide *whose* snapshot to write and *when*.

- ``run_daily_sweep``: every user with an account, once a day (Celery Beat)
- ``handle_balance_change``: one user, when an account balance changes
- ``create_manual_snapshot``: the authenticated caller, on request

Each user is processed as read accounts -> compute -> write, strictly in
that order. Users are independent, so the sweep runs them concurrently under
a semaphore, each on its own session. No retries happen here; re-running a
trigger is safe because writes are upserts.
"""

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from networth.config import settings
from networth.core.database import AsyncSessionLocal
from networth.core.exceptions import SnapshotError, Unauthenticated
from networth.core.logging_config import get_logger
from networth.core.metrics import track_snapshot, track_sweep
from networth.models.net_worth_snapshot import SnapshotSource
from networth.schemas.snapshot import AccountChangeEvent, ManualSnapshotResult
from networth.services.account_reader import AccountReader, account_reader
from networth.services.identity.base import AuthenticatedIdentity
from networth.services.snapshot_service import (
    SnapshotOutcome,
    SnapshotResult,
    SnapshotService,
    snapshot_service,
)
from networth.utils.datetime_utils import reporting_today

logger = get_logger(__name__)


@dataclass
class UserFailure:
    """A user whose snapshot could not be computed during a sweep."""

    user_id: str
    kind: str
    message: str


@dataclass
class SweepReport:
    """What a daily sweep did, user by user."""

    snapshot_date: date
    written: List[str] = field(default_factory=list)
    no_accounts: List[str] = field(default_factory=list)
    failed: List[UserFailure] = field(default_factory=list)

    @property
    def total_users(self) -> int:
        return len(self.written) + len(self.no_accounts) + len(self.failed)

    def to_dict(self) -> dict:
        return {
            "snapshot_date": self.snapshot_date.isoformat(),
            "written": self.written,
            "no_accounts": self.no_accounts,
            "failed": [
                {"user_id": f.user_id, "kind": f.kind, "message": f.message}
                for f in self.failed
            ],
        }


class SnapshotOrchestrator:
    """Wires the account reader and snapshot writer to the three triggers."""

    def __init__(
        self,
        reader: Optional[AccountReader] = None,
        writer: Optional[SnapshotService] = None,
    ):
        self.reader = reader or account_reader
        self.writer = writer or snapshot_service

    async def run_daily_sweep(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        user_ids: Optional[Iterable[str]] = None,
        today: Optional[date] = None,
        max_concurrency: Optional[int] = None,
    ) -> SweepReport:
        """
        Snapshot every user with an account for the reporting date.

        A failure for one user is recorded in the report and never stops the
        others. All computed snapshots are committed as one batch.

        Args:
            session_factory: Session factory (defaults to the app's)
            user_ids: Restrict the sweep to these users instead of enumerating
            today: Reporting date (defaults to today in SNAPSHOT_TIMEZONE)
            max_concurrency: Users processed at once (defaults to
                SNAPSHOT_SWEEP_CONCURRENCY)

        Raises:
            StoreUnavailable: users could not be enumerated
            PersistFailure: the batch commit failed (nothing was written)
        """
        session_factory = session_factory or AsyncSessionLocal
        snapshot_date = today or reporting_today()
        started = time.monotonic()

        if user_ids is None:
            async with session_factory() as db:
                user_ids = await self.reader.list_user_ids_with_any_account(db)
        ordered = sorted(set(user_ids))

        logger.info(
            "sweep_started", user_count=len(ordered), snapshot_date=snapshot_date.isoformat()
        )

        semaphore = asyncio.Semaphore(max_concurrency or settings.SNAPSHOT_SWEEP_CONCURRENCY)

        async def _compute(user_id: str):
            async with semaphore:
                async with session_factory() as db:
                    accounts = await self.reader.list_active_accounts(db, user_id)
                return self.writer.compute_snapshot(
                    user_id, snapshot_date, accounts, SnapshotSource.DAILY_SWEEP
                )

        outcomes = await asyncio.gather(
            *(_compute(user_id) for user_id in ordered), return_exceptions=True
        )

        report = SweepReport(snapshot_date=snapshot_date)
        computed = []
        for user_id, outcome in zip(ordered, outcomes):
            if isinstance(outcome, SnapshotError):
                report.failed.append(UserFailure(user_id, outcome.kind, outcome.message))
                logger.warning("sweep_user_failed", user_id=user_id, kind=outcome.kind)
            elif isinstance(outcome, Exception):
                report.failed.append(UserFailure(user_id, type(outcome).__name__, str(outcome)))
                logger.error(
                    "sweep_user_failed",
                    user_id=user_id,
                    kind=type(outcome).__name__,
                    exc_info=outcome,
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome is None:
                report.no_accounts.append(user_id)
                track_snapshot(SnapshotSource.DAILY_SWEEP.value, SnapshotOutcome.NO_ACCOUNTS.value)
            else:
                computed.append(outcome)

        async with session_factory() as db:
            await self.writer.write_batch(db, computed)
        report.written = [c.user_id for c in computed]

        track_sweep(
            time.monotonic() - started,
            Counter(failure.kind for failure in report.failed),
        )
        logger.info(
            "sweep_completed",
            snapshot_date=snapshot_date.isoformat(),
            written=len(report.written),
            no_accounts=len(report.no_accounts),
            failed=len(report.failed),
        )
        return report

    async def handle_balance_change(
        self,
        db: AsyncSession,
        event: AccountChangeEvent,
        today: Optional[date] = None,
    ) -> Optional[SnapshotResult]:
        """
        Re-aggregate one user's snapshot after an account update.

        "Today" is the reporting date at invocation time, not at the time the
        account changed.

        Returns:
            None when the balance did not change (nothing written), otherwise
            the write result

        Raises:
            StoreUnavailable, PersistFailure, UnsupportedCurrency
        """
        if event.before.balance == event.after.balance:
            logger.debug(
                "balance_unchanged", user_id=event.user_id, account_id=event.account_id
            )
            return None

        snapshot_date = today or reporting_today()
        accounts = await self.reader.list_active_accounts(db, event.user_id)
        return await self.writer.write_snapshot(
            db, event.user_id, snapshot_date, accounts, SnapshotSource.BALANCE_CHANGE
        )

    async def create_manual_snapshot(
        self,
        db: AsyncSession,
        identity: Optional[AuthenticatedIdentity],
        today: Optional[date] = None,
    ) -> ManualSnapshotResult:
        """
        Snapshot exactly the caller's own accounts.

        Raises:
            Unauthenticated: no caller identity
            StoreUnavailable, PersistFailure, UnsupportedCurrency
        """
        if identity is None or not identity.user_id:
            raise Unauthenticated("User must be authenticated")

        user_id = identity.user_id
        snapshot_date = today or reporting_today()
        logger.info("manual_snapshot_requested", user_id=user_id)

        accounts = await self.reader.list_active_accounts(db, user_id)
        result = await self.writer.write_snapshot(
            db, user_id, snapshot_date, accounts, SnapshotSource.MANUAL
        )

        if result.outcome == SnapshotOutcome.NO_ACCOUNTS:
            return ManualSnapshotResult(
                success=False,
                message="No accounts found",
                account_count=0,
                snapshot_date=snapshot_date,
            )

        return ManualSnapshotResult(
            success=True,
            message=f"Snapshot created for {snapshot_date.isoformat()}",
            net_worth=result.total_net_worth,
            account_count=result.account_count,
            snapshot_date=snapshot_date,
        )


# Singleton instance
snapshot_orchestrator = SnapshotOrchestrator()
