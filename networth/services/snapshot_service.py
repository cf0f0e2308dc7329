"""
Net-worth snapshot service.

Computes a user's aggregate net worth for one calendar date and persists it
as a single ``net_worth_snapshots`` row keyed by (user_id, snapshot_date).
Writes are idempotent upserts: the last write for a key wins and the
breakdown is replaced, never appended to.
"""

import enum
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from networth.core.exceptions import PersistFailure
from networth.core.logging_config import get_logger
from networth.core.metrics import track_snapshot
from networth.models.account import Account
from networth.models.net_worth_snapshot import NetWorthSnapshot, SnapshotSource
from networth.services.valuation_normalizer import ValuationNormalizer, valuation_normalizer

logger = get_logger(__name__)


class SnapshotOutcome(str, enum.Enum):
    WRITTEN = "written"
    NO_ACCOUNTS = "no_accounts"


@dataclass
class ComputedSnapshot:
    """A snapshot computed in memory, not yet persisted."""

    user_id: str
    snapshot_date: date
    total_net_worth: Decimal
    reporting_currency: str
    source: SnapshotSource
    account_breakdown: Dict[str, dict] = field(default_factory=dict)

    @property
    def account_count(self) -> int:
        return len(self.account_breakdown)


@dataclass
class SnapshotResult:
    """Outcome of one write_snapshot call."""

    outcome: SnapshotOutcome
    user_id: str
    snapshot_date: date
    total_net_worth: Optional[Decimal] = None
    account_count: int = 0

    @property
    def written(self) -> bool:
        return self.outcome == SnapshotOutcome.WRITTEN


def _insert_for(db: AsyncSession):
    """Return the dialect-specific ``insert`` that supports ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Snapshot upsert not supported on {dialect}")
    return insert


class SnapshotService:
    """Service for computing, writing and reading net-worth snapshots."""

    def __init__(self, normalizer: Optional[ValuationNormalizer] = None):
        self.normalizer = normalizer or valuation_normalizer

    def compute_snapshot(
        self,
        user_id: str,
        snapshot_date: date,
        accounts: Sequence[Account],
        source: SnapshotSource,
    ) -> Optional[ComputedSnapshot]:
        """
        Aggregate ``accounts`` into a snapshot.

        Converted balances are rounded to cents before they are summed, so the
        total always equals the sum of the breakdown exactly.

        Returns:
            The computed snapshot, or None when there are no non-deleted accounts

        Raises:
            UnsupportedCurrency: an account's currency has no fixed rate
        """
        total = Decimal("0.00")
        breakdown: Dict[str, dict] = {}

        for account in accounts:
            if account.is_deleted:
                continue
            balance = Decimal(str(account.balance))
            converted = self.normalizer.convert(balance, account.currency)
            total += converted
            breakdown[str(account.id)] = {
                "balance": str(balance),
                "currency": (account.currency or self.normalizer.reporting_currency).upper(),
                "name": account.name,
                "converted_balance": str(converted),
            }

        if not breakdown:
            return None

        return ComputedSnapshot(
            user_id=user_id,
            snapshot_date=snapshot_date,
            total_net_worth=total,
            reporting_currency=self.normalizer.reporting_currency,
            source=source,
            account_breakdown=breakdown,
        )

    async def write_snapshot(
        self,
        db: AsyncSession,
        user_id: str,
        snapshot_date: date,
        accounts: Sequence[Account],
        source: SnapshotSource,
    ) -> SnapshotResult:
        """
        Compute and upsert the (user_id, snapshot_date) snapshot.

        An empty account list is a no-op: a zero-wealth row would misreport
        "no data" as "no money".

        Raises:
            PersistFailure: the upsert did not commit (not retried here)
            UnsupportedCurrency: an account's currency has no fixed rate
        """
        computed = self.compute_snapshot(user_id, snapshot_date, accounts, source)
        if computed is None:
            logger.info(
                "snapshot_skipped_no_accounts",
                user_id=user_id,
                snapshot_date=snapshot_date.isoformat(),
                source=source.value,
            )
            track_snapshot(source.value, SnapshotOutcome.NO_ACCOUNTS.value)
            return SnapshotResult(
                outcome=SnapshotOutcome.NO_ACCOUNTS,
                user_id=user_id,
                snapshot_date=snapshot_date,
            )

        await self.write_batch(db, [computed])

        logger.info(
            "snapshot_written",
            user_id=user_id,
            snapshot_date=snapshot_date.isoformat(),
            account_count=computed.account_count,
            source=source.value,
        )
        return SnapshotResult(
            outcome=SnapshotOutcome.WRITTEN,
            user_id=user_id,
            snapshot_date=snapshot_date,
            total_net_worth=computed.total_net_worth,
            account_count=computed.account_count,
        )

    async def write_batch(self, db: AsyncSession, snapshots: Sequence[ComputedSnapshot]) -> None:
        """
        Upsert every snapshot in one transaction and commit once.

        Either all rows land or, after rollback, none do.

        Raises:
            PersistFailure: any statement or the commit failed
        """
        if not snapshots:
            return

        insert = _insert_for(db)
        try:
            for computed in snapshots:
                stmt = insert(NetWorthSnapshot).values(
                    id=uuid4(),
                    user_id=computed.user_id,
                    snapshot_date=computed.snapshot_date,
                    total_net_worth=computed.total_net_worth,
                    reporting_currency=computed.reporting_currency,
                    account_count=computed.account_count,
                    account_breakdown=computed.account_breakdown,
                    source=computed.source.value,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["user_id", "snapshot_date"],
                    set_={
                        "total_net_worth": stmt.excluded.total_net_worth,
                        "reporting_currency": stmt.excluded.reporting_currency,
                        "account_count": stmt.excluded.account_count,
                        "account_breakdown": stmt.excluded.account_breakdown,
                        "source": stmt.excluded.source,
                        "updated_at": func.now(),
                    },
                )
                await db.execute(stmt)
            await db.commit()
        except (SQLAlchemyError, OSError) as exc:
            await db.rollback()
            for computed in snapshots:
                track_snapshot(computed.source.value, "persist_failure")
            logger.error(
                "snapshot_persist_failed",
                snapshot_count=len(snapshots),
                user_ids=[s.user_id for s in snapshots][:20],
                error=str(exc),
            )
            raise PersistFailure(
                f"Failed to persist {len(snapshots)} snapshot(s)",
                user_id=snapshots[0].user_id if len(snapshots) == 1 else None,
            ) from exc

        for computed in snapshots:
            track_snapshot(computed.source.value, SnapshotOutcome.WRITTEN.value)

    async def get_snapshots(
        self,
        db: AsyncSession,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> List[NetWorthSnapshot]:
        """
        Get historical snapshots for a user.

        Args:
            db: Database session
            user_id: Owning user id
            start_date: Start date (inclusive)
            end_date: End date (inclusive)
            limit: Maximum number of snapshots to return

        Returns:
            List of NetWorthSnapshot objects ordered by date ascending
        """
        query = select(NetWorthSnapshot).where(NetWorthSnapshot.user_id == user_id)

        if start_date:
            query = query.where(NetWorthSnapshot.snapshot_date >= start_date)

        if end_date:
            query = query.where(NetWorthSnapshot.snapshot_date <= end_date)

        query = query.order_by(NetWorthSnapshot.snapshot_date.asc()).execution_options(
            populate_existing=True
        )

        if limit:
            query = query.limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_latest_snapshot(
        self, db: AsyncSession, user_id: str
    ) -> Optional[NetWorthSnapshot]:
        """Get the most recent snapshot for a user, or None."""
        query = (
            select(NetWorthSnapshot)
            .where(NetWorthSnapshot.user_id == user_id)
            .order_by(NetWorthSnapshot.snapshot_date.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )

        result = await db.execute(query)
        return result.scalar_one_or_none()


# Singleton instance
snapshot_service = SnapshotService()
