"""Daily net-worth snapshot model."""

import enum
from uuid import uuid4

from sqlalchemy import JSON, Column, Date, DateTime, Integer, Numeric, String, UniqueConstraint, func

from networth.core.database import Base
from networth.core.db_types import UUID


class SnapshotSource(str, enum.Enum):
    """Which trigger produced (or last updated) a snapshot."""

    DAILY_SWEEP = "daily-sweep"
    BALANCE_CHANGE = "balance-change"
    MANUAL = "manual"


class NetWorthSnapshot(Base):
    """
    One user's aggregated net worth on one calendar date.

    At most one row per (user_id, snapshot_date); later writes for the same
    key update the row in place. ``account_breakdown`` maps account id to
    ``{balance, currency, name, converted_balance}`` and is replaced on every
    write.
    """

    __tablename__ = "net_worth_snapshots"

    id = Column(UUID(), primary_key=True, default=uuid4)
    user_id = Column(String(128), nullable=False, index=True)
    snapshot_date = Column(Date, nullable=False)

    total_net_worth = Column(Numeric(18, 2), nullable=False)
    reporting_currency = Column(String(3), nullable=False)
    account_count = Column(Integer, nullable=False, default=0)
    account_breakdown = Column(JSON, nullable=False, default=dict)

    source = Column(String(32), nullable=False)

    # Server-assigned; created_at is never touched by a merge
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "snapshot_date", name="uq_user_snapshot_date"),
    )

    def __repr__(self):
        return (
            f"<NetWorthSnapshot {self.user_id} {self.snapshot_date} "
            f"{self.total_net_worth} {self.reporting_currency}>"
        )
