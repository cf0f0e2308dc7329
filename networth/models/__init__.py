"""SQLAlchemy models package."""

from networth.models.account import Account
from networth.models.net_worth_snapshot import NetWorthSnapshot, SnapshotSource

__all__ = [
    "Account",
    "NetWorthSnapshot",
    "SnapshotSource",
]
