"""Net-worth snapshot schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class BreakdownEntry(BaseModel):
    """One account's contribution to a snapshot."""

    balance: Decimal
    currency: str
    name: str
    converted_balance: Decimal


class SnapshotResponse(BaseModel):
    """Response for a stored net-worth snapshot."""

    id: UUID
    user_id: str
    snapshot_date: date
    total_net_worth: Decimal
    reporting_currency: str
    account_count: int
    account_breakdown: Dict[str, BreakdownEntry]
    source: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ManualSnapshotResult(BaseModel):
    """Result of an on-demand snapshot request.

    "No accounts" is reported as ``success=False`` rather than as an error.
    """

    success: bool
    message: str
    net_worth: Optional[Decimal] = None
    account_count: Optional[int] = None
    snapshot_date: Optional[date] = None


class AccountState(BaseModel):
    """One side (before or after) of an account change notification."""

    balance: Decimal
    currency: Optional[str] = None
    name: Optional[str] = None
    is_deleted: Optional[bool] = None

    model_config = {"extra": "ignore"}


class AccountChangeEvent(BaseModel):
    """Change notification for a single account document."""

    user_id: str = Field(..., min_length=1, max_length=128)
    account_id: str = Field(..., min_length=1, max_length=128)
    before: AccountState
    after: AccountState


class AccountChangeResult(BaseModel):
    """Response to an account change notification."""

    written: bool
    total_net_worth: Optional[Decimal] = None
    account_count: Optional[int] = None
    snapshot_date: Optional[date] = None
