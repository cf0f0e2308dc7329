"""Net-worth snapshot API endpoints."""

import hashlib
import hmac
import logging
from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from networth.config import settings
from networth.core.database import get_db
from networth.dependencies import get_current_identity
from networth.schemas.snapshot import (
    AccountChangeEvent,
    AccountChangeResult,
    ManualSnapshotResult,
    SnapshotResponse,
)
from networth.services.identity.base import AuthenticatedIdentity
from networth.services.snapshot_orchestrator import snapshot_orchestrator
from networth.services.snapshot_service import snapshot_service
from networth.utils.datetime_utils import reporting_today

router = APIRouter()
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


def verify_change_signature(signature_header: Optional[str], body: bytes, secret: str) -> bool:
    """
    Verify an account change notification using HMAC-SHA256.

    The signature is HMAC-SHA256(secret, raw_body) as a hex digest. In DEBUG
    mode a missing secret or signature is logged and allowed.

    Raises:
        HTTPException: 500 when no secret is configured, 401 on a missing or
            wrong signature
    """
    if not secret:
        if settings.DEBUG:
            logger.warning("CHANGE_WEBHOOK_SECRET not set - signature check disabled in DEBUG mode")
            return True
        raise HTTPException(
            status_code=500,
            detail="Webhook verification secret not configured. Set CHANGE_WEBHOOK_SECRET.",
        )

    if not signature_header:
        if settings.DEBUG:
            logger.warning("Missing %s header - allowing in DEBUG mode", SIGNATURE_HEADER)
            return True
        raise HTTPException(status_code=401, detail=f"Missing {SIGNATURE_HEADER} header")

    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

    # Constant-time comparison
    if not hmac.compare_digest(expected, signature_header):
        if settings.DEBUG:
            logger.warning("Change notification signature mismatch - allowing in DEBUG mode")
            return True
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    return True


@router.post("/manual", response_model=ManualSnapshotResult)
async def create_manual_snapshot(
    identity: AuthenticatedIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """
    Create or refresh today's snapshot for the caller.

    Returns ``success=false`` with "No accounts found" when the caller has no
    active accounts; store failures are returned as 503.
    """
    return await snapshot_orchestrator.create_manual_snapshot(db, identity)


@router.post("/events/account-updated", response_model=AccountChangeResult)
async def handle_account_updated(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Receive a signed account change notification (before/after values).

    Only a balance change triggers a re-aggregation of the owner's snapshot.
    """
    body = await request.body()
    verify_change_signature(
        request.headers.get(SIGNATURE_HEADER), body, settings.CHANGE_WEBHOOK_SECRET
    )

    try:
        event = AccountChangeEvent.model_validate_json(body)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False, include_input=False),
        )

    result = await snapshot_orchestrator.handle_balance_change(db, event)
    if result is None or not result.written:
        return AccountChangeResult(written=False)

    return AccountChangeResult(
        written=True,
        total_net_worth=result.total_net_worth,
        account_count=result.account_count,
        snapshot_date=result.snapshot_date,
    )


@router.get("/latest", response_model=Optional[SnapshotResponse])
async def get_latest_snapshot(
    identity: AuthenticatedIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Get the caller's most recent snapshot (null if none exists)."""
    return await snapshot_service.get_latest_snapshot(db, identity.user_id)


@router.get("", response_model=List[SnapshotResponse])
async def list_snapshots(
    start_date: Optional[date] = Query(None, description="Start date (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="End date (YYYY-MM-DD)"),
    limit: Optional[int] = Query(None, ge=1, le=3660, description="Maximum number of snapshots"),
    identity: AuthenticatedIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the caller's historical snapshots, ordered by date ascending for charting.

    Query parameters:
    - start_date: Start date (defaults to SNAPSHOT_HISTORY_DEFAULT_DAYS ago)
    - end_date: End date (defaults to no upper bound)
    - limit: Maximum number of snapshots to return
    """
    if start_date is None:
        start_date = reporting_today() - timedelta(days=settings.SNAPSHOT_HISTORY_DEFAULT_DAYS)

    if end_date is not None and end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")

    return await snapshot_service.get_snapshots(
        db=db,
        user_id=identity.user_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
