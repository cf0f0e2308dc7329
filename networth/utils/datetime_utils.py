"""DateTime utilities for timezone-aware timestamp handling."""

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from networth.config import settings


def utc_now() -> datetime:
    """
    Get current UTC datetime without timezone info (offset-naive).

    Offset-naive values match the TIMESTAMP WITHOUT TIME ZONE columns.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def reporting_today(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> date:
    """
    Return the calendar date in the reporting timezone.

    Snapshots are keyed by this date, not by the server's or the account's
    local day. Naive ``now`` values are treated as UTC.

    Example:
        >>> reporting_today(datetime(2025, 3, 31, 20, 0), "Asia/Kolkata")
        datetime.date(2025, 4, 1)
    """
    zone = ZoneInfo(tz_name or settings.SNAPSHOT_TIMEZONE)
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(zone).date()
