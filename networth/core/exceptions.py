"""Error kinds raised by the snapshot aggregation pipeline.

"No accounts" is deliberately absent: it is a normal outcome
(``SnapshotOutcome.NO_ACCOUNTS``), not a failure.
"""

from typing import Optional


class SnapshotError(Exception):
    """Base class for aggregation errors."""

    kind: str = "snapshot_error"
    retryable: bool = False

    def __init__(self, message: str, user_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.user_id = user_id


class StoreUnavailable(SnapshotError):
    """The account/snapshot store could not be reached."""

    kind = "store_unavailable"
    retryable = True


class PersistFailure(SnapshotError):
    """A snapshot write did not commit; nothing changed for that key."""

    kind = "persist_failure"
    retryable = True


class Unauthenticated(SnapshotError):
    """On-demand call without a valid caller identity."""

    kind = "unauthenticated"


class UnsupportedCurrency(SnapshotError, ValueError):
    """Account currency is neither the reporting currency nor in the rate table."""

    kind = "unsupported_currency"

    def __init__(self, currency: str, user_id: Optional[str] = None):
        super().__init__(f"No fixed exchange rate for currency {currency!r}", user_id=user_id)
        self.currency = currency
