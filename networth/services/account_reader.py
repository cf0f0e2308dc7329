"""Read-only access to users' accounts for aggregation."""

from typing import List, Set

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from networth.core.exceptions import StoreUnavailable
from networth.core.logging_config import get_logger
from networth.models.account import Account

logger = get_logger(__name__)


def _is_connectivity_error(exc: Exception) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError, OSError, ConnectionError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class AccountReader:
    """
    Loads accounts from the store.

    Connectivity failures surface as ``StoreUnavailable`` so callers can
    treat them as retryable. Nothing here writes.
    """

    async def list_active_accounts(self, db: AsyncSession, user_id: str) -> List[Account]:
        """
        Return every non-deleted account of ``user_id``.

        Args:
            db: Database session
            user_id: Owning user id

        Returns:
            Accounts ordered by name, then id (may be empty)

        Raises:
            StoreUnavailable: the store could not be reached
        """
        query = (
            select(Account)
            .where(Account.user_id == user_id, Account.is_deleted.is_(False))
            .order_by(Account.name, Account.id)
        )
        try:
            result = await db.execute(query)
        except Exception as exc:
            if _is_connectivity_error(exc):
                logger.warning("account_read_failed", user_id=user_id, error=str(exc))
                raise StoreUnavailable(
                    f"Could not read accounts for user {user_id}", user_id=user_id
                ) from exc
            raise
        return list(result.scalars().all())

    async def list_user_ids_with_any_account(self, db: AsyncSession) -> Set[str]:
        """
        Return the ids of all users that own at least one account row.

        Users whose accounts are all soft-deleted are included; the sweep
        reports them as having no accounts.
        """
        try:
            result = await db.execute(select(Account.user_id).distinct())
        except Exception as exc:
            if _is_connectivity_error(exc):
                logger.warning("user_enumeration_failed", error=str(exc))
                raise StoreUnavailable("Could not enumerate users with accounts") from exc
            raise
        return set(result.scalars().all())


# Singleton instance
account_reader = AccountReader()
