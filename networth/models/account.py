"""Account model (owned by the account-management subsystem, read-only here)."""

from sqlalchemy import Boolean, Column, DateTime, Index, Numeric, String

from networth.core.database import Base
from networth.utils.datetime_utils import utc_now


class Account(Base):
    """One financial holding owned by a user."""

    __tablename__ = "accounts"

    id = Column(String(128), primary_key=True)
    user_id = Column(String(128), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    balance = Column(Numeric(18, 2), nullable=False, default=0)

    # Soft delete: deleted accounts never contribute to an aggregate
    is_deleted = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index("ix_accounts_user_id_is_deleted", "user_id", "is_deleted"),
    )

    def __repr__(self):
        return f"<Account {self.id} user={self.user_id} {self.currency}>"
