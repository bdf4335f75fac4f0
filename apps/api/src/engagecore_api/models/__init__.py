"""SQLAlchemy models; importing this package registers every table on Base.metadata."""

from .brand import Brand, BrandStatus
from .loyalty import Member, MembershipTier, TierHistory, TierStatus
from .sync_run import SyncRun
from .transaction import Transaction, TransactionSource, TransactionType

__all__ = [
    "Brand",
    "BrandStatus",
    "Member",
    "MembershipTier",
    "SyncRun",
    "TierHistory",
    "TierStatus",
    "Transaction",
    "TransactionSource",
    "TransactionType",
]
