"""Member, ledger and tier services."""

from .ledger import LedgerError, LedgerResult, MemberNotFoundError, PointsLedger
from .members import AUTO_CREATED_SOURCE, MemberResolver
from .tiers import TierChange, TierEngine, TierNotFoundError, select_tier

__all__ = [
    "AUTO_CREATED_SOURCE",
    "LedgerError",
    "LedgerResult",
    "MemberNotFoundError",
    "MemberResolver",
    "PointsLedger",
    "TierChange",
    "TierEngine",
    "TierNotFoundError",
    "select_tier",
]
