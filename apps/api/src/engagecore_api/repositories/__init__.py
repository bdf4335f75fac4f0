"""Per-entity data access used by the sync and ledger services."""

from .base import DataAccess
from .brands import BrandRepository
from .members import MemberRepository
from .sync_runs import SyncRunRepository
from .tiers import TierHistoryRepository, TierRepository
from .transactions import TransactionRepository

__all__ = [
    "BrandRepository",
    "DataAccess",
    "MemberRepository",
    "SyncRunRepository",
    "TierHistoryRepository",
    "TierRepository",
    "TransactionRepository",
]
