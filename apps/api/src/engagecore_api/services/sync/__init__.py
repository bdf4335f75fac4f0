"""External transaction feed synchronization services."""

from .feed_client import ExternalFeedClient, FeedFetchResult, TransientProviderError
from .reconciler import ReconcileResult, ReconciliationConflict, ReconciliationError, TransactionReconciler
from .transformer import CanonicalTransaction, TransformError, transform_transaction
from .windows import SyncWindow, WindowAdvanceError, WindowAdvancer, is_window_due, next_window

__all__ = [
    "CanonicalTransaction",
    "ExternalFeedClient",
    "FeedFetchResult",
    "ReconcileResult",
    "ReconciliationConflict",
    "ReconciliationError",
    "SyncWindow",
    "TransactionReconciler",
    "TransformError",
    "TransientProviderError",
    "WindowAdvanceError",
    "WindowAdvancer",
    "is_window_due",
    "next_window",
    "transform_transaction",
]
