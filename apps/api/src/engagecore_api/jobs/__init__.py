"""Recurring job entrypoints."""

__all__ = [
    "transaction_sync",
]
