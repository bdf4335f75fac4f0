"""Scheduling utilities for recurring jobs."""

from .runner import TransactionSyncScheduler

__all__ = ["TransactionSyncScheduler"]
