"""Exceptions shared by the member, ledger and tier services."""


class LedgerError(RuntimeError):
    """Raised when a points movement cannot be applied."""


class MemberNotFoundError(LedgerError, LookupError):
    """Raised when a loyalty operation targets an unknown member."""


__all__ = ["LedgerError", "MemberNotFoundError"]
