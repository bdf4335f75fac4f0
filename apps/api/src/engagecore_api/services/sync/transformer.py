"""Map provider transaction records onto the canonical transaction shape."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping

_CENT = Decimal("0.01")
# Upper bound of a Numeric(14, 2) column.
MAX_AMOUNT = Decimal("999999999999.99")


class TransformError(ValueError):
    """Raised when a provider record is missing or carries unparsable fields."""

    def __init__(self, message: str, *, reference_id: str | None = None) -> None:
        super().__init__(message)
        self.reference_id = reference_id


@dataclass(frozen=True)
class CanonicalTransaction:
    reference_id: str
    external_user_id: str
    amount: Decimal
    type: str
    status: str | None
    description: str | None
    merchant_id: str | None = None
    admin_id: str | None = None
    details: Any = None
    created_date_time: str | None = None
    processed_date_time: str | None = None
    end_date_time: str | None = None
    bank_id: str | None = None
    bank_data: Any = None
    user_data: Any = None
    raw_data: dict[str, Any] = field(default_factory=dict)


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _parse_amount(value: Any, reference_id: str) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise TransformError(f"Transaction {reference_id} has no cash amount", reference_id=reference_id)
    if isinstance(value, bool):
        raise TransformError(f"Transaction {reference_id} has a non-numeric cash amount", reference_id=reference_id)
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise TransformError(
            f"Transaction {reference_id} has a non-numeric cash amount: {value!r}",
            reference_id=reference_id,
        ) from exc
    if not amount.is_finite():
        raise TransformError(f"Transaction {reference_id} has a non-finite cash amount", reference_id=reference_id)
    if abs(amount) > MAX_AMOUNT:
        raise TransformError(
            f"Transaction {reference_id} cash amount {value!r} exceeds the supported range",
            reference_id=reference_id,
        )
    try:
        return amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise TransformError(
            f"Transaction {reference_id} cash amount {value!r} cannot be rounded to cents",
            reference_id=reference_id,
        ) from exc


def _parse_details(value: Any, reference_id: str) -> Any:
    if not isinstance(value, str):
        return value
    if not value.strip():
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        raise TransformError(
            f"Transaction {reference_id} has malformed details JSON: {exc.msg}",
            reference_id=reference_id,
        ) from exc


def _external_user_id(user: Any, reference_id: str) -> str:
    candidate: Any = None
    if isinstance(user, Mapping):
        candidate = user.get("id", user.get("userId"))
    elif isinstance(user, (str, int)) and not isinstance(user, bool):
        candidate = user
    resolved = _optional_str(candidate)
    if resolved is None:
        raise TransformError(f"Transaction {reference_id} carries no user identity", reference_id=reference_id)
    return resolved


def _describe(details: Any, tx_type: str, reference_id: str) -> str:
    if isinstance(details, Mapping):
        for key in ("remark", "description", "note"):
            text = _optional_str(details.get(key))
            if text:
                return text
    return f"External {tx_type} {reference_id}"


def transform_transaction(record: Mapping[str, Any]) -> CanonicalTransaction:
    """Return the canonical form of a provider record or raise ``TransformError``."""

    if not isinstance(record, Mapping):
        raise TransformError(f"Expected a transaction object, got {type(record).__name__}")

    reference_id = _optional_str(record.get("id"))
    if reference_id is None:
        raise TransformError("Transaction record has no id")

    amount = _parse_amount(record.get("cash"), reference_id)
    details = _parse_details(record.get("details"), reference_id)
    user = record.get("user")
    tx_type = _optional_str(record.get("type")) or "unknown"

    return CanonicalTransaction(
        reference_id=reference_id,
        external_user_id=_external_user_id(user, reference_id),
        amount=amount,
        type=tx_type,
        status=_optional_str(record.get("status")),
        description=_describe(details, tx_type, reference_id),
        merchant_id=_optional_str(record.get("merchantId")),
        admin_id=_optional_str(record.get("adminId")),
        details=details,
        created_date_time=_optional_str(record.get("createdDateTime")),
        processed_date_time=_optional_str(record.get("processedDateTime")),
        end_date_time=_optional_str(record.get("endDateTime")),
        bank_id=_optional_str(record.get("bankId")),
        bank_data=record.get("bank"),
        user_data=user,
        raw_data=dict(record),
    )


__all__ = ["CanonicalTransaction", "TransformError", "transform_transaction"]
