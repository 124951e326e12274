"""Normalization of raw provider transactions.

Each field is resolved by an ordered chain of small pure extractors: the first
one that yields a non-empty value wins. Records without an external id or a
date are malformed and rejected; nothing is invented for them.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from renovision_bank.state_store import MalformedRecordError

Extractor = Callable[[dict], Any]

DEFAULT_DESCRIPTION = "Transaction"


def _field(name: str) -> Extractor:
    """Extractor returning a stripped string field, or None when blank."""

    def extract(raw: dict) -> str | None:
        value = raw.get(name)
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    extract.__name__ = f"field_{name}"
    return extract


def _constant(value: Any) -> Extractor:
    return lambda raw: value


def _first_category_code(raw: dict) -> str | None:
    categories = raw.get("categories") or []
    if not isinstance(categories, list) or not categories:
        return None
    first = categories[0]
    code = first.get("code") if isinstance(first, dict) else first
    return str(code) if code else None


DESCRIPTION_CHAIN: tuple[Extractor, ...] = (
    _field("wording"),
    _field("original_wording"),
    _field("simplified_wording"),
    _constant(DEFAULT_DESCRIPTION),
)

DATE_CHAIN: tuple[Extractor, ...] = (
    _field("date"),
    _field("rdate"),
    _field("application_date"),
)

CATEGORY_CHAIN: tuple[Extractor, ...] = (_first_category_code,)


def first_non_empty(raw: dict, chain: Sequence[Extractor]) -> Any:
    """Evaluate extractors in order and return the first non-empty result."""
    for extractor in chain:
        value = extractor(raw)
        if value not in (None, ""):
            return value
    return None


def _parse_date(value: str) -> str:
    """Normalize a provider date ('2025-03-01' or full timestamp) to an ISO date."""
    try:
        return date.fromisoformat(value[:10]).isoformat()
    except ValueError:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()


@dataclass
class NormalizedTransaction:
    """A provider transaction reduced to the fields the store reconciles."""

    external_transaction_id: str
    amount: Decimal
    direction: str
    description: str
    occurred_at: str
    category: str | None
    metadata: dict


def normalize_transaction(raw: dict) -> NormalizedTransaction:
    """
    Normalize one raw provider transaction.

    Raises:
        MalformedRecordError: If the record has no id, no parseable date or a
            non-numeric or non-finite value
    """
    if not isinstance(raw, dict):
        raise MalformedRecordError(f"Provider transaction is not an object: {raw!r}")

    raw_id = raw.get("id")
    if raw_id is None or not str(raw_id).strip():
        raise MalformedRecordError("Provider transaction has no id")
    external_id = str(raw_id).strip()

    try:
        value = Decimal(str(raw.get("value") if raw.get("value") is not None else 0))
    except InvalidOperation as e:
        raise MalformedRecordError(
            f"Transaction {external_id} has a non-numeric value: {raw.get('value')!r}"
        ) from e
    if not value.is_finite():
        raise MalformedRecordError(
            f"Transaction {external_id} has a non-finite value: {raw.get('value')!r}"
        )

    raw_date = first_non_empty(raw, DATE_CHAIN)
    if raw_date is None:
        raise MalformedRecordError(f"Transaction {external_id} has no date")
    try:
        occurred_at = _parse_date(raw_date)
    except ValueError as e:
        raise MalformedRecordError(
            f"Transaction {external_id} has an unparseable date: {raw_date!r}"
        ) from e

    return NormalizedTransaction(
        external_transaction_id=external_id,
        amount=abs(value),
        direction="DEBIT" if value < 0 else "CREDIT",
        description=first_non_empty(raw, DESCRIPTION_CHAIN),
        occurred_at=occurred_at,
        category=first_non_empty(raw, CATEGORY_CHAIN),
        metadata=raw,
    )
