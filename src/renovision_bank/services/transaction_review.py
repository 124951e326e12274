"""Review operations on synchronized bank transactions."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from renovision_bank.categorization import Categorizer, MaterialSuggestion, suggest_materials
from renovision_bank.state_store import TransactionRecord, TransactionStatus

if TYPE_CHECKING:
    from renovision_bank.state_store import StateStore

logger = logging.getLogger(__name__)


class TransactionNotFoundError(LookupError):
    """No transaction with this id."""

    pass


class InvalidStatusTransition(Exception):
    """A CONVERTED or IGNORED transaction was asked to move again."""

    def __init__(self, transaction_id: str, current: TransactionStatus, requested: TransactionStatus):
        self.transaction_id = transaction_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Transaction {transaction_id} is {current.value}, cannot move to {requested.value}"
        )


def _to_item(record: TransactionRecord, categorizer: Categorizer) -> dict[str, Any]:
    return {
        "id": record.id,
        "connection_id": record.connection_id,
        "external_transaction_id": record.external_transaction_id,
        "amount": str(record.amount),
        "direction": record.direction,
        "description": record.description,
        "occurred_at": record.occurred_at,
        "category": record.category,
        "status": record.status.value,
        "linked_expense_id": record.linked_expense_id,
        "is_renovation_expense": record.is_renovation_expense,
        "suggestion": categorizer.categorize(record.description).to_dict(),
    }


class TransactionReviewService:
    """Lists transactions with category suggestions and applies user decisions.

    Status changes are conditional writes on status NEW, so a CONVERTED or
    IGNORED transaction never moves again.
    """

    def __init__(self, state_store: StateStore, categorizer: Categorizer | None = None) -> None:
        self.store = state_store
        self.categorizer = categorizer or Categorizer()

    def list_transactions(
        self,
        project_id: str,
        status: TransactionStatus | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        """Page through a project's transactions, newest first.

        Each item carries a categorization suggestion that is not persisted.
        """
        if limit < 1:
            raise ValueError("limit must be positive")
        if offset < 0:
            raise ValueError("offset must not be negative")

        records, total = self.store.list_project_transactions(
            project_id,
            status=TransactionStatus(status) if status is not None else None,
            limit=limit,
            offset=offset,
        )
        return {
            "items": [_to_item(record, self.categorizer) for record in records],
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(records) < total,
        }

    def convert_to_expense(self, transaction_id: str, expense_id: str) -> TransactionRecord:
        """Mark a NEW transaction as CONVERTED into the given expense."""
        if not self.store.mark_transaction_converted(transaction_id, expense_id):
            self._raise_rejected(transaction_id, TransactionStatus.CONVERTED)
        logger.info("Transaction %s converted to expense %s", transaction_id, expense_id)
        return self._get(transaction_id)

    def ignore(self, transaction_id: str) -> TransactionRecord:
        """Mark a NEW transaction as IGNORED."""
        if not self.store.mark_transaction_ignored(transaction_id):
            self._raise_rejected(transaction_id, TransactionStatus.IGNORED)
        logger.info("Transaction %s ignored", transaction_id)
        return self._get(transaction_id)

    def stats(self, project_id: str) -> dict[str, dict[str, Any]]:
        """Per-status count and amount total, every status present."""
        raw = self.store.transaction_stats(project_id)
        return {
            status.value: {
                "count": raw.get(status.value, {}).get("count", 0),
                "total": str(raw.get(status.value, {}).get("total", 0)),
            }
            for status in TransactionStatus
        }

    def suggest_materials(
        self, transaction_id: str, materials: Iterable[Any]
    ) -> list[MaterialSuggestion]:
        """Rank project materials this transaction probably paid for."""
        return suggest_materials(self._get(transaction_id).description, materials)

    def _get(self, transaction_id: str) -> TransactionRecord:
        record = self.store.get_transaction(transaction_id)
        if record is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return record

    def _raise_rejected(self, transaction_id: str, requested: TransactionStatus) -> None:
        record = self._get(transaction_id)
        raise InvalidStatusTransition(transaction_id, record.status, requested)
