"""Tests for transaction review operations."""

from decimal import Decimal

import pytest

from renovision_bank.services import (
    InvalidStatusTransition,
    TransactionNotFoundError,
    TransactionReviewService,
)
from renovision_bank.state_store import TransactionStatus


@pytest.fixture
def service(store) -> TransactionReviewService:
    return TransactionReviewService(store)


@pytest.fixture
def transactions(store, connection):
    """Three NEW transactions, newest last."""
    rows = []
    for i, (description, day) in enumerate(
        [("CB IKEA", "2025-01-10"), ("LEROY MERLIN", "2025-02-10"), ("RESTAURANT", "2025-03-10")]
    ):
        rows.append(
            store.upsert_transaction(
                connection_id=connection.id,
                external_transaction_id=f"t{i + 1}",
                amount=Decimal("10.00") * (i + 1),
                description=description,
                occurred_at=day,
            ).record
        )
    return rows


class TestListTransactions:
    """Tests for list_transactions()."""

    def test_page_with_suggestions(self, service, transactions):
        page = service.list_transactions("project-1", limit=2)

        assert page["total"] == 3
        assert page["limit"] == 2
        assert page["offset"] == 0
        assert page["has_more"] is True
        assert [item["description"] for item in page["items"]] == ["RESTAURANT", "LEROY MERLIN"]
        assert page["items"][0]["suggestion"] == {"category": "OTHER", "confidence": 0.0}
        assert page["items"][1]["suggestion"]["category"] == "Matériaux"

    def test_suggestion_not_persisted(self, service, store, transactions):
        service.list_transactions("project-1")

        assert store.get_transaction(transactions[1].id).category is None

    def test_last_page(self, service, transactions):
        page = service.list_transactions("project-1", limit=2, offset=2)

        assert len(page["items"]) == 1
        assert page["has_more"] is False

    def test_status_filter_accepts_string(self, service, transactions):
        service.ignore(transactions[0].id)

        page = service.list_transactions("project-1", status="IGNORED")

        assert page["total"] == 1
        assert page["items"][0]["status"] == "IGNORED"

    def test_unknown_status(self, service):
        with pytest.raises(ValueError):
            service.list_transactions("project-1", status="PENDING")

    def test_invalid_paging(self, service):
        with pytest.raises(ValueError):
            service.list_transactions("project-1", limit=0)
        with pytest.raises(ValueError):
            service.list_transactions("project-1", offset=-1)


class TestStatusChanges:
    """Tests for convert_to_expense() and ignore()."""

    def test_convert(self, service, transactions):
        record = service.convert_to_expense(transactions[1].id, "expense-7")

        assert record.status == TransactionStatus.CONVERTED
        assert record.linked_expense_id == "expense-7"
        assert record.is_renovation_expense is True

    def test_ignore(self, service, transactions):
        record = service.ignore(transactions[2].id)

        assert record.status == TransactionStatus.IGNORED
        assert record.linked_expense_id is None

    def test_terminal_states_do_not_move(self, service, transactions):
        service.convert_to_expense(transactions[0].id, "expense-1")

        with pytest.raises(InvalidStatusTransition) as exc_info:
            service.ignore(transactions[0].id)

        assert exc_info.value.current == TransactionStatus.CONVERTED
        with pytest.raises(InvalidStatusTransition):
            service.convert_to_expense(transactions[0].id, "expense-2")

    def test_unknown_transaction(self, service):
        with pytest.raises(TransactionNotFoundError):
            service.ignore("missing")
        with pytest.raises(TransactionNotFoundError):
            service.convert_to_expense("missing", "expense-1")


class TestStats:
    """Tests for stats()."""

    def test_all_statuses_present(self, service, transactions):
        service.convert_to_expense(transactions[2].id, "expense-1")

        stats = service.stats("project-1")

        assert stats == {
            "NEW": {"count": 2, "total": "30.00"},
            "CONVERTED": {"count": 1, "total": "30.00"},
            "IGNORED": {"count": 0, "total": "0"},
        }


def test_suggest_materials_for_transaction(service, transactions):
    suggestions = service.suggest_materials(
        transactions[1].id, [{"name": "carrelage", "supplier": "Leroy Merlin"}]
    )

    assert suggestions[0].reason == "Fournisseur identique"
