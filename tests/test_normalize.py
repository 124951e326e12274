"""Tests for provider transaction normalization."""

from decimal import Decimal

import pytest

from renovision_bank.services.normalize import (
    DESCRIPTION_CHAIN,
    first_non_empty,
    normalize_transaction,
)
from renovision_bank.state_store import MalformedRecordError


class TestNormalizeTransaction:
    """Tests for normalize_transaction()."""

    def test_debit(self):
        tx = normalize_transaction(
            {
                "id": 981,
                "value": -120.5,
                "wording": "LEROY MERLIN",
                "date": "2025-03-01",
                "categories": [{"code": "diy"}, {"code": "home"}],
            }
        )

        assert tx.external_transaction_id == "981"
        assert tx.amount == Decimal("120.5")
        assert tx.direction == "DEBIT"
        assert tx.description == "LEROY MERLIN"
        assert tx.occurred_at == "2025-03-01"
        assert tx.category == "diy"

    def test_credit_keeps_raw_record(self):
        raw = {"id": "t2", "value": "35.10", "wording": "VIR", "date": "2025-03-02"}

        tx = normalize_transaction(raw)

        assert tx.amount == Decimal("35.10")
        assert tx.direction == "CREDIT"
        assert tx.metadata == raw

    def test_missing_value_is_zero(self):
        tx = normalize_transaction({"id": "t3", "date": "2025-03-02"})

        assert tx.amount == Decimal("0")
        assert tx.direction == "CREDIT"

    def test_float_value_not_widened(self):
        """Floats go through str() so 0.1 stays 0.1."""
        tx = normalize_transaction({"id": "t4", "value": -0.1, "date": "2025-03-02"})

        assert tx.amount == Decimal("0.1")

    @pytest.mark.parametrize(
        "fields,expected",
        [
            ({"wording": "A", "original_wording": "B", "simplified_wording": "C"}, "A"),
            ({"wording": "  ", "original_wording": "B", "simplified_wording": "C"}, "B"),
            ({"wording": None, "simplified_wording": "C"}, "C"),
            ({}, "Transaction"),
        ],
    )
    def test_description_fallback(self, fields, expected):
        raw = {"id": "t1", "value": -1, "date": "2025-03-01", **fields}

        assert normalize_transaction(raw).description == expected

    def test_date_fallback(self):
        tx = normalize_transaction({"id": "t1", "rdate": "2025-02-27", "application_date": "2025-02-26"})

        assert tx.occurred_at == "2025-02-27"

    def test_timestamp_date(self):
        tx = normalize_transaction({"id": "t1", "date": "2025-02-27T10:00:00Z"})

        assert tx.occurred_at == "2025-02-27"

    def test_no_category(self):
        assert normalize_transaction({"id": "t1", "date": "2025-03-01"}).category is None
        assert normalize_transaction({"id": "t1", "date": "2025-03-01", "categories": []}).category is None

    @pytest.mark.parametrize("raw_id", [None, "", "  "])
    def test_missing_id_rejected(self, raw_id):
        with pytest.raises(MalformedRecordError):
            normalize_transaction({"id": raw_id, "value": -1, "date": "2025-03-01"})

    def test_missing_date_rejected(self):
        with pytest.raises(MalformedRecordError):
            normalize_transaction({"id": "t1", "value": -1})

    def test_bad_date_rejected(self):
        with pytest.raises(MalformedRecordError):
            normalize_transaction({"id": "t1", "date": "yesterday"})

    def test_non_numeric_value_rejected(self):
        with pytest.raises(MalformedRecordError):
            normalize_transaction({"id": "t1", "value": "abc", "date": "2025-03-01"})

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-inf", "sNaN"])
    def test_non_finite_value_rejected(self, value):
        with pytest.raises(MalformedRecordError):
            normalize_transaction({"id": "t1", "value": value, "date": "2025-03-01"})

    @pytest.mark.parametrize("raw", [None, "t1", 42, ["t1"]])
    def test_non_object_rejected(self, raw):
        with pytest.raises(MalformedRecordError):
            normalize_transaction(raw)


def test_first_non_empty_stops_at_first_hit():
    calls = []

    def tracking(name, value):
        def extract(raw):
            calls.append(name)
            return value

        return extract

    chain = [tracking("a", ""), tracking("b", "hit"), tracking("c", "late")]

    assert first_non_empty({}, chain) == "hit"
    assert calls == ["a", "b"]


def test_description_chain_ends_with_constant():
    assert first_non_empty({}, DESCRIPTION_CHAIN) == "Transaction"
