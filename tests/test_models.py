from datetime import datetime

import pytest

from smartspend.backend.models import (
    CATEGORIES, CATEGORY_BUCKET_MAP, ParsedExpense, Transaction, bucket_for,
)


def test_every_category_has_a_bucket():
    assert set(CATEGORY_BUCKET_MAP) == set(CATEGORIES)
    assert bucket_for("Bills") == "Monthly"
    assert bucket_for("Savings") == "Savings"
    assert bucket_for("Other") == "Weekly"
    assert bucket_for("Personal") is None


def test_transaction_from_parsed_builds_id_and_timestamp():
    now = datetime(2024, 6, 19, 12, 0)
    parsed = ParsedExpense(amount=120, category="Outings", description="Coffee", date=now)
    tx = Transaction.from_parsed(parsed, now)

    ms = int(now.timestamp() * 1000)
    assert tx.timestamp == ms
    assert tx.id.startswith(f"{ms}-")
    assert tx.date == "2024-06-19T12:00:00"
    assert tx.amount == 120.0


def test_transaction_rejects_unknown_category():
    with pytest.raises(ValueError):
        Transaction("1", 10.0, "Crypto", "x", "2024-06-19T12:00:00", 1)


def test_transaction_rejects_negative_amount():
    with pytest.raises(ValueError):
        Transaction("1", -5.0, "Groceries", "x", "2024-06-19T12:00:00", 1)


def test_blank_description_gets_default():
    tx = Transaction("1", 10.0, "Groceries", "  ", "2024-06-19T12:00:00", 1)
    assert tx.description == "Groceries expense"


def test_transaction_dict_round_trip():
    tx = Transaction("1", 10.0, "Groceries", "milk", "2024-06-19T12:00:00", 1)
    assert Transaction.from_dict(tx.to_dict()) == tx
