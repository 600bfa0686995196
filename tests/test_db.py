import sqlite3
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from tightbudget import database
from tightbudget.core.models import RecurringTransaction, Transaction
from tightbudget.timeutil import to_millis


def ts(*args):
    return to_millis(datetime(*args, tzinfo=timezone.utc))


def template(template_id, user_id=1, next_ts=None, **kwargs):
    return RecurringTransaction(
        id=template_id,
        user_id=user_id,
        merchant=kwargs.pop("merchant", "Netflix"),
        category="Entertainment",
        amount=Decimal("15.99"),
        start_date_timestamp=ts(2025, 1, 1),
        next_occurrence_timestamp=next_ts or ts(2025, 2, 1),
        created_at=ts(2025, 1, 1),
        **kwargs,
    )


def test_save_and_get_round_trip(tmp_path):
    db = str(tmp_path / "nested" / "tb.db")
    original = template("a", description="Family plan", receipt_path="r.png",
                        last_processed_timestamp=ts(2025, 1, 1, 0, 0, 0, 5000))
    database.save_recurring(db, original)

    loaded = database.get_recurring(db, "a")
    assert loaded == original
    assert isinstance(loaded.amount, Decimal)
    assert database.get_recurring(db, "missing") is None


def test_save_replaces_existing_row(tmp_path):
    db = str(tmp_path / "tb.db")
    database.save_recurring(db, template("a"))
    database.save_recurring(db, template("a", merchant="Disney+"))
    assert [t.merchant for t in database.list_recurring(db)] == ["Disney+"]


def test_save_requires_id(tmp_path):
    with pytest.raises(ValueError):
        database.save_recurring(str(tmp_path / "tb.db"), template(""))


def test_list_filters_and_orders_by_next_occurrence(tmp_path):
    db = str(tmp_path / "tb.db")
    database.save_recurring(db, template("late", next_ts=ts(2025, 3, 1)))
    database.save_recurring(db, template("early", next_ts=ts(2025, 2, 1)))
    database.save_recurring(db, template("other", user_id=2))
    database.save_recurring(db, template("off", is_active=False))

    assert [t.id for t in database.list_recurring(db, user_id=1)] == ["early", "off", "late"]
    assert [t.id for t in database.list_recurring(db, user_id=1, active_only=True)] == ["early", "late"]
    assert {t.id for t in database.list_recurring(db)} == {"late", "early", "other", "off"}


def test_set_active_and_delete(tmp_path):
    db = str(tmp_path / "tb.db")
    database.save_recurring(db, template("a"))
    assert database.set_active(db, "a", False)
    assert not database.get_recurring(db, "a").is_active
    assert not database.set_active(db, "missing", False)
    assert database.delete_recurring(db, "a")
    assert not database.delete_recurring(db, "a")


def test_delete_user_data_cascades(tmp_path):
    db = str(tmp_path / "tb.db")
    database.save_recurring(db, template("a", user_id=1))
    database.save_recurring(db, template("b", user_id=2))
    when = datetime(2025, 2, 1, tzinfo=timezone.utc)
    database.add_transaction(db, Transaction(1, "Shop", "Food", "5", when))
    database.add_transaction(db, Transaction(2, "Shop", "Food", "6", when))

    counts = database.delete_user_data(db, 1)

    assert counts == {"recurring_transactions": 1, "transactions": 1}
    assert [t.id for t in database.list_recurring(db)] == ["b"]
    assert [t.user_id for t in database.fetch_transactions(db)] == [2]


def test_fetch_transactions_date_bounds(tmp_path):
    db = str(tmp_path / "tb.db")
    for day in (1, 15, 28):
        database.add_transaction(
            db,
            Transaction(1, "Cafe", "Food", "3.50",
                        datetime(2025, 2, day, tzinfo=timezone.utc), is_expense=True),
        )
    txs = database.fetch_transactions(
        db,
        start_date=datetime(2025, 2, 15, tzinfo=timezone.utc),
        end_date=datetime(2025, 2, 28, tzinfo=timezone.utc),
    )
    assert [t.date.day for t in txs] == [15, 28]
    assert txs[0].amount == Decimal("3.50")
    assert txs[0].id is not None


def test_record_occurrence_links_transaction_to_template(tmp_path):
    db = str(tmp_path / "tb.db")
    t = template("a")
    database.save_recurring(db, t)
    tx = Transaction(1, "Netflix", "Entertainment", "15.99", t.next_occurrence)

    stored = database.record_occurrence(db, t, tx, ts(2025, 3, 1), ts(2025, 2, 2))

    assert stored.id is not None
    conn = sqlite3.connect(db)
    row = conn.execute("SELECT recurring_id, amount FROM transactions").fetchone()
    conn.close()
    assert row == ("a", "15.99")
    updated = database.get_recurring(db, "a")
    assert updated.next_occurrence_timestamp == ts(2025, 3, 1)
    assert updated.last_processed_timestamp == ts(2025, 2, 2)


def test_record_occurrence_ignores_cancelled_template(tmp_path):
    db = str(tmp_path / "tb.db")
    t = template("a")
    database.save_recurring(db, t)
    database.set_active(db, "a", False)
    tx = Transaction(1, "Netflix", "Entertainment", "15.99", t.next_occurrence)
    assert database.record_occurrence(db, t, tx, ts(2025, 3, 1), ts(2025, 2, 2)) is None
    assert database.fetch_transactions(db) == []


def test_state_round_trip(tmp_path):
    db = str(tmp_path / "tb.db")
    assert database.get_state(db, "k") is None
    database.set_state(db, "k", "v1")
    database.set_state(db, "k", "v2")
    assert database.get_state(db, "k") == "v2"
