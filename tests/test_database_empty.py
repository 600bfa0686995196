from tightbudget import database


def test_empty_db_queries(tmp_path):
    db_path = str(tmp_path / "empty.db")

    assert database.list_recurring(db_path) == []
    assert database.list_recurring(db_path, user_id=1, active_only=True) == []
    assert database.fetch_transactions(db_path) == []
    assert database.get_recurring(db_path, "x") is None
    assert database.delete_user_data(db_path, 1) == {
        "recurring_transactions": 0,
        "transactions": 0,
    }
