import logging
import sqlite3
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

from tightbudget.core.models import RecurringTransaction, Transaction
from tightbudget.timeutil import from_millis, to_millis

logger = logging.getLogger(__name__)

_RECURRING_COLUMNS = (
    "id, user_id, merchant, category, amount, is_expense, description, "
    "receipt_path, frequency, start_date_ts, next_occurrence_ts, "
    "last_processed_ts, is_active, created_at"
)


def _init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS recurring_transactions (
            id TEXT PRIMARY KEY,
            user_id INTEGER NOT NULL,
            merchant TEXT NOT NULL,
            category TEXT NOT NULL,
            amount TEXT NOT NULL,
            is_expense INTEGER NOT NULL,
            description TEXT,
            receipt_path TEXT,
            frequency TEXT NOT NULL,
            start_date_ts INTEGER NOT NULL,
            next_occurrence_ts INTEGER NOT NULL,
            last_processed_ts INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_recurring_user
            ON recurring_transactions(user_id);
        CREATE TABLE IF NOT EXISTS transactions (
            id INTEGER PRIMARY KEY,
            user_id INTEGER NOT NULL,
            merchant TEXT NOT NULL,
            category TEXT NOT NULL,
            amount TEXT NOT NULL,
            date_ts INTEGER NOT NULL,
            is_expense INTEGER NOT NULL,
            description TEXT,
            receipt_path TEXT,
            is_recurring INTEGER NOT NULL DEFAULT 0,
            recurring_id TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_transactions_user
            ON transactions(user_id);
        CREATE TABLE IF NOT EXISTS processor_state (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
        """
    )
    conn.commit()


def _connect(db_path: str) -> sqlite3.Connection:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    _init_db(conn)
    return conn


def _row_to_recurring(row) -> RecurringTransaction:
    return RecurringTransaction(
        id=row[0],
        user_id=int(row[1]),
        merchant=row[2],
        category=row[3],
        amount=Decimal(row[4]),
        is_expense=bool(row[5]),
        description=row[6],
        receipt_path=row[7],
        frequency=row[8],
        start_date_timestamp=int(row[9]),
        next_occurrence_timestamp=int(row[10]),
        last_processed_timestamp=int(row[11]),
        is_active=bool(row[12]),
        created_at=int(row[13]),
    )


def save_recurring(db_path: str, template: RecurringTransaction) -> None:
    """Insert or replace a recurring template keyed by its id."""
    if not template.id:
        raise ValueError("Recurring template must have an id before it is saved.")
    conn = _connect(db_path)
    try:
        conn.execute(
            f"""
            INSERT OR REPLACE INTO recurring_transactions ({_RECURRING_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                template.id,
                template.user_id,
                template.merchant,
                template.category,
                str(template.amount),
                int(template.is_expense),
                template.description,
                template.receipt_path,
                template.frequency,
                template.start_date_timestamp,
                template.next_occurrence_timestamp,
                template.last_processed_timestamp,
                int(template.is_active),
                template.created_at,
            ),
        )
        conn.commit()
    finally:
        conn.close()
    logger.debug("Saved recurring template %s", template.id)


def get_recurring(db_path: str, template_id: str) -> Optional[RecurringTransaction]:
    conn = _connect(db_path)
    try:
        row = conn.execute(
            f"SELECT {_RECURRING_COLUMNS} FROM recurring_transactions WHERE id = ?",
            (template_id,),
        ).fetchone()
    finally:
        conn.close()
    return _row_to_recurring(row) if row else None


def list_recurring(
    db_path: str,
    user_id: int | None = None,
    active_only: bool = False,
) -> List[RecurringTransaction]:
    """Return templates ordered by next occurrence.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    user_id:
        Restrict the result to one owner.
    active_only:
        Skip templates whose schedule has been cancelled.
    """
    conditions: list[str] = []
    params: list[object] = []
    if user_id is not None:
        conditions.append("user_id = ?")
        params.append(user_id)
    if active_only:
        conditions.append("is_active = 1")
    where = " WHERE " + " AND ".join(conditions) if conditions else ""

    conn = _connect(db_path)
    try:
        rows = conn.execute(
            f"""
            SELECT {_RECURRING_COLUMNS} FROM recurring_transactions
            {where}
            ORDER BY next_occurrence_ts, id
            """,
            params,
        ).fetchall()
    finally:
        conn.close()
    return [_row_to_recurring(r) for r in rows]


def set_active(db_path: str, template_id: str, is_active: bool) -> bool:
    conn = _connect(db_path)
    try:
        cur = conn.execute(
            "UPDATE recurring_transactions SET is_active = ? WHERE id = ?",
            (int(is_active), template_id),
        )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def delete_recurring(db_path: str, template_id: str) -> bool:
    conn = _connect(db_path)
    try:
        cur = conn.execute(
            "DELETE FROM recurring_transactions WHERE id = ?", (template_id,)
        )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def delete_user_data(db_path: str, user_id: int) -> Dict[str, int]:
    """Remove every template and transaction owned by ``user_id``."""
    conn = _connect(db_path)
    try:
        with conn:
            templates = conn.execute(
                "DELETE FROM recurring_transactions WHERE user_id = ?", (user_id,)
            ).rowcount
            transactions = conn.execute(
                "DELETE FROM transactions WHERE user_id = ?", (user_id,)
            ).rowcount
    finally:
        conn.close()
    logger.info(
        "Deleted %d template(s) and %d transaction(s) for user %d",
        templates, transactions, user_id,
    )
    return {"recurring_transactions": templates, "transactions": transactions}


def _insert_transaction(
    conn: sqlite3.Connection, tx: Transaction, recurring_id: str | None
) -> int:
    cur = conn.execute(
        """
        INSERT INTO transactions
        (user_id, merchant, category, amount, date_ts, is_expense,
         description, receipt_path, is_recurring, recurring_id)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            tx.user_id,
            tx.merchant,
            tx.category,
            str(tx.amount),
            to_millis(tx.date),
            int(tx.is_expense),
            tx.description,
            tx.receipt_path,
            int(tx.is_recurring),
            recurring_id,
        ),
    )
    return cur.lastrowid


def add_transaction(db_path: str, tx: Transaction) -> Transaction:
    conn = _connect(db_path)
    try:
        with conn:
            new_id = _insert_transaction(conn, tx, None)
    finally:
        conn.close()
    return replace(tx, id=new_id)


def record_occurrence(
    db_path: str,
    template: RecurringTransaction,
    tx: Transaction,
    new_next_occurrence: int,
    processed_at: int,
) -> Optional[Transaction]:
    """Store a generated transaction and advance its template in one step.

    The template row is only advanced when its stored next occurrence still
    matches ``template.next_occurrence_timestamp`` and it is active. When
    another run got there first nothing is written and ``None`` is returned.
    """
    conn = _connect(db_path)
    try:
        with conn:
            cur = conn.execute(
                """
                UPDATE recurring_transactions
                SET next_occurrence_ts = ?, last_processed_ts = ?
                WHERE id = ? AND next_occurrence_ts = ? AND is_active = 1
                """,
                (
                    new_next_occurrence,
                    processed_at,
                    template.id,
                    template.next_occurrence_timestamp,
                ),
            )
            if cur.rowcount == 0:
                return None
            new_id = _insert_transaction(conn, tx, template.id)
    finally:
        conn.close()
    return replace(tx, id=new_id)


def fetch_transactions(
    db_path: str,
    user_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> List[Transaction]:
    """Retrieve stored transactions ordered by date (bounds inclusive)."""
    conditions: list[str] = []
    params: list[object] = []
    if user_id is not None:
        conditions.append("user_id = ?")
        params.append(user_id)
    if start_date:
        conditions.append("date_ts >= ?")
        params.append(to_millis(start_date))
    if end_date:
        conditions.append("date_ts <= ?")
        params.append(to_millis(end_date))
    where = " WHERE " + " AND ".join(conditions) if conditions else ""

    conn = _connect(db_path)
    try:
        rows = conn.execute(
            f"""
            SELECT id, user_id, merchant, category, amount, date_ts, is_expense,
                   description, receipt_path, is_recurring
            FROM transactions
            {where}
            ORDER BY date_ts, id
            """,
            params,
        ).fetchall()
    finally:
        conn.close()
    return [
        Transaction(
            id=r[0],
            user_id=int(r[1]),
            merchant=r[2],
            category=r[3],
            amount=Decimal(r[4]),
            date=from_millis(r[5]),
            is_expense=bool(r[6]),
            description=r[7],
            receipt_path=r[8],
            is_recurring=bool(r[9]),
        )
        for r in rows
    ]


def get_state(db_path: str, key: str) -> Optional[str]:
    conn = _connect(db_path)
    try:
        row = conn.execute(
            "SELECT value FROM processor_state WHERE key = ?", (key,)
        ).fetchone()
    finally:
        conn.close()
    return row[0] if row else None


def set_state(db_path: str, key: str, value: str) -> None:
    conn = _connect(db_path)
    try:
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO processor_state (key, value) VALUES (?, ?)",
                (key, value),
            )
    finally:
        conn.close()
