"""
SMS Ledger Database

Single source of truth for users, patterns, pattern audit events,
transactions and merchant category overrides.
"""
from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

PATTERN_COLUMNS = (
    "expression",
    "sample_text",
    "sender_title",
    "bank_name",
    "merchant_name",
    "transaction_type",
    "message_type",
    "message_subtype",
    "status",
    "owner_id",
    "reviewer_id",
    "review_comment",
    "parent_pattern_id",
    "submitted_at",
    "reviewed_at",
)

TRANSACTION_COLUMNS = (
    "owner_id",
    "pattern_id",
    "amount",
    "account_number",
    "bank_name",
    "merchant_name",
    "transaction_type",
    "message_type",
    "message_subtype",
    "date",
    "transaction_date",
    "reference_no",
    "available_balance",
    "raw_message",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class LedgerDB:
    def __init__(self, db_path: str = "smsledger.db"):
        self.db_path = db_path
        self._initialized = False

    @contextmanager
    def connect(self):
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        if self._initialized:
            return
        with self.connect() as conn:
            cur = conn.cursor()

            cur.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE COLLATE NOCASE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL,
                    created_at TEXT
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS patterns (
                    pattern_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    expression TEXT NOT NULL DEFAULT '',
                    sample_text TEXT NOT NULL DEFAULT '',
                    sender_title TEXT,
                    bank_name TEXT,
                    merchant_name TEXT,
                    transaction_type TEXT,
                    message_type TEXT,
                    message_subtype TEXT,
                    status TEXT NOT NULL,
                    owner_id INTEGER,
                    reviewer_id INTEGER,
                    review_comment TEXT,
                    parent_pattern_id INTEGER,
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT,
                    updated_at TEXT,
                    submitted_at TEXT,
                    reviewed_at TEXT
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS pattern_events (
                    event_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    pattern_id INTEGER NOT NULL,
                    action TEXT NOT NULL,
                    from_status TEXT,
                    to_status TEXT NOT NULL,
                    actor_id INTEGER,
                    comment TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS transactions (
                    tx_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id INTEGER NOT NULL,
                    pattern_id INTEGER,
                    amount TEXT,
                    account_number TEXT,
                    bank_name TEXT,
                    merchant_name TEXT,
                    transaction_type TEXT,
                    message_type TEXT,
                    message_subtype TEXT,
                    date TEXT,
                    transaction_date TEXT,
                    reference_no TEXT,
                    available_balance TEXT,
                    raw_message TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS merchant_categories (
                    merchant_name TEXT PRIMARY KEY,
                    category TEXT NOT NULL,
                    updated_at TEXT
                )
            """)

            cur.execute("CREATE INDEX IF NOT EXISTS idx_patterns_status ON patterns(status)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_patterns_owner ON patterns(owner_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_pattern_events_pattern ON pattern_events(pattern_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_transactions_owner ON transactions(owner_id)")
            conn.commit()
        self._initialized = True
        logger.debug("Database initialized at %s", self.db_path)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, username: str, password_hash: str, role: str) -> Optional[Dict[str, Any]]:
        """Insert a user. Returns None when the username is already taken."""
        self.initialize()
        with self.connect() as conn:
            cur = conn.cursor()
            try:
                cur.execute(
                    "INSERT INTO users (username, password_hash, role, created_at) VALUES (?, ?, ?, ?)",
                    (username, password_hash, _to_db(role), _now()),
                )
            except sqlite3.IntegrityError:
                return None
            conn.commit()
            user_id = cur.lastrowid
        return self.get_user(user_id)

    def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        self.initialize()
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM users WHERE user_id = ?", (user_id,))
            row = cur.fetchone()
        return dict(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        self.initialize()
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM users WHERE username = ?", (username,))
            row = cur.fetchone()
        return dict(row) if row else None

    def list_users(self) -> List[Dict[str, Any]]:
        self.initialize()
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM users ORDER BY user_id ASC")
            rows = cur.fetchall()
        return [dict(row) for row in rows]

    def update_user_role(self, user_id: int, role: str) -> bool:
        self.initialize()
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute("UPDATE users SET role = ? WHERE user_id = ?", (_to_db(role), user_id))
            conn.commit()
            return cur.rowcount > 0

    def count_users_by_role(self) -> Dict[str, int]:
        self.initialize()
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT role, COUNT(*) AS total FROM users GROUP BY role")
            rows = cur.fetchall()
        return {row["role"]: row["total"] for row in rows}

    # ------------------------------------------------------------------
    # Patterns
    # ------------------------------------------------------------------

    def create_pattern(
        self,
        payload: Dict[str, Any],
        actor_id: Optional[int] = None,
        action: str = "create",
    ) -> Dict[str, Any]:
        """Insert a pattern and its creation event in one transaction."""
        self.initialize()
        now = _now()
        values = {col: _to_db(payload.get(col)) for col in PATTERN_COLUMNS}
        values["expression"] = values["expression"] or ""
        values["sample_text"] = values["sample_text"] or ""
        columns = ", ".join(values.keys())
        placeholders = ", ".join("?" for _ in values)
        sql = (
            f"INSERT INTO patterns ({columns}, version, created_at, updated_at) "
            f"VALUES ({placeholders}, 1, ?, ?)"
        )
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(sql, (*values.values(), now, now))
            pattern_id = cur.lastrowid
            self._insert_event(cur, pattern_id, action, None, values["status"], actor_id, None, now)
            conn.commit()
        return self.get_pattern(pattern_id)

    def get_pattern(self, pattern_id: int) -> Optional[Dict[str, Any]]:
        self.initialize()
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM patterns WHERE pattern_id = ?", (pattern_id,))
            row = cur.fetchone()
        return dict(row) if row else None

    def list_patterns(
        self,
        status: Optional[str] = None,
        owner_id: Optional[int] = None,
        include_unowned_failed: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        List patterns, newest first.

        With ``owner_id`` the result is limited to that owner's patterns, plus
        ownerless FAILED captures when ``include_unowned_failed`` is set.
        """
        self.initialize()
        clauses: List[str] = []
        params: List[Any] = []
        if status:
            clauses.append("status = ?")
            params.append(_to_db(status))
        if owner_id is not None:
            if include_unowned_failed:
                clauses.append("(owner_id = ? OR (owner_id IS NULL AND status = 'FAILED'))")
            else:
                clauses.append("owner_id = ?")
            params.append(owner_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(f"SELECT * FROM patterns {where} ORDER BY pattern_id DESC", params)
            rows = cur.fetchall()
        return [dict(row) for row in rows]

    def list_approved_patterns(self) -> List[Dict[str, Any]]:
        """APPROVED patterns, most recently approved first."""
        self.initialize()
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM patterns WHERE status = 'APPROVED' "
                "ORDER BY reviewed_at DESC, pattern_id DESC"
            )
            rows = cur.fetchall()
        return [dict(row) for row in rows]

    def apply_pattern_change(
        self,
        pattern_id: int,
        expected_status: str,
        expected_version: int,
        new_status: str,
        action: str,
        actor_id: Optional[int] = None,
        comment: Optional[str] = None,
        **fields,
    ) -> bool:
        """
        Compare-and-swap update of a pattern row.

        The row is only written if it still has ``expected_status`` and
        ``expected_version``; the version is bumped and an audit event is
        appended in the same transaction. Returns False when another writer
        got there first.
        """
        self.initialize()
        now = _now()
        updates = {k: _to_db(v) for k, v in fields.items() if k in PATTERN_COLUMNS and k != "status"}
        updates["status"] = _to_db(new_status)
        updates["updated_at"] = now
        set_clause = ", ".join(f"{k} = ?" for k in updates.keys())
        sql = (
            f"UPDATE patterns SET {set_clause}, version = version + 1 "
            "WHERE pattern_id = ? AND status = ? AND version = ?"
        )
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(sql, (*updates.values(), pattern_id, _to_db(expected_status), expected_version))
            if cur.rowcount != 1:
                conn.rollback()
                return False
            self._insert_event(
                cur, pattern_id, action, _to_db(expected_status), updates["status"], actor_id, comment, now
            )
            conn.commit()
        return True

    @staticmethod
    def _insert_event(cur, pattern_id, action, from_status, to_status, actor_id, comment, ts) -> None:
        cur.execute(
            """
            INSERT INTO pattern_events
            (pattern_id, action, from_status, to_status, actor_id, comment, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (pattern_id, action, from_status, to_status, actor_id, comment, ts),
        )

    def list_pattern_events(self, pattern_id: int) -> List[Dict[str, Any]]:
        self.initialize()
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM pattern_events WHERE pattern_id = ? ORDER BY event_id ASC",
                (pattern_id,),
            )
            rows = cur.fetchall()
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.initialize()
        values = {col: _to_db(payload.get(col)) for col in TRANSACTION_COLUMNS}
        columns = ", ".join(values.keys())
        placeholders = ", ".join("?" for _ in values)
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                f"INSERT INTO transactions ({columns}, created_at) VALUES ({placeholders}, ?)",
                (*values.values(), _now()),
            )
            conn.commit()
            tx_id = cur.lastrowid
        return self.get_transaction(tx_id)

    def get_transaction(self, tx_id: int) -> Optional[Dict[str, Any]]:
        self.initialize()
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM transactions WHERE tx_id = ?", (tx_id,))
            row = cur.fetchone()
        return dict(row) if row else None

    def list_transactions(self, owner_id: int) -> List[Dict[str, Any]]:
        """Owner's transactions, newest first."""
        self.initialize()
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM transactions WHERE owner_id = ? ORDER BY tx_id DESC",
                (owner_id,),
            )
            rows = cur.fetchall()
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Merchant categories
    # ------------------------------------------------------------------

    def upsert_merchant_category(self, merchant_name: str, category: str) -> Dict[str, Any]:
        self.initialize()
        name = merchant_name.strip().upper()
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO merchant_categories (merchant_name, category, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(merchant_name) DO UPDATE SET
                    category = excluded.category,
                    updated_at = excluded.updated_at
                """,
                (name, _to_db(category), _now()),
            )
            conn.commit()
        return {"merchant_name": name, "category": _to_db(category)}

    def list_merchant_categories(self) -> List[Dict[str, Any]]:
        self.initialize()
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT merchant_name, category FROM merchant_categories ORDER BY merchant_name ASC")
            rows = cur.fetchall()
        return [dict(row) for row in rows]


_DB_INSTANCE: Optional[LedgerDB] = None


def get_db() -> LedgerDB:
    global _DB_INSTANCE
    if _DB_INSTANCE is None:
        _DB_INSTANCE = LedgerDB(db_path=os.getenv("SMSLEDGER_DB_PATH", "smsledger.db"))
    return _DB_INSTANCE
