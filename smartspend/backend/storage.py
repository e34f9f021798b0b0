"""
Per-user document store backed by SQLite.

Each record is a JSON document addressed by (user_id, collection, doc_id),
mirroring a users/{uid}/{collection}/{doc} layout. Read failures fall back
to defaults and write failures return False. Both are logged and never
raised to the caller.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from typing import List, Optional

from .budget_models import BudgetState
from .models import HistoryMeta, MonthlyStats, Transaction, WeeklyStats

logger = logging.getLogger(__name__)

SETTINGS = 'settings'
TRANSACTIONS = 'transactions'
HISTORY_WEEKS = 'history_weeks'
HISTORY_MONTHS = 'history_months'

BUDGET_DOC = 'budget'
META_DOC = 'meta'


class Storage:
    def __init__(self, db_path='smartspend.db'):
        self.db_path = db_path
        self.init_db()

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self):
        with self._conn() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS documents (
                    user_id TEXT NOT NULL,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    sort_key INTEGER DEFAULT 0,
                    body TEXT NOT NULL,
                    PRIMARY KEY (user_id, collection, doc_id)
                )
            ''')
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_sort ON documents(user_id, collection, sort_key)"
            )
            conn.commit()

    # Low-level document access
    def _get(self, user_id, collection, doc_id):
        with self._conn() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT body FROM documents WHERE user_id = ? AND collection = ? AND doc_id = ?',
                (user_id, collection, doc_id)
            )
            row = cursor.fetchone()
            return json.loads(row['body']) if row else None

    def _put(self, user_id, collection, doc_id, body, sort_key=0):
        with self._conn() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO documents (user_id, collection, doc_id, sort_key, body)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id, collection, doc_id)
                DO UPDATE SET sort_key = excluded.sort_key, body = excluded.body
            ''', (user_id, collection, doc_id, sort_key, json.dumps(body)))
            conn.commit()

    def _list(self, user_id, collection, order_by='sort_key DESC'):
        with self._conn() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f'SELECT doc_id, body FROM documents WHERE user_id = ? AND collection = ? ORDER BY {order_by}',
                (user_id, collection)
            )
            return [(row['doc_id'], json.loads(row['body'])) for row in cursor.fetchall()]

    def _delete(self, user_id, collection, doc_id):
        with self._conn() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM documents WHERE user_id = ? AND collection = ? AND doc_id = ?',
                (user_id, collection, doc_id)
            )
            conn.commit()

    # Budget
    def load_budget(self, user_id) -> BudgetState:
        try:
            data = self._get(user_id, SETTINGS, BUDGET_DOC)
            if data:
                return BudgetState.from_dict(data)
        except (sqlite3.Error, ValueError, TypeError, KeyError) as e:
            logger.error(f"Error loading budget for {user_id}: {type(e).__name__}: {e}")
        return BudgetState.default()

    def save_budget(self, user_id, budget: BudgetState) -> bool:
        try:
            self._put(user_id, SETTINGS, BUDGET_DOC, budget.to_dict())
            return True
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(f"Error saving budget for {user_id}: {type(e).__name__}: {e}")
            return False

    # Transactions
    def load_transactions(self, user_id, strict=False) -> List[Transaction]:
        """
        All transactions for the user, newest first by creation timestamp.

        With strict=True a failed read raises instead of returning [], for
        callers that must not mistake a broken store for an empty one.
        """
        try:
            rows = self._list(user_id, TRANSACTIONS, order_by='sort_key DESC, doc_id DESC')
        except (sqlite3.Error, ValueError) as e:
            if strict:
                raise
            logger.error(f"Error loading transactions for {user_id}: {type(e).__name__}: {e}")
            return []

        transactions = []
        for doc_id, data in rows:
            try:
                transactions.append(Transaction.from_dict({**data, 'id': doc_id}))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed transaction {doc_id}: {e}")
        return transactions

    def add_transaction(self, user_id, transaction: Transaction) -> bool:
        # Keyed by transaction id, so saving the same transaction twice is a no-op
        try:
            self._put(user_id, TRANSACTIONS, transaction.id, transaction.to_dict(),
                      sort_key=transaction.timestamp)
            return True
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(f"Error adding transaction {transaction.id}: {type(e).__name__}: {e}")
            return False

    def delete_transaction(self, user_id, transaction_id) -> bool:
        try:
            self._delete(user_id, TRANSACTIONS, str(transaction_id))
            return True
        except sqlite3.Error as e:
            logger.error(f"Error deleting transaction {transaction_id}: {type(e).__name__}: {e}")
            return False

    # History
    def load_meta(self, user_id, strict=False) -> Optional[HistoryMeta]:
        """None means no meta has been saved yet. With strict=True read errors raise."""
        try:
            data = self._get(user_id, SETTINGS, META_DOC)
            return HistoryMeta.from_dict(data) if data else None
        except (sqlite3.Error, ValueError, KeyError, TypeError) as e:
            if strict:
                raise
            logger.error(f"Error loading history meta for {user_id}: {type(e).__name__}: {e}")
            return None

    def save_meta(self, user_id, meta: HistoryMeta) -> bool:
        try:
            self._put(user_id, SETTINGS, META_DOC, meta.to_dict())
            return True
        except sqlite3.Error as e:
            logger.error(f"Error saving history meta for {user_id}: {type(e).__name__}: {e}")
            return False

    def save_week_stats(self, user_id, stats: WeeklyStats) -> bool:
        try:
            self._put(user_id, HISTORY_WEEKS, stats.week_id, stats.to_dict())
            return True
        except sqlite3.Error as e:
            logger.error(f"Error archiving week {stats.week_id}: {type(e).__name__}: {e}")
            return False

    def load_week_stats(self, user_id) -> List[WeeklyStats]:
        try:
            rows = self._list(user_id, HISTORY_WEEKS, order_by='doc_id DESC')
            weeks = [WeeklyStats.from_dict(data) for _, data in rows]
            # "2024-W9" sorts after "2024-W10" as text, so order numerically
            return sorted(weeks, key=lambda w: tuple(int(p) for p in w.week_id.split('-W')), reverse=True)
        except (sqlite3.Error, ValueError, KeyError) as e:
            logger.error(f"Error loading week history for {user_id}: {type(e).__name__}: {e}")
            return []

    def save_month_stats(self, user_id, stats: MonthlyStats) -> bool:
        try:
            self._put(user_id, HISTORY_MONTHS, stats.month_id, stats.to_dict())
            return True
        except sqlite3.Error as e:
            logger.error(f"Error archiving month {stats.month_id}: {type(e).__name__}: {e}")
            return False

    def load_month_stats(self, user_id) -> List[MonthlyStats]:
        """Archived months, newest first."""
        try:
            rows = self._list(user_id, HISTORY_MONTHS, order_by='doc_id DESC')
            return [MonthlyStats.from_dict(data) for _, data in rows]
        except (sqlite3.Error, ValueError, KeyError) as e:
            logger.error(f"Error loading month history for {user_id}: {type(e).__name__}: {e}")
            return []
