"""
Week/month rollover archiving.

Runs once when a session starts. When the current ISO week or calendar
month differs from the one recorded in the user's HistoryMeta, the previous
period's totals are computed from the full transaction history and stored as
a finalized snapshot before the meta is advanced.
"""

import logging
import sqlite3
from datetime import datetime
from typing import Iterable, List, Optional

from .dates import month_identifier, month_name, parse_date, week_identifier, week_range_for_id
from .models import HistoryMeta, MonthlyStats, Transaction, WeeklyStats

logger = logging.getLogger(__name__)


def _accumulate(stats, transactions):
    for tx in transactions:
        if tx.category == 'Savings':
            stats.total_saved += tx.amount
        else:
            stats.total_spent += tx.amount
            stats.category_breakdown[tx.category] = stats.category_breakdown.get(tx.category, 0) + tx.amount
    return stats


def _matching(transactions, identifier, key_fn):
    for tx in transactions:
        try:
            if key_fn(parse_date(tx.date)) == identifier:
                yield tx
        except ValueError:
            logger.warning(f"Skipping transaction {tx.id} with unparsable date {tx.date!r}")


def calculate_week_stats(transactions: Iterable[Transaction], week_id: str) -> WeeklyStats:
    try:
        start, end = week_range_for_id(week_id)
        start_date, end_date = start.isoformat(), end.isoformat()
    except ValueError:
        start_date = end_date = ''
    stats = WeeklyStats(week_id=week_id, start_date=start_date, end_date=end_date, status='completed')
    return _accumulate(stats, _matching(transactions, week_id, week_identifier))


def calculate_month_stats(transactions: Iterable[Transaction], month_id: str) -> MonthlyStats:
    try:
        name = month_name(month_id)
    except ValueError:
        name = month_id
    stats = MonthlyStats(month_id=month_id, month_name=name, is_finalized=True)
    return _accumulate(stats, _matching(transactions, month_id, month_identifier))


class TimeArchiver:
    def __init__(self, storage):
        self.storage = storage

    def run(self, user_id, now: Optional[datetime] = None) -> List[object]:
        """Archive any period that ended since the last run. Returns the snapshots written."""
        now = now or datetime.now()
        current_week = week_identifier(now)
        current_month = month_identifier(now)

        try:
            meta = self.storage.load_meta(user_id, strict=True)
        except (sqlite3.Error, ValueError, KeyError, TypeError) as e:
            # An unreadable meta is not a first run, so history is left untouched
            logger.error(f"Skipping archive for {user_id}, history meta unreadable: {type(e).__name__}: {e}")
            return []

        if meta is None:
            # First run: nothing to archive yet
            logger.info(f"Initializing history meta for {user_id}: {current_week}, {current_month}")
            self.storage.save_meta(user_id, HistoryMeta(current_week, current_month))
            return []

        if meta.last_active_week == current_week and meta.last_active_month == current_month:
            return []

        try:
            transactions = self.storage.load_transactions(user_id, strict=True)
        except (sqlite3.Error, ValueError) as e:
            logger.error(f"Skipping archive for {user_id}, transactions unreadable: {type(e).__name__}: {e}")
            return []

        written = []

        if meta.last_active_week != current_week:
            logger.info(f"Week changed for {user_id}: {meta.last_active_week} -> {current_week}")
            stats = calculate_week_stats(transactions, meta.last_active_week)
            if self.storage.save_week_stats(user_id, stats):
                written.append(stats)
                meta.last_active_week = current_week
                self.storage.save_meta(user_id, meta)

        if meta.last_active_month != current_month:
            logger.info(f"Month changed for {user_id}: {meta.last_active_month} -> {current_month}")
            stats = calculate_month_stats(transactions, meta.last_active_month)
            if self.storage.save_month_stats(user_id, stats):
                written.append(stats)
                meta.last_active_month = current_month
                self.storage.save_meta(user_id, meta)

        return written
