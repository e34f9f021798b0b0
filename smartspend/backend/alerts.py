"""
Budget alert engine.

generate_alerts recomputes the full alert list from the budget and every
transaction on each call; nothing is cached between calls. Alert ids are
deterministic so the same condition on the same day (or month) always gets
the same id, which is what dismissal and notification dedupe key on.
"""

import logging
from datetime import datetime
from typing import Iterable, List, NamedTuple, Optional

from .budget_models import BudgetState
from .dates import is_same_week, month_identifier, parse_date, today_iso
from .formatting import format_inr, round_half_up
from .models import AlertItem, Transaction, BUCKET_MONTHLY, BUCKET_WEEKLY, bucket_for

logger = logging.getLogger(__name__)

WARNING_RATIO = 0.8


class SpendMetrics(NamedTuple):
    weekly_bucket_spent: float
    monthly_bucket_spent: float
    current_savings: float


def in_current_week(tx: Transaction, now: datetime) -> bool:
    try:
        return is_same_week(parse_date(tx.date), now)
    except ValueError:
        logger.warning(f"Skipping transaction {tx.id} with unparsable date {tx.date!r}")
        return False


def compute_spend_metrics(budget: BudgetState, transactions: Iterable[Transaction],
                          now: Optional[datetime] = None) -> SpendMetrics:
    now = now or datetime.now()
    current_month = month_identifier(now)
    transactions = list(transactions)

    weekly = sum(
        t.amount for t in transactions
        if bucket_for(t.category) == BUCKET_WEEKLY and in_current_week(t, now)
    )
    monthly = sum(
        t.amount for t in transactions
        if bucket_for(t.category) == BUCKET_MONTHLY and t.date.startswith(current_month)
    )
    # Running total since the first transaction, not scoped to this month
    savings = budget.monthly_income - sum(t.amount for t in transactions)

    return SpendMetrics(weekly, monthly, savings)


def _percent(spent, limit):
    return round_half_up(spent / limit * 100)


def generate_alerts(budget: BudgetState, transactions: Iterable[Transaction],
                    now: Optional[datetime] = None) -> List[AlertItem]:
    """Evaluate every configured limit: weekly, per-category weekly, monthly, then savings."""
    now = now or datetime.now()
    today = today_iso(now)
    current_month = month_identifier(now)
    transactions = list(transactions)
    allocations = budget.allocations

    weekly_spent, monthly_spent, current_savings = compute_spend_metrics(budget, transactions, now)
    alerts = []

    # Weekly spending limit. Ids carry the day, so a dismissed alert comes back tomorrow.
    weekly_limit = allocations.weekly_limit
    if weekly_limit > 0:
        if weekly_spent > weekly_limit:
            alerts.append(AlertItem(
                id=f"weekly-critical-{today}",
                type='critical',
                title='Weekly Limit Exceeded',
                message=f"You've spent {format_inr(weekly_spent)} / {format_inr(weekly_limit)} this week.",
            ))
        elif weekly_spent >= weekly_limit * WARNING_RATIO:
            alerts.append(AlertItem(
                id=f"weekly-warning-{today}",
                type='warning',
                title='Approaching Weekly Limit',
                message=(f"You've used {_percent(weekly_spent, weekly_limit)}% of your weekly limit "
                         f"({format_inr(weekly_spent)} / {format_inr(weekly_limit)})."),
            ))

    # Per-category weekly limits
    for category, limit in (allocations.weekly_category_limits or {}).items():
        limit = limit or 0
        if limit <= 0:
            continue
        spent = sum(
            t.amount for t in transactions
            if t.category == category and in_current_week(t, now)
        )
        if spent > limit:
            alerts.append(AlertItem(
                id=f"weekly-cat-critical-{category}-{today}",
                type='critical',
                title=f"{category} Limit Exceeded",
                message=f"You've spent {format_inr(spent)} on {category}, exceeding your {format_inr(limit)} limit.",
            ))
        elif spent >= limit * WARNING_RATIO:
            alerts.append(AlertItem(
                id=f"weekly-cat-warning-{category}-{today}",
                type='warning',
                title=f"{category} Budget Low",
                message=f"You've used {_percent(spent, limit)}% of your {category} budget.",
            ))

    # Monthly expense limit
    monthly_limit = allocations.monthly_limit
    if monthly_limit > 0:
        if monthly_spent > monthly_limit:
            alerts.append(AlertItem(
                id=f"monthly-critical-{current_month}",
                type='critical',
                title='Monthly Expense Limit Exceeded',
                message=(f"Monthly bills/expenses are {format_inr(monthly_spent)}, "
                         f"exceeding the {format_inr(monthly_limit)} limit."),
            ))
        elif monthly_spent >= monthly_limit * WARNING_RATIO:
            alerts.append(AlertItem(
                id=f"monthly-warning-{current_month}",
                type='warning',
                title='Approaching Monthly Expense Limit',
                message=f"You've used {_percent(monthly_spent, monthly_limit)}% of your monthly expense limit.",
            ))

    # Savings goal: any shortfall is a warning, there is no critical tier
    savings_target = allocations.savings_target
    if savings_target > 0:
        if current_savings >= savings_target:
            alerts.append(AlertItem(
                id=f"savings-success-{current_month}",
                type='success',
                title='Savings Goal Reached! 🎉',
                message=f"You have {format_inr(current_savings)} saved, meeting your {format_inr(savings_target)} goal.",
            ))
        else:
            alerts.append(AlertItem(
                id=f"savings-warning-{current_month}",
                type='warning',
                title='Savings Below Goal',
                message=(f"Current savings ({format_inr(current_savings)}) are below your target "
                         f"({format_inr(savings_target)}). Reduce spending to recover."),
            ))

    return alerts


class AlertCenter:
    """Session-local record of dismissed alert ids."""

    def __init__(self):
        self.dismissed = set()

    def dismiss(self, alert_id: str):
        self.dismissed.add(alert_id)

    def visible(self, alerts: Iterable[AlertItem]) -> List[AlertItem]:
        return [a for a in alerts if a.id not in self.dismissed]


async def dispatch_notifications(alerts: Iterable[AlertItem], notifier) -> int:
    """Push alerts to the notifier, reusing each alert id as the dedupe tag."""
    if notifier is None or not notifier.has_permission:
        return 0
    sent = 0
    for alert in alerts:
        if alert.type in ('critical', 'warning', 'success'):
            if await notifier.send(alert.title, alert.message, alert.id):
                sent += 1
    return sent
