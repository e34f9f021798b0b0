from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .alerts import compute_spend_metrics, in_current_week
from .budget_models import BudgetState, WEEKLY_CATEGORIES
from .formatting import format_inr_grouped, round_half_up
from .models import Transaction, BUCKET_MONTHLY, BUCKET_SAVINGS, BUCKET_WEEKLY, bucket_for

# Description keyword -> display category. First match wins.
KEYWORD_MAP = (
    ('zomato', 'Food Delivery'),
    ('swiggy', 'Food Delivery'),
    ('uber eats', 'Food Delivery'),
    ('blinkit', 'Groceries'),
    ('zepto', 'Groceries'),
    ('bigbasket', 'Groceries'),
    ('instamart', 'Groceries'),
    ('dmart', 'Groceries'),
    ('grocery', 'Groceries'),
    ('petrol', 'Petrol / Transport'),
    ('fuel', 'Petrol / Transport'),
    ('uber', 'Petrol / Transport'),
    ('ola', 'Petrol / Transport'),
    ('rapido', 'Petrol / Transport'),
    ('netflix', 'Subscriptions'),
    ('spotify', 'Subscriptions'),
    ('prime', 'Subscriptions'),
    ('youtube', 'Subscriptions'),
)

CATEGORY_LABELS = {
    'Food': 'Food & Dining',
    'Transport': 'Petrol / Transport',
    'Bills': 'Bills & Utilities',
}

# Legacy label, not one of the fixed categories
PERSONAL = 'Personal'
PERSONAL_PURCHASES = 'Personal Purchases'
FOOD_DELIVERY = 'Food Delivery'


@dataclass
class CategoryBreakdown:
    name: str
    amount: float
    percentage: int
    count: int

    def to_dict(self):
        return {'name': self.name, 'amount': self.amount,
                'percentage': self.percentage, 'count': self.count}


@dataclass
class SpendingAnalytics:
    total_spent: float
    breakdown: List[CategoryBreakdown] = field(default_factory=list)
    top_categories: List[CategoryBreakdown] = field(default_factory=list)
    personal_purchases: List[Transaction] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'totalSpent': self.total_spent,
            'breakdown': [b.to_dict() for b in self.breakdown],
            'topCategories': [b.to_dict() for b in self.top_categories],
            'personalPurchases': [t.to_dict() for t in self.personal_purchases],
            'insights': list(self.insights),
        }


def get_granular_category(category: str, description: str) -> str:
    """Finer display label for a transaction. Only used for analytics, never stored."""
    if category == PERSONAL:
        return PERSONAL_PURCHASES

    desc = (description or '').lower()
    for keyword, label in KEYWORD_MAP:
        if keyword in desc:
            return label

    return CATEGORY_LABELS.get(category, category)


def generate_analytics(transactions: Iterable[Transaction]) -> SpendingAnalytics:
    transactions = list(transactions)
    total_spent = sum(t.amount for t in transactions)

    totals: Dict[str, Dict[str, float]] = {}
    personal_purchases = []
    for t in transactions:
        if t.category == PERSONAL:
            personal_purchases.append(t)

        name = get_granular_category(t.category, t.description)
        entry = totals.setdefault(name, {'amount': 0.0, 'count': 0})
        entry['amount'] += t.amount
        entry['count'] += 1

    breakdown = sorted(
        (
            CategoryBreakdown(
                name=name,
                amount=data['amount'],
                percentage=round_half_up(data['amount'] / total_spent * 100) if total_spent > 0 else 0,
                count=int(data['count']),
            )
            for name, data in totals.items()
        ),
        key=lambda b: b.amount,
        reverse=True,
    )

    insights = []
    if breakdown:
        top = breakdown[0]
        insights.append(
            f"Most of your money was spent on {top.name} this month ({format_inr_grouped(top.amount)})."
        )

        food_delivery = next((b for b in breakdown if b.name == FOOD_DELIVERY), None)
        if food_delivery and food_delivery.percentage > 20:
            insights.append(
                f"You've spent {food_delivery.percentage}% of your budget on Food Delivery. "
                f"Cooking at home could save you money!"
            )

        personal = next((b for b in breakdown if b.name == PERSONAL_PURCHASES), None)
        if personal and personal.amount > total_spent * 0.15:
            insights.append(
                f"Personal purchases are higher than average ({personal.percentage}% of total)."
            )

    return SpendingAnalytics(
        total_spent=total_spent,
        breakdown=breakdown,
        top_categories=breakdown[:3],
        personal_purchases=personal_purchases,
        insights=insights,
    )


def dashboard_summary(budget: BudgetState, transactions: Iterable[Transaction],
                      now: Optional[datetime] = None):
    """Headline figures for the dashboard: totals, remaining money and spend per bucket."""
    transactions = list(transactions)
    now = now or datetime.now()
    total_spent = sum(t.amount for t in transactions)
    weekly_spent, _, current_savings = compute_spend_metrics(budget, transactions, now)
    # The dashboard shows every Monthly-bucket transaction, not only this month's
    monthly_spent = sum(t.amount for t in transactions if bucket_for(t.category) == BUCKET_MONTHLY)

    return {
        'monthlyIncome': budget.monthly_income,
        'totalSpent': total_spent,
        'remainingTotal': current_savings,
        'spentByBucket': {
            BUCKET_WEEKLY: weekly_spent,
            BUCKET_MONTHLY: monthly_spent,
            BUCKET_SAVINGS: 0,
        },
        'limits': {
            BUCKET_WEEKLY: budget.allocations.weekly_limit,
            BUCKET_MONTHLY: budget.allocations.monthly_limit,
            BUCKET_SAVINGS: budget.allocations.savings_target,
        },
    }


def weekly_category_spend(budget: BudgetState, transactions: Iterable[Transaction],
                          now: Optional[datetime] = None):
    """This week's Weekly-bucket spending split across the per-category caps."""
    now = now or datetime.now()
    weekly = [
        t for t in transactions
        if bucket_for(t.category) == BUCKET_WEEKLY and in_current_week(t, now)
    ]

    spend = {category: 0.0 for category in WEEKLY_CATEGORIES}
    for t in weekly:
        if t.category in spend:
            spend[t.category] += t.amount

    total = sum(t.amount for t in weekly)
    limit = budget.allocations.weekly_limit
    progress = min(100.0, total / limit * 100) if limit > 0 else 0.0

    return {
        'categorySpend': spend,
        'categoryLimits': {
            category: budget.allocations.weekly_category_limits.get(category, 0.0)
            for category in WEEKLY_CATEGORIES
        },
        'totalWeeklySpent': total,
        'weeklyLimit': limit,
        'remaining': limit - total,
        'progress': progress,
    }
