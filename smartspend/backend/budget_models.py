import math
from dataclasses import dataclass, field, replace
from typing import Dict

from .models import is_valid_category

# Categories that get a per-category weekly cap by default
WEEKLY_CATEGORIES = ('Groceries', 'Outings', 'BodyCare', 'Orders', 'Miscellaneous', 'Petrol')

LIMIT_KEYS = ('Weekly', 'Monthly', 'Savings')


class BudgetValidationError(ValueError):
    """Raised when a budget edit would break a budget rule. The edit is not applied."""


@dataclass
class BudgetAllocations:
    weekly_limit: float = 0.0
    monthly_limit: float = 0.0
    savings_target: float = 0.0
    weekly_category_limits: Dict[str, float] = field(default_factory=dict)

    def to_dict(self):
        return {
            'weeklyLimit': self.weekly_limit,
            'monthlyLimit': self.monthly_limit,
            'savingsTarget': self.savings_target,
            'weeklyCategoryLimits': dict(self.weekly_category_limits),
        }


@dataclass
class BudgetState:
    monthly_income: float = 0.0
    allocations: BudgetAllocations = field(default_factory=BudgetAllocations)
    is_set: bool = False

    @classmethod
    def default(cls):
        return cls(
            monthly_income=0.0,
            allocations=BudgetAllocations(
                weekly_category_limits={cat: 0.0 for cat in WEEKLY_CATEGORIES}
            ),
            is_set=False,
        )

    def to_dict(self):
        return {
            'monthlyIncome': self.monthly_income,
            'allocations': self.allocations.to_dict(),
            'isSet': self.is_set,
        }

    @classmethod
    def from_dict(cls, data):
        """Build a BudgetState from a stored document, migrating older shapes."""
        raw = dict(data.get('allocations') or {})

        # Older documents tracked a daily limit instead of a weekly one
        if raw.get('weeklyLimit') is None and raw.get('dailyLimit'):
            raw['weeklyLimit'] = float(raw['dailyLimit']) * 7

        category_limits = raw.get('weeklyCategoryLimits')
        if category_limits is None:
            category_limits = {cat: 0.0 for cat in WEEKLY_CATEGORIES}

        return cls(
            monthly_income=float(data.get('monthlyIncome') or 0),
            allocations=BudgetAllocations(
                weekly_limit=float(raw.get('weeklyLimit') or 0),
                monthly_limit=float(raw.get('monthlyLimit') or 0),
                savings_target=float(raw.get('savingsTarget') or 0),
                weekly_category_limits={
                    cat: float(limit or 0)
                    for cat, limit in category_limits.items()
                    if is_valid_category(cat)
                },
            ),
            is_set=bool(data.get('isSet', False)),
        )


def suggest_allocations(income) -> BudgetAllocations:
    """Smart defaults: 50% monthly bills, 30% wants spread over 4 weeks, 20% savings."""
    try:
        income = float(income)
    except (TypeError, ValueError):
        income = 0.0
    if math.isnan(income) or income <= 0:
        return BudgetAllocations()
    return BudgetAllocations(
        weekly_limit=float(math.floor(income * 0.3 / 4)),
        monthly_limit=float(math.floor(income * 0.5)),
        savings_target=float(math.floor(income * 0.2)),
    )


def validate_setup(income, allocations: BudgetAllocations) -> BudgetState:
    """Check onboarding input and return the BudgetState to save."""
    income = _coerce_amount(income, 'Monthly income')
    if income <= 0:
        raise BudgetValidationError("Monthly income must be greater than 0")
    if allocations.weekly_limit <= 0:
        raise BudgetValidationError("Weekly limit must be greater than 0")
    if allocations.savings_target > income:
        raise BudgetValidationError(
            f"Savings goal cannot exceed monthly income (₹{income:g})"
        )
    category_limits = dict(allocations.weekly_category_limits)
    if not category_limits:
        category_limits = {cat: 0.0 for cat in WEEKLY_CATEGORIES}
    return BudgetState(
        monthly_income=income,
        allocations=replace(allocations, weekly_category_limits=category_limits),
        is_set=True,
    )


def apply_limit_edit(budget: BudgetState, key: str, value) -> BudgetState:
    """
    Return a copy of `budget` with one limit changed.

    `key` is one of Weekly, Monthly, Savings or a category name for a
    per-category weekly cap. The budget passed in is left untouched, so a
    rejected edit keeps the previous value.
    """
    value = _coerce_amount(value, key)
    if value < 0:
        raise BudgetValidationError(f"{key} limit cannot be negative")

    allocations = budget.allocations
    if key == 'Weekly':
        allocations = replace(allocations, weekly_limit=value)
    elif key == 'Monthly':
        allocations = replace(allocations, monthly_limit=value)
    elif key == 'Savings':
        if value > budget.monthly_income:
            raise BudgetValidationError(
                f"Savings goal cannot exceed monthly income (₹{budget.monthly_income:g})"
            )
        allocations = replace(allocations, savings_target=value)
    elif is_valid_category(key):
        limits = dict(allocations.weekly_category_limits)
        limits[key] = value
        allocations = replace(allocations, weekly_category_limits=limits)
    else:
        raise BudgetValidationError(f"Unknown budget limit: {key}")

    return replace(budget, allocations=allocations)


def _coerce_amount(value, label):
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise BudgetValidationError(f"{label} must be a number")
    if math.isnan(number) or math.isinf(number):
        raise BudgetValidationError(f"{label} must be a number")
    return number
