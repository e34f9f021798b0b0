import itertools
from datetime import datetime

import pytest

from smartspend.backend.ai_service import AIService
from smartspend.backend.budget_models import BudgetAllocations, BudgetState
from smartspend.backend.config import Settings
from smartspend.backend.models import Transaction
from smartspend.backend.storage import Storage

# Wednesday of ISO week 2024-W25 (Mon 17 June - Sun 23 June)
NOW = datetime(2024, 6, 19, 12, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_tx():
    counter = itertools.count(1)

    def _make(amount, category, when=NOW, description="test"):
        n = next(counter)
        return Transaction(
            id=f"tx-{n}",
            amount=float(amount),
            category=category,
            description=description,
            date=when.isoformat(),
            timestamp=int(when.timestamp() * 1000) + n,
        )
    return _make


@pytest.fixture
def make_budget():
    def _make(income=50000, weekly=0, monthly=0, savings=0, categories=None):
        return BudgetState(
            monthly_income=income,
            allocations=BudgetAllocations(
                weekly_limit=weekly,
                monthly_limit=monthly,
                savings_target=savings,
                weekly_category_limits=dict(categories or {}),
            ),
            is_set=True,
        )
    return _make


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=str(tmp_path / "smartspend-test.db"),
        default_user="tester",
        debounce_seconds=0.0,
        ai_provider="openai",
        openai_api_key=None,
        gemini_api_key=None,
        groq_api_key=None,
        telegram_bot_token=None,
        telegram_chat_id=None,
    )


@pytest.fixture
def storage(settings):
    return Storage(settings.db_path)


@pytest.fixture(autouse=True)
def reset_ai_provider():
    # The active provider is class-level state
    yield
    AIService.set_provider("openai")
