from datetime import datetime

import pytest

from smartspend.backend.budget_models import BudgetValidationError
from smartspend.backend.manager import FinanceManager
from smartspend.backend.models import ParsedExpense


class FakeNotifier:
    def __init__(self, fail=False):
        self.has_permission = False
        self.fail = fail
        self.sent = []

    async def request_permission(self):
        self.has_permission = True
        return True

    async def send(self, title, body=None, tag=None):
        if self.fail:
            raise RuntimeError("network down")
        self.sent.append(tag)
        return True


@pytest.fixture
def manager(storage, now):
    return FinanceManager(storage, clock=lambda: now)


def test_complete_setup_uses_suggested_allocations(manager):
    budget = manager.complete_setup("u1", 50000)
    assert budget.is_set
    assert budget.allocations.weekly_limit == 3750
    assert manager.get_budget("u1") == budget


def test_invalid_setup_saves_nothing(manager):
    with pytest.raises(BudgetValidationError):
        manager.complete_setup("u1", 0)
    assert not manager.get_budget("u1").is_set


def test_rejected_limit_edit_keeps_stored_budget(manager):
    manager.complete_setup("u1", 50000)
    with pytest.raises(BudgetValidationError):
        manager.update_limit("u1", "Savings", 70000)
    assert manager.get_budget("u1").allocations.savings_target == 10000

    manager.update_limit("u1", "Savings", 20000)
    assert manager.get_budget("u1").allocations.savings_target == 20000


def test_add_expenses_saves_and_filters(manager):
    saved, _ = manager.add_expenses("u1", manager.preview("coffee 120, groceries 850"))
    assert len(saved) == 2
    assert len(manager.get_transactions("u1")) == 2
    assert [t.amount for t in manager.get_transactions("u1", "Groceries")] == [850]
    assert len(manager.get_transactions("u1", "All")) == 2


def test_incomplete_items_are_skipped(manager, now):
    saved, _ = manager.add_expenses("u1", [
        ParsedExpense(amount=None, category="Groceries", description="x", date=now),
        ParsedExpense(amount=50, category=None, description="x", date=now),
        ParsedExpense(amount=50, category="Crypto", description="x", date=now),
        ParsedExpense(amount=50, category="Groceries", description="milk", date=now),
    ])
    assert [t.description for t in saved] == ["milk"]
    assert len(manager.get_transactions("u1")) == 1


def test_add_expenses_returns_fresh_alerts(manager):
    manager.complete_setup("u1", 40000)  # weekly limit 3000
    _, alerts = manager.add_expenses("u1", manager.preview("groceries 3500"))
    assert "weekly-critical-2024-06-19" in [a.id for a in alerts]


def test_dismissed_alerts_stay_hidden(manager):
    manager.complete_setup("u1", 40000)
    manager.add_expenses("u1", manager.preview("groceries 3500"))
    manager.dismiss_alert("u1", "weekly-critical-2024-06-19")
    assert "weekly-critical-2024-06-19" not in [a.id for a in manager.get_alerts("u1")]
    # Dismissal is per user
    assert manager.alert_center("u2").dismissed == set()


def test_delete_transaction(manager):
    saved, _ = manager.add_expenses("u1", manager.preview("coffee 120"))
    manager.delete_transaction("u1", saved[0].id)
    assert manager.get_transactions("u1") == []


def test_export_csv(manager):
    manager.add_expenses("u1", manager.preview("coffee 120"))
    lines = manager.export_csv("u1").splitlines()
    assert lines[0] == "\ufeffID,Date,Category,Amount,Description"
    assert lines[1].endswith(",2024-06-19T12:00:00,Outings,120.0,Coffee")


def test_bootstrap_returns_state_and_archives(storage, make_tx):
    manager = FinanceManager(storage, clock=lambda: datetime(2024, 6, 19))
    assert manager.bootstrap("u1")["archived"] == []

    storage.add_transaction("u1", make_tx(100, "Groceries", when=datetime(2024, 6, 18)))
    manager.clock = lambda: datetime(2024, 7, 2)
    state = manager.bootstrap("u1")
    assert len(state["transactions"]) == 1
    assert {type(s).__name__ for s in state["archived"]} == {"WeeklyStats", "MonthlyStats"}
    history = manager.get_history("u1")
    assert history["months"][0].total_spent == 100


def test_ai_preview_without_service_is_empty(manager):
    assert manager.ai_preview("coffee 120") == []


@pytest.mark.asyncio
async def test_notify_requests_permission_and_sends(storage, now):
    notifier = FakeNotifier()
    manager = FinanceManager(storage, notifier=notifier, clock=lambda: now)
    manager.complete_setup("u1", 40000)
    _, alerts = manager.add_expenses("u1", manager.preview("groceries 3500"))

    assert await manager.notify(alerts) == len(alerts)
    assert notifier.has_permission
    assert notifier.sent == [a.id for a in alerts]


@pytest.mark.asyncio
async def test_notify_failures_are_swallowed(storage, now):
    manager = FinanceManager(storage, notifier=FakeNotifier(fail=True), clock=lambda: now)
    manager.complete_setup("u1", 40000)
    _, alerts = manager.add_expenses("u1", manager.preview("groceries 3500"))

    assert await manager.notify(alerts) == 0
    assert len(manager.get_transactions("u1")) == 1
