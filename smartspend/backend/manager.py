import csv
import io
import logging
from datetime import datetime

from .alerts import AlertCenter, dispatch_notifications, generate_alerts
from .analytics import dashboard_summary, generate_analytics, weekly_category_spend
from .archiver import TimeArchiver
from .budget_models import apply_limit_edit, suggest_allocations, validate_setup
from .models import Transaction, is_valid_category
from .parser import parse_multiple_expenses

logger = logging.getLogger(__name__)


class FinanceManager:
    """
    Per-session orchestration: parse, commit, recompute.

    Collaborators are passed in rather than created here, so one manager can
    run against a temporary store in tests and the real one in the app.
    """

    def __init__(self, storage, ai_service=None, notifier=None, clock=datetime.now):
        self.storage = storage
        self.ai_service = ai_service
        self.notifier = notifier
        self.clock = clock
        self.archiver = TimeArchiver(storage)
        self._alert_centers = {}

    def bootstrap(self, user_id):
        """Session start: archive finished periods, then load the user's data."""
        archived = self.archiver.run(user_id, self.clock())
        return {
            'budget': self.storage.load_budget(user_id),
            'transactions': self.storage.load_transactions(user_id),
            'archived': archived,
        }

    # Parsing
    def preview(self, text):
        return parse_multiple_expenses(text or '', self.clock())

    def ai_preview(self, text):
        if self.ai_service is None:
            return []
        return self.ai_service.classify_expenses(text, self.clock())

    # Budget management
    def get_budget(self, user_id):
        return self.storage.load_budget(user_id)

    def complete_setup(self, user_id, income, allocations=None):
        """Finish onboarding. Missing allocations get the 50/30/20 defaults."""
        if allocations is None:
            allocations = suggest_allocations(income)
        budget = validate_setup(income, allocations)
        self.storage.save_budget(user_id, budget)
        return budget

    def update_limit(self, user_id, key, value):
        """Change one limit. Raises BudgetValidationError and keeps the old budget on bad input."""
        budget = self.storage.load_budget(user_id)
        updated = apply_limit_edit(budget, key, value)
        self.storage.save_budget(user_id, updated)
        return updated

    # Transactions
    def add_expenses(self, user_id, items):
        """Commit parsed expenses, then recompute alerts over the full history."""
        saved = []
        for parsed in items:
            if parsed.amount is None or parsed.amount < 0 or not is_valid_category(parsed.category):
                logger.warning(f"Skipping incomplete expense: {parsed}")
                continue
            transaction = Transaction.from_parsed(parsed, self.clock())
            if self.storage.add_transaction(user_id, transaction):
                saved.append(transaction)

        alerts = generate_alerts(self.storage.load_budget(user_id),
                                 self.storage.load_transactions(user_id),
                                 self.clock())
        return saved, alerts

    async def notify(self, alerts):
        if self.notifier is None:
            return 0
        if not self.notifier.has_permission:
            await self.notifier.request_permission()
        try:
            return await dispatch_notifications(alerts, self.notifier)
        except Exception as e:
            # Delivery is best effort and must not undo a saved transaction
            logger.error(f"Failed to send notifications: {type(e).__name__}: {e}")
            return 0

    def delete_transaction(self, user_id, transaction_id):
        return self.storage.delete_transaction(user_id, transaction_id)

    def get_transactions(self, user_id, category=None):
        transactions = self.storage.load_transactions(user_id)
        if category and category != 'All':
            transactions = [t for t in transactions if t.category == category]
        return transactions

    # Alerts
    def alert_center(self, user_id):
        return self._alert_centers.setdefault(user_id, AlertCenter())

    def get_alerts(self, user_id):
        """Current alerts minus the ones dismissed in this session."""
        alerts = generate_alerts(self.storage.load_budget(user_id),
                                 self.storage.load_transactions(user_id),
                                 self.clock())
        return self.alert_center(user_id).visible(alerts)

    def dismiss_alert(self, user_id, alert_id):
        self.alert_center(user_id).dismiss(alert_id)

    # Reporting
    def get_analytics(self, user_id):
        return generate_analytics(self.storage.load_transactions(user_id))

    def get_dashboard(self, user_id):
        return dashboard_summary(self.storage.load_budget(user_id),
                                 self.storage.load_transactions(user_id),
                                 self.clock())

    def get_weekly_spending(self, user_id):
        return weekly_category_spend(self.storage.load_budget(user_id),
                                     self.storage.load_transactions(user_id),
                                     self.clock())

    def get_history(self, user_id):
        return {
            'months': self.storage.load_month_stats(user_id),
            'weeks': self.storage.load_week_stats(user_id),
        }

    def export_csv(self, user_id):
        """All transactions as CSV text. Starts with a BOM so Excel reads it as UTF-8."""
        data = io.StringIO()
        data.write('\ufeff')
        w = csv.writer(data)
        w.writerow(('ID', 'Date', 'Category', 'Amount', 'Description'))
        for t in self.storage.load_transactions(user_id):
            w.writerow((t.id, t.date, t.category, t.amount, t.description))
        return data.getvalue()
