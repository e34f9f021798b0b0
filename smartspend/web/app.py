import asyncio
import logging
import math
from datetime import datetime

from flask import Flask, request, jsonify, Response
from flask_socketio import SocketIO
from werkzeug.exceptions import HTTPException

from smartspend.backend.ai_service import AIService
from smartspend.backend.budget_models import BudgetAllocations, BudgetValidationError, suggest_allocations
from smartspend.backend.config import load_settings
from smartspend.backend.dates import parse_date
from smartspend.backend.manager import FinanceManager
from smartspend.backend.models import CATEGORIES, ParsedExpense
from smartspend.backend.notifications import NullNotifier, TelegramNotifier
from smartspend.backend.storage import Storage

logger = logging.getLogger(__name__)


def build_manager(settings=None):
    settings = settings or load_settings()
    AIService.set_provider(settings.ai_provider)
    notifier = NullNotifier()
    if settings.telegram_bot_token and settings.telegram_chat_id:
        notifier = TelegramNotifier(settings.telegram_bot_token, settings.telegram_chat_id)
    return FinanceManager(
        storage=Storage(settings.db_path),
        ai_service=AIService(settings),
        notifier=notifier,
    )


def _parsed_from_json(item, now=None):
    """Validate one expense sent by the client."""
    if not isinstance(item, dict):
        raise ValueError('Each expense must be an object')
    if item.get('amount') is None or not item.get('category'):
        raise ValueError('Missing required fields')

    amount = float(item['amount'])
    if math.isnan(amount) or amount < 0:
        raise ValueError('Amount must be a non-negative number')

    category = item['category']
    if category not in CATEGORIES:
        raise ValueError(f'Invalid category: {category}')

    date = parse_date(item['date']) if item.get('date') else (now or datetime.now())
    return ParsedExpense(
        amount=amount,
        category=category,
        description=(item.get('description') or '').strip() or f"{category} expense",
        date=date,
    )


def create_app(manager=None, settings=None):
    settings = settings or load_settings()
    app = Flask(__name__)
    app.config['DEFAULT_USER'] = settings.default_user
    manager = manager or build_manager(settings)
    app.extensions['smartspend_manager'] = manager
    socketio = SocketIO(app, cors_allowed_origins="*")

    def current_user():
        return request.headers.get('X-User-Id') or app.config['DEFAULT_USER']

    def notify(alerts):
        if manager.notifier is None or not alerts:
            return
        asyncio.run(manager.notify(alerts))

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception(f"Unhandled error: {type(e).__name__}: {e}")
        return jsonify({'success': False, 'error': 'Something went wrong', 'reload': True}), 500

    @app.route('/api/bootstrap', methods=['POST'])
    def bootstrap():
        state = manager.bootstrap(current_user())
        return jsonify({
            'budget': state['budget'].to_dict(),
            'transactions': [t.to_dict() for t in state['transactions']],
            'archived': [s.to_dict() for s in state['archived']],
            # The client debounces AI previews by this many seconds
            'debounceSeconds': settings.debounce_seconds,
        })

    # Parsing
    @app.route('/api/parse', methods=['POST'])
    def parse_text():
        text = (request.json or {}).get('text')
        if not text:
            return jsonify({'error': 'No text provided'}), 400
        return jsonify({'expenses': [e.to_dict() for e in manager.preview(text)], 'source': 'heuristic'})

    @app.route('/api/ai-parse', methods=['POST'])
    def ai_parse():
        text = (request.json or {}).get('text')
        if not text:
            return jsonify({'error': 'No text provided'}), 400
        expenses = manager.ai_preview(text)
        # An empty result means keep showing the heuristic preview
        return jsonify({'expenses': [e.to_dict() for e in expenses], 'source': 'ai' if expenses else None})

    @app.route('/api/switch-model', methods=['POST'])
    def switch_model():
        provider = (request.json or {}).get('provider')
        if not provider:
            return jsonify({'error': 'No provider specified'}), 400
        if AIService.set_provider(provider):
            return jsonify({'success': True, 'provider': AIService.get_active_provider()})
        return jsonify({'error': 'Invalid provider'}), 400

    @app.route('/api/ai-info')
    def get_ai_info():
        if manager.ai_service is None:
            return jsonify({'error': 'AI not configured'}), 404
        return jsonify(manager.ai_service.get_model_info())

    # Transactions
    @app.route('/api/transactions')
    def list_transactions():
        category = request.args.get('category')
        return jsonify([t.to_dict() for t in manager.get_transactions(current_user(), category)])

    @app.route('/api/transactions', methods=['POST'])
    def add_transactions():
        data = request.json or {}
        try:
            if data.get('expenses') is not None:
                items = [_parsed_from_json(item, manager.clock()) for item in data['expenses']]
            elif data.get('text'):
                items = manager.preview(data['text'])
            else:
                return jsonify({'success': False, 'error': 'Missing required fields'}), 400
        except (ValueError, TypeError) as e:
            return jsonify({'success': False, 'error': f'Invalid data: {e}'}), 400

        if not items:
            return jsonify({'success': False, 'error': 'No expense found in input'}), 400

        saved, alerts = manager.add_expenses(current_user(), items)
        notify(alerts)
        socketio.emit('data_updated', {'type': 'transaction', 'action': 'add'})
        return jsonify({
            'success': True,
            'transactions': [t.to_dict() for t in saved],
            'alerts': [a.to_dict() for a in manager.alert_center(current_user()).visible(alerts)],
        }), 201

    @app.route('/api/transactions/<transaction_id>', methods=['DELETE'])
    def delete_transaction(transaction_id):
        manager.delete_transaction(current_user(), transaction_id)
        socketio.emit('data_updated', {'type': 'transaction', 'action': 'delete'})
        return jsonify({'success': True})

    @app.route('/export')
    def export_data():
        response = Response(manager.export_csv(current_user()), mimetype='text/csv')
        response.headers.set("Content-Disposition", "attachment", filename="transactions.csv")
        return response

    # Budget endpoints
    @app.route('/api/budget')
    def get_budget():
        return jsonify(manager.get_budget(current_user()).to_dict())

    @app.route('/api/budget', methods=['POST'])
    def setup_budget():
        data = request.json or {}
        allocations = None
        if data.get('allocations'):
            raw = data['allocations']
            try:
                allocations = BudgetAllocations(
                    weekly_limit=float(raw.get('weeklyLimit') or 0),
                    monthly_limit=float(raw.get('monthlyLimit') or 0),
                    savings_target=float(raw.get('savingsTarget') or 0),
                    weekly_category_limits={
                        k: float(v or 0) for k, v in (raw.get('weeklyCategoryLimits') or {}).items()
                        if k in CATEGORIES
                    },
                )
            except (TypeError, ValueError, AttributeError) as e:
                return jsonify({'success': False, 'error': f'Invalid data: {e}'}), 400
        try:
            budget = manager.complete_setup(current_user(), data.get('monthlyIncome'), allocations)
        except BudgetValidationError as e:
            return jsonify({'success': False, 'error': str(e)}), 400
        socketio.emit('data_updated', {'type': 'budget', 'action': 'set'})
        return jsonify({'success': True, 'budget': budget.to_dict()}), 201

    @app.route('/api/budget/limit', methods=['PUT'])
    def update_limit():
        data = request.json or {}
        if not data.get('key'):
            return jsonify({'success': False, 'error': 'Missing required fields'}), 400
        try:
            budget = manager.update_limit(current_user(), data['key'], data.get('value'))
        except BudgetValidationError as e:
            # The stored budget is unchanged; send it back so the client can revert
            return jsonify({
                'success': False,
                'error': str(e),
                'budget': manager.get_budget(current_user()).to_dict(),
            }), 400
        socketio.emit('data_updated', {'type': 'budget', 'action': 'update'})
        return jsonify({'success': True, 'budget': budget.to_dict()})

    @app.route('/api/budget/suggest')
    def suggest_budget():
        return jsonify(suggest_allocations(request.args.get('income')).to_dict())

    # Alerts
    @app.route('/api/alerts')
    def get_alerts():
        return jsonify([a.to_dict() for a in manager.get_alerts(current_user())])

    @app.route('/api/alerts/dismiss', methods=['POST'])
    def dismiss_alert():
        alert_id = (request.json or {}).get('id')
        if not alert_id:
            return jsonify({'success': False, 'error': 'No alert id provided'}), 400
        manager.dismiss_alert(current_user(), alert_id)
        return jsonify({'success': True})

    # Report endpoints
    @app.route('/api/analytics')
    def get_analytics():
        return jsonify(manager.get_analytics(current_user()).to_dict())

    @app.route('/api/dashboard')
    def get_dashboard():
        return jsonify(manager.get_dashboard(current_user()))

    @app.route('/api/weekly')
    def get_weekly():
        return jsonify(manager.get_weekly_spending(current_user()))

    @app.route('/api/history')
    def get_history():
        history = manager.get_history(current_user())
        return jsonify({
            'months': [m.to_dict() for m in history['months']],
            'weeks': [w.to_dict() for w in history['weeks']],
        })

    return app


if __name__ == '__main__':
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=logging.INFO
    )
    app = create_app()
    app.extensions['socketio'].run(app, host='0.0.0.0', port=5000, debug=True)
