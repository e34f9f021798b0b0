import pytest

from smartspend.backend.ai_service import AIService
from smartspend.backend.manager import FinanceManager
from smartspend.web.app import create_app


@pytest.fixture
def client(storage, settings, now):
    manager = FinanceManager(storage, clock=lambda: now)
    app = create_app(manager=manager, settings=settings)
    app.config['TESTING'] = True
    return app.test_client()


def setup_budget(client, income=40000):
    return client.post('/api/budget', json={'monthlyIncome': income})


def test_bootstrap(client):
    data = client.post('/api/bootstrap').get_json()
    assert data['budget']['isSet'] is False
    assert data['transactions'] == []
    assert data['archived'] == []
    assert data['debounceSeconds'] == 0.0


def test_budget_setup_and_suggestions(client):
    res = setup_budget(client, 50000)
    assert res.status_code == 201
    assert res.get_json()['budget']['allocations']['weeklyLimit'] == 3750

    suggested = client.get('/api/budget/suggest?income=40000').get_json()
    assert suggested == {'weeklyLimit': 3000, 'monthlyLimit': 20000,
                         'savingsTarget': 8000, 'weeklyCategoryLimits': {}}


def test_budget_setup_with_explicit_allocations(client):
    res = client.post('/api/budget', json={
        'monthlyIncome': 30000,
        'allocations': {'weeklyLimit': 2000, 'monthlyLimit': 10000, 'savingsTarget': 5000,
                        'weeklyCategoryLimits': {'Groceries': 800, 'Bogus': 5}},
    })
    allocations = res.get_json()['budget']['allocations']
    assert allocations['weeklyLimit'] == 2000
    assert allocations['weeklyCategoryLimits'] == {'Groceries': 800}


def test_invalid_budget_setup(client):
    assert setup_budget(client, 0).status_code == 400


def test_limit_edit_rejected_returns_previous_budget(client):
    setup_budget(client, 50000)
    res = client.put('/api/budget/limit', json={'key': 'Savings', 'value': 99999})
    assert res.status_code == 400
    assert res.get_json()['budget']['allocations']['savingsTarget'] == 10000

    res = client.put('/api/budget/limit', json={'key': 'Weekly', 'value': 4000})
    assert res.get_json()['budget']['allocations']['weeklyLimit'] == 4000


def test_parse_preview(client):
    data = client.post('/api/parse', json={'text': 'coffee 120'}).get_json()
    assert data['source'] == 'heuristic'
    assert data['expenses'][0]['amount'] == 120
    assert data['expenses'][0]['category'] == 'Outings'

    assert client.post('/api/parse', json={}).status_code == 400


def test_ai_parse_without_ai_keeps_heuristic(client):
    data = client.post('/api/ai-parse', json={'text': 'coffee 120'}).get_json()
    assert data == {'expenses': [], 'source': None}
    assert client.get('/api/ai-info').status_code == 404


def test_switch_model(client):
    res = client.post('/api/switch-model', json={'provider': 'gemini'})
    assert res.get_json() == {'success': True, 'provider': 'gemini'}
    assert AIService.get_active_provider() == 'gemini'
    assert client.post('/api/switch-model', json={'provider': 'bogus'}).status_code == 400


def test_add_list_and_delete_transactions(client):
    res = client.post('/api/transactions', json={
        'expenses': [{'amount': 120, 'category': 'Outings', 'description': 'Coffee'}],
    })
    assert res.status_code == 201
    tx = res.get_json()['transactions'][0]
    assert tx['date'] == '2024-06-19T12:00:00'

    assert [t['id'] for t in client.get('/api/transactions').get_json()] == [tx['id']]
    assert client.delete(f"/api/transactions/{tx['id']}").get_json() == {'success': True}
    assert client.get('/api/transactions').get_json() == []


def test_add_transactions_from_text(client):
    res = client.post('/api/transactions', json={'text': 'groceries 850, petrol 1200'})
    assert res.status_code == 201
    assert len(res.get_json()['transactions']) == 2
    categories = client.get('/api/transactions?category=Petrol').get_json()
    assert [t['amount'] for t in categories] == [1200]


@pytest.mark.parametrize('payload', [
    {'expenses': [{'amount': -5, 'category': 'Outings'}]},
    {'expenses': [{'amount': 'nan', 'category': 'Outings'}]},
    {'expenses': [{'amount': 10, 'category': 'Crypto'}]},
    {'expenses': [{'amount': 'ten', 'category': 'Outings'}]},
    {'text': 'no amount here'},
    {},
])
def test_invalid_transactions_are_rejected(client, payload):
    res = client.post('/api/transactions', json=payload)
    assert res.status_code == 400
    assert res.get_json()['success'] is False
    assert client.get('/api/transactions').get_json() == []


def test_alerts_and_dismissal(client):
    setup_budget(client, 40000)
    res = client.post('/api/transactions', json={'text': 'groceries 3500'})
    ids = [a['id'] for a in res.get_json()['alerts']]
    assert 'weekly-critical-2024-06-19' in ids

    client.post('/api/alerts/dismiss', json={'id': 'weekly-critical-2024-06-19'})
    ids = [a['id'] for a in client.get('/api/alerts').get_json()]
    assert 'weekly-critical-2024-06-19' not in ids


def test_user_header_separates_data(client):
    client.post('/api/transactions', json={'text': 'coffee 120'}, headers={'X-User-Id': 'alice'})
    assert client.get('/api/transactions').get_json() == []
    assert len(client.get('/api/transactions', headers={'X-User-Id': 'alice'}).get_json()) == 1


def test_reports(client):
    setup_budget(client, 40000)
    client.post('/api/transactions', json={'text': 'zomato 600, electricity bill 400'})

    analytics = client.get('/api/analytics').get_json()
    assert analytics['totalSpent'] == 1000
    assert analytics['breakdown'][0]['name'] == 'Food Delivery'

    dashboard = client.get('/api/dashboard').get_json()
    assert dashboard['spentByBucket'] == {'Weekly': 600, 'Monthly': 400, 'Savings': 0}

    weekly = client.get('/api/weekly').get_json()
    assert weekly['totalWeeklySpent'] == 600

    assert client.get('/api/history').get_json() == {'months': [], 'weeks': []}


def test_export_csv(client):
    client.post('/api/transactions', json={'text': 'coffee 120'})
    res = client.get('/export')
    assert res.mimetype == 'text/csv'
    assert 'attachment' in res.headers['Content-Disposition']
    assert 'Coffee' in res.get_data(as_text=True)


def test_zero_amount_is_a_valid_expense(client):
    res = client.post('/api/transactions', json={
        'expenses': [{'amount': 0, 'category': 'Groceries', 'description': 'Free sample'}],
    })
    assert res.status_code == 201
    assert [t['amount'] for t in res.get_json()['transactions']] == [0]
