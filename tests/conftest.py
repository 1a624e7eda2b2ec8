import pytest

import app as app_module
import auth
import config
import payments
import storage

USERS = {
    'user-token': {'id': 'user-1', 'email': 'asha@example.com', 'user_metadata': {'full_name': 'Asha'}},
    'other-token': {'id': 'user-2', 'email': 'ravi@example.com', 'user_metadata': {'full_name': 'Ravi'}},
    'admin-token': {'id': 'admin-1', 'email': 'owner@example.com', 'user_metadata': {'full_name': 'Owner'}},
}

WEBHOOK_SECRET = 'whsec_test'
KEY_SECRET = 'rzp_secret_test'


def auth_headers(token='user-token'):
    return {'Authorization': f'Bearer {token}'}


def set_coins(user_id, coins):
    storage.ensure_profile(user_id)
    with storage.connect() as conn:
        conn.execute('UPDATE profiles SET coins = ? WHERE id = ?', (coins, user_id))


def make_package(title='Premium Stall', price=5000, is_active=1):
    return storage.create_package({'title': title, 'price': price, 'is_active': is_active})['data']


class FakeOrders:
    def __init__(self, gateway):
        self.gateway = gateway

    def create(self, data):
        self.gateway.created.append(data)
        return {'id': f'order_test{len(self.gateway.created)}', 'amount': data['amount'], 'currency': data['currency']}


class FakePayments:
    def __init__(self, gateway):
        self.gateway = gateway

    def refund(self, payment_id, data):
        self.gateway.refunds.append((payment_id, data))
        if self.gateway.refund_error:
            raise self.gateway.refund_error
        return {'id': f'rfnd_{len(self.gateway.refunds)}', 'status': self.gateway.refund_status}


class FakeGateway:
    """Stands in for ``razorpay.Client``."""

    def __init__(self):
        self.created = []
        self.refunds = []
        self.refund_status = 'pending'
        self.refund_error = None
        self.order = FakeOrders(self)
        self.payment = FakePayments(self)


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(config, 'DATABASE_PATH', str(tmp_path / 'storefront.db'))
    storage.init_db()
    return config.DATABASE_PATH


@pytest.fixture
def gateway(monkeypatch):
    fake = FakeGateway()
    monkeypatch.setattr(payments, 'get_client', lambda: fake)
    return fake


@pytest.fixture
def client(db, monkeypatch):
    def fake_fetch(token):
        user = USERS.get(token)
        if user is None:
            return {'success': False, 'message': 'Invalid or expired session', 'status': 401}
        return {'success': True, 'user': user}

    monkeypatch.setattr(auth, 'fetch_supabase_user', fake_fetch)
    monkeypatch.setattr(config, 'EMAIL_USER', None)
    monkeypatch.setattr(config, 'EMAIL_PASS', None)
    monkeypatch.setattr(config, 'RAZORPAY_KEY_SECRET', KEY_SECRET)
    monkeypatch.setattr(config, 'RAZORPAY_WEBHOOK_SECRET', WEBHOOK_SECRET)

    storage.ensure_profile('admin-1', 'owner@example.com', 'Owner')
    with storage.connect() as conn:
        conn.execute('UPDATE profiles SET is_admin = 1 WHERE id = ?', ('admin-1',))

    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as test_client:
        yield test_client
