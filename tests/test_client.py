import pytest
import requests

from client import StorefrontClient
from errors import InconsistentResponseError, RemoteCallError


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self.payload = payload

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self.payload is None:
            raise ValueError('no json')
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response


def make_client(**session_kwargs):
    session = FakeSession(**session_kwargs)
    return session, StorefrontClient('http://shop.test/', 'token-1', timeout=15, session=session)


def test_requests_carry_bearer_token_and_timeout():
    session, client = make_client(response=FakeResponse(200, {'success': True, 'orders': [{'id': 1}]}))
    assert client.list_orders() == [{'id': 1}]
    method, url, kwargs = session.requests[0]
    assert (method, url) == ('GET', 'http://shop.test/api/orders')
    assert kwargs['headers']['Authorization'] == 'Bearer token-1'
    assert kwargs['timeout'] == 15


def test_timeout_is_retryable():
    session, client = make_client(error=requests.exceptions.Timeout('slow'))
    with pytest.raises(RemoteCallError) as exc:
        client.list_orders()
    assert exc.value.retryable


def test_error_body_becomes_the_message():
    session, client = make_client(response=FakeResponse(409, {'success': False, 'error': 'Order is already cancelled'}))
    with pytest.raises(RemoteCallError) as exc:
        client.cancel_order(5, 'user-1')
    assert exc.value.message == 'Order is already cancelled'
    assert exc.value.status == 409
    assert not exc.value.retryable


def test_non_json_error_uses_status_code():
    session, client = make_client(response=FakeResponse(503, None))
    with pytest.raises(RemoteCallError) as exc:
        client.get_cart()
    assert '503' in exc.value.message
    assert exc.value.retryable


def test_success_without_order_is_inconsistent():
    session, client = make_client(response=FakeResponse(200, {'success': True}))
    with pytest.raises(InconsistentResponseError):
        client.mark_paid(5)


def test_admin_cancel_uses_admin_route():
    session, client = make_client(response=FakeResponse(200, {'success': True, 'order': {'id': 5}}))
    assert client.cancel_order(5, admin=True) == {'id': 5}
    assert session.requests[0][1] == 'http://shop.test/api/admin/orders/5/cancel'


def test_payment_order_sends_what_the_server_prices():
    session, client = make_client(response=FakeResponse(200, {'success': True, 'order': {'id': 'order_9'}}))
    client.create_payment_order(8500.0, 'user-1', payout_id=3, payment_type='FULL', coupon_used=True)
    method, url, kwargs = session.requests[0]
    assert url == 'http://shop.test/functions/v1/createOrder'
    assert kwargs['json'] == {'amount': 8500.0, 'user_id': 'user-1', 'payout_id': 3,
                              'payment_type': 'FULL', 'coupon_used': True}
