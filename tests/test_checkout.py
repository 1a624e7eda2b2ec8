from decimal import Decimal

import pytest

from checkout import CheckoutSession
from errors import (
    CouponIneligibleError,
    InconsistentResponseError,
    InvalidPayableAmountError,
    MissingFieldsError,
)

PAYOUT = {'id': 3, 'payment_method': 'ONLINE', 'online_type': 'FULL'}


class FakeClient:
    def __init__(self, coins=200):
        self.coins = coins
        self.calls = []

    def get_profile(self):
        self.calls.append(('get_profile',))
        return {'coins': self.coins}

    def create_payment_order(self, amount, user_id=None, **kwargs):
        self.calls.append(('create_payment_order', amount, kwargs))
        return {'id': 'order_1', 'amount': int(amount * 100), 'currency': 'INR'}

    def verify_payment(self, razorpay_order_id, razorpay_payment_id, razorpay_signature, **kwargs):
        self.calls.append(('verify_payment', razorpay_order_id, kwargs))
        return {'id': 11, 'payment_status': 'paid'}

    def place_cod_order(self, payout_id, coupon_used=False, user_id=None):
        self.calls.append(('place_cod_order', payout_id, coupon_used))
        return {'id': 12, 'payment_status': 'pending'}


def widget_ok(gateway_order):
    return {
        'razorpay_order_id': gateway_order['id'],
        'razorpay_payment_id': 'pay_1',
        'razorpay_signature': 'sig',
    }


def session(price=5000, qty=2, coins=200, payout=PAYOUT):
    client = FakeClient(coins)
    cart = [{'id': 1, 'name': 'Premium Stall', 'price': price, 'qty': qty}]
    return client, CheckoutSession(client, cart, coins, payout, user_id='user-1')


def test_ineligible_coupon_leaves_totals_untouched():
    client, s = session(coins=100)
    with pytest.raises(CouponIneligibleError):
        s.apply_coupon()
    assert s.coupon_applied is False
    assert s.quote.final_total == Decimal('10000.00')


def test_coupon_toggle_round_trip():
    client, s = session()
    assert s.apply_coupon().final_total == Decimal('8500.00')
    assert s.apply_coupon().final_total == Decimal('8500.00')
    assert s.remove_coupon().final_total == s.quote.subtotal


def test_zero_payable_never_calls_gateway():
    client, s = session(price=1000, qty=1)
    s.apply_coupon()
    with pytest.raises(InvalidPayableAmountError):
        s.pay_online(widget_ok)
    assert not any(call[0] == 'create_payment_order' for call in client.calls)


def test_coins_spent_elsewhere_block_submission():
    client, s = session(coins=200)
    s.apply_coupon()
    client.coins = 100
    with pytest.raises(CouponIneligibleError):
        s.place_cod_order()
    assert not any(call[0] == 'place_cod_order' for call in client.calls)


def test_advance_payment_flow():
    client, s = session()
    s.choose_payment('ONLINE', 'ADVANCE')
    order = s.pay_online(widget_ok)

    assert order['id'] == 11
    create = next(call for call in client.calls if call[0] == 'create_payment_order')
    assert create[1] == 2000.0
    assert create[2] == {'payout_id': 3, 'payment_type': 'ADVANCE', 'coupon_used': False}
    verify = next(call for call in client.calls if call[0] == 'verify_payment')
    assert verify[1] == 'order_1'
    assert verify[2]['payment_type'] == 'ADVANCE'
    assert verify[2]['payout_id'] == 3


def test_widget_without_signature_does_not_verify():
    client, s = session()
    with pytest.raises(InconsistentResponseError):
        s.pay_online(lambda order: {'razorpay_order_id': order['id'], 'razorpay_payment_id': 'pay_1'})
    assert not any(call[0] == 'verify_payment' for call in client.calls)


def test_cod_order_with_coupon():
    client, s = session()
    s.apply_coupon()
    assert s.place_cod_order()['id'] == 12
    assert ('place_cod_order', 3, True) in client.calls


def test_payout_is_required():
    client, s = session(payout=None)
    with pytest.raises(MissingFieldsError):
        s.place_cod_order()
