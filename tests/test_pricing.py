from decimal import Decimal

import pytest

import pricing
from errors import (
    CouponIneligibleError,
    EmptyCartError,
    InvalidCartItemError,
    InvalidPayableAmountError,
    InvalidPaymentOptionError,
)


def cart_of(price, qty=1):
    return [{'id': 1, 'name': 'Premium Stall', 'price': price, 'qty': qty}]


def test_subtotal_sums_lines():
    cart = [
        {'name': 'Premium Stall', 'price': 5000, 'qty': 2},
        {'name': 'Flower Arch', 'price': '749.50', 'qty': 1},
    ]
    assert pricing.subtotal(cart) == Decimal('10749.50')


@pytest.mark.parametrize('cart, error', [
    ([], EmptyCartError),
    (cart_of(-10), InvalidCartItemError),
    (cart_of(100, qty=0), InvalidCartItemError),
    (cart_of('abc'), InvalidCartItemError),
    ([{'name': 'No price', 'qty': 1}], InvalidCartItemError),
    (cart_of(100, qty=1.5), InvalidCartItemError),
])
def test_invalid_carts_are_rejected(cart, error):
    with pytest.raises(error):
        pricing.subtotal(cart)


@pytest.mark.parametrize('total, expected', [
    (10000, Decimal('2000')),
    (10001, Decimal('2000')),
    (10003, Decimal('2001')),
    (7.5, Decimal('2')),
])
def test_advance_rounds_half_up_to_rupees(total, expected):
    assert pricing.advance(total) == expected


def test_coupon_discount_and_toggle_off_restores_subtotal():
    cart = cart_of(5000, qty=2)
    with_coupon = pricing.quote(cart, coins=150, coupon_applied=True)
    assert with_coupon.discount == Decimal('1500.00')
    assert with_coupon.final_total == Decimal('8500.00')

    without = pricing.quote(cart, coins=150, coupon_applied=False)
    assert without.discount == Decimal('0.00')
    assert without.final_total == without.subtotal == Decimal('10000.00')


def test_coupon_needs_enough_coins():
    with pytest.raises(CouponIneligibleError):
        pricing.quote(cart_of(5000), coins=100, coupon_applied=True)
    assert not pricing.is_coupon_eligible(149)
    assert pricing.is_coupon_eligible(150)


def test_discount_never_makes_total_negative():
    q = pricing.quote(cart_of(1000), coins=500, coupon_applied=True,
                      payment_method='ONLINE', online_type='FULL')
    assert q.discount == Decimal('1000.00')
    assert q.final_total == Decimal('0.00')
    assert q.payable_now == Decimal('0.00')
    with pytest.raises(InvalidPayableAmountError):
        pricing.ensure_payable(q.payable_now)


def test_payable_now_by_payment_option():
    cart = cart_of(5000, qty=2)
    assert pricing.quote(cart, 0, payment_method='COD').payable_now == Decimal('0')
    assert pricing.quote(cart, 0, payment_method='ONLINE', online_type='FULL').payable_now == Decimal('10000.00')
    advance = pricing.quote(cart, 0, payment_method='ONLINE', online_type='ADVANCE')
    assert advance.payable_now == Decimal('2000')
    assert advance.online_type == 'ADVANCE'
    assert pricing.quote(cart, 0, payment_method='COD', online_type='ADVANCE').online_type is None


def test_unknown_payment_option():
    with pytest.raises(InvalidPaymentOptionError):
        pricing.quote(cart_of(100), 0, payment_method='CARD')
    with pytest.raises(InvalidPaymentOptionError):
        pricing.quote(cart_of(100), 0, payment_method='ONLINE', online_type='HALF')


def test_to_paise():
    assert pricing.to_paise(2000) == 200000
    assert pricing.to_paise('19.999') == 2000
    assert pricing.to_paise(Decimal('0.01')) == 1


def test_quote_as_dict_uses_plain_numbers():
    data = pricing.quote(cart_of(5000, qty=2), 0, payment_method='ONLINE', online_type='ADVANCE').as_dict()
    assert data['subtotal'] == 10000.0
    assert data['payable_now'] == 2000.0
    assert data['coupon_applied'] is False


def test_single_stall_with_coupon_and_advance():
    q = pricing.quote(cart_of(5000), coins=200, coupon_applied=True,
                      payment_method='ONLINE', online_type='ADVANCE')
    assert q.discount == Decimal('1500.00')
    assert q.final_total == Decimal('3500.00')
    assert q.payable_now == Decimal('700')


def test_mixed_cart_without_enough_coins_keeps_full_price():
    cart = [
        {'id': 1, 'name': 'Premium Stall', 'price': 2000, 'qty': 2},
        {'id': 2, 'name': 'Flower Arch', 'price': 1000, 'qty': 1},
    ]
    with pytest.raises(CouponIneligibleError):
        pricing.check_coupon(50)
    with pytest.raises(CouponIneligibleError):
        pricing.quote(cart, coins=50, coupon_applied=True)

    q = pricing.quote(cart, coins=50)
    assert q.subtotal == q.final_total == Decimal('5000.00')
    assert q.discount == Decimal('0.00')
