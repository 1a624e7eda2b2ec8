"""Pricing & coupon calculator.

Turns a cart snapshot, the loyalty-coin balance and the chosen payment option
into every money figure shown at checkout and stored on the order. All
arithmetic is done with ``Decimal``; nothing here touches the network or the
database.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from errors import (
    CouponIneligibleError,
    EmptyCartError,
    InvalidCartItemError,
    InvalidPayableAmountError,
    InvalidPaymentOptionError,
)

COUPON_COINS_REQUIRED = 150
DISCOUNT_AMOUNT = Decimal('1500')
ADVANCE_PERCENT = Decimal('0.20')

PAISE = Decimal('0.01')
RUPEE = Decimal('1')
ZERO = Decimal('0')

PAYMENT_METHODS = ('COD', 'ONLINE')
ONLINE_TYPES = ('FULL', 'ADVANCE')


def to_money(value) -> Decimal:
    if isinstance(value, bool):
        raise InvalidCartItemError('Price must be a number')
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidCartItemError('Price must be a number')
    if not amount.is_finite():
        raise InvalidCartItemError('Price must be a number')
    return amount


def to_paise(amount) -> int:
    """Rupees to the integer minor unit Razorpay expects."""
    return int((to_money(amount) * 100).quantize(RUPEE, rounding=ROUND_HALF_UP))


def _quantity(value) -> int:
    if isinstance(value, bool):
        raise InvalidCartItemError('Quantity must be a whole number')
    try:
        qty = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidCartItemError('Quantity must be a whole number')
    if not qty.is_finite() or qty != qty.to_integral_value():
        raise InvalidCartItemError('Quantity must be a whole number')
    return int(qty)


def validate_cart(cart):
    if not cart:
        raise EmptyCartError()
    for item in cart:
        name = item.get('name') or 'item'
        if item.get('price') is None:
            raise InvalidCartItemError(f'Missing price for {name}')
        if to_money(item['price']) < ZERO:
            raise InvalidCartItemError(f'Price cannot be negative for {name}')
        if _quantity(item.get('qty', 1)) < 1:
            raise InvalidCartItemError(f'Quantity must be at least 1 for {name}')


def line_total(item) -> Decimal:
    return to_money(item['price']) * _quantity(item.get('qty', 1))


def subtotal(cart) -> Decimal:
    validate_cart(cart)
    total = sum((line_total(item) for item in cart), ZERO)
    return total.quantize(PAISE, rounding=ROUND_HALF_UP)


def is_coupon_eligible(coins) -> bool:
    return int(coins or 0) >= COUPON_COINS_REQUIRED


def check_coupon(coins):
    if not is_coupon_eligible(coins):
        raise CouponIneligibleError(
            f'Need {COUPON_COINS_REQUIRED} coins to use the coupon, you have {int(coins or 0)}'
        )


def discount(sub_total, applied) -> Decimal:
    if not applied:
        return ZERO.quantize(PAISE)
    return min(DISCOUNT_AMOUNT, to_money(sub_total)).quantize(PAISE)


def final_total(sub_total, discount_amount) -> Decimal:
    return max(ZERO, to_money(sub_total) - to_money(discount_amount)).quantize(PAISE)


def advance(total) -> Decimal:
    return (to_money(total) * ADVANCE_PERCENT).quantize(RUPEE, rounding=ROUND_HALF_UP)


def check_payment_option(payment_method, online_type='FULL'):
    if payment_method not in PAYMENT_METHODS:
        raise InvalidPaymentOptionError(f'Unknown payment method: {payment_method}')
    if payment_method == 'ONLINE' and online_type not in ONLINE_TYPES:
        raise InvalidPaymentOptionError(f'Unknown online payment type: {online_type}')


def payable_now(total, payment_method, online_type='FULL') -> Decimal:
    """Amount collected through the gateway right now; COD is paid on the event day."""
    check_payment_option(payment_method, online_type)
    if payment_method == 'COD':
        return ZERO
    if online_type == 'ADVANCE':
        return advance(total)
    return to_money(total).quantize(PAISE)


def ensure_payable(amount):
    if to_money(amount) <= ZERO:
        raise InvalidPayableAmountError()


@dataclass(frozen=True)
class Quote:
    subtotal: Decimal
    discount: Decimal
    final_total: Decimal
    advance: Decimal
    payable_now: Decimal
    coupon_applied: bool
    payment_method: str
    online_type: str = None

    def as_dict(self):
        return {
            'subtotal': float(self.subtotal),
            'discount': float(self.discount),
            'final_total': float(self.final_total),
            'advance': float(self.advance),
            'payable_now': float(self.payable_now),
            'coupon_applied': self.coupon_applied,
            'payment_method': self.payment_method,
            'online_type': self.online_type,
        }


def quote(cart, coins, coupon_applied=False, payment_method='COD', online_type='FULL') -> Quote:
    """Validate the checkout inputs and compute every figure in one pass.

    Coupon eligibility is checked against ``coins`` as passed in, so callers
    re-run this with a fresh balance at submission time.
    """
    check_payment_option(payment_method, online_type)
    if coupon_applied:
        check_coupon(coins)

    sub_total = subtotal(cart)
    discount_amount = discount(sub_total, coupon_applied)
    total = final_total(sub_total, discount_amount)
    return Quote(
        subtotal=sub_total,
        discount=discount_amount,
        final_total=total,
        advance=advance(total),
        payable_now=payable_now(total, payment_method, online_type),
        coupon_applied=bool(coupon_applied),
        payment_method=payment_method,
        online_type=online_type if payment_method == 'ONLINE' else None,
    )
