"""Client-side checkout workflow.

``CheckoutSession`` holds the cart snapshot, the coin balance and the chosen
payment option for one checkout page. Coupon eligibility is checked when the
coupon is applied and again, against a freshly fetched balance, right before
an order is submitted.
"""
import logging

import pricing
from errors import InconsistentResponseError, MissingFieldsError

logger = logging.getLogger(__name__)


class CheckoutSession:
    def __init__(self, client, cart, coins, payout, user_id=None):
        self.client = client
        self.cart = list(cart)
        self.coins = int(coins or 0)
        self.payout = payout
        self.user_id = user_id
        self.coupon_applied = False
        self.payment_method = (payout or {}).get('payment_method') or 'COD'
        self.online_type = (payout or {}).get('online_type') or 'FULL'

    @property
    def quote(self):
        return pricing.quote(self.cart, self.coins, self.coupon_applied,
                             self.payment_method, self.online_type)

    def apply_coupon(self):
        pricing.check_coupon(self.coins)
        self.coupon_applied = True
        return self.quote

    def remove_coupon(self):
        self.coupon_applied = False
        return self.quote

    def choose_payment(self, payment_method, online_type='FULL'):
        pricing.check_payment_option(payment_method, online_type)
        self.payment_method = payment_method
        self.online_type = online_type
        return self.quote

    def refresh_coins(self):
        self.coins = int(self.client.get_profile().get('coins') or 0)
        return self.coins

    def _submission_quote(self):
        if not self.payout or not self.payout.get('id'):
            raise MissingFieldsError(('payout_id',), 'Please fill your event details first')
        if self.coupon_applied:
            self.refresh_coins()
        return self.quote

    def place_cod_order(self):
        self.choose_payment('COD')
        self._submission_quote()
        order = self.client.place_cod_order(self.payout['id'], self.coupon_applied, self.user_id)
        logger.info('COD order %s placed', order['id'])
        return order

    def pay_online(self, open_checkout):
        """Run the Razorpay flow.

        ``open_checkout(gateway_order)`` shows the checkout widget and returns
        the ``razorpay_order_id``/``razorpay_payment_id``/``razorpay_signature``
        the widget hands back.
        """
        if self.payment_method != 'ONLINE':
            self.choose_payment('ONLINE', self.online_type)
        quote = self._submission_quote()
        pricing.ensure_payable(quote.payable_now)

        gateway_order = self.client.create_payment_order(
            float(quote.payable_now), self.user_id,
            payout_id=self.payout['id'], payment_type=quote.online_type, coupon_used=self.coupon_applied,
        )
        response = open_checkout(gateway_order) or {}
        missing = [key for key in ('razorpay_order_id', 'razorpay_payment_id', 'razorpay_signature')
                   if not response.get(key)]
        if missing:
            raise InconsistentResponseError(f"Checkout returned without {', '.join(missing)}")

        order = self.client.verify_payment(
            response['razorpay_order_id'],
            response['razorpay_payment_id'],
            response['razorpay_signature'],
            payout_id=self.payout['id'],
            payment_type=quote.online_type,
            coupon_used=self.coupon_applied,
            user_id=self.user_id,
        )
        logger.info('Online order %s placed (%s)', order['id'], quote.online_type)
        return order
