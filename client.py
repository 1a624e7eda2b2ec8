"""HTTP client for the storefront API, used by the checkout and order-board workflows."""
import logging
from typing import Optional

import requests

import config
from errors import InconsistentResponseError, RemoteCallError

logger = logging.getLogger(__name__)


class StorefrontClient:
    def __init__(self, base_url: str, access_token: Optional[str] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.access_token = access_token
        self.timeout = timeout or config.CLIENT_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _headers(self):
        headers = {'Content-Type': 'application/json'}
        if self.access_token:
            headers['Authorization'] = f'Bearer {self.access_token}'
        return headers

    def _request(self, method, path, payload=None):
        url = f'{self.base_url}{path}'
        try:
            resp = self.session.request(
                method, url, json=payload, headers=self._headers(), timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            logger.warning('%s %s timed out after %ss', method, path, self.timeout)
            raise RemoteCallError('Request timed out, please try again', retryable=True)
        except requests.exceptions.RequestException as e:
            logger.warning('%s %s failed: %s', method, path, e)
            raise RemoteCallError(f'Network error: {e}')

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if not resp.ok or data.get('success') is False:
            message = data.get('error') or data.get('message') or f'Request failed with status {resp.status_code}'
            raise RemoteCallError(message, status=resp.status_code if not resp.ok else None,
                                  retryable=resp.status_code >= 500)
        return data

    @staticmethod
    def _order_from(data):
        order = data.get('order')
        if not order or order.get('id') is None:
            raise InconsistentResponseError('Server response did not include the order')
        return order

    # ==================== PROFILE & CART ====================

    def get_profile(self):
        data = self._request('GET', '/api/profile')
        if not data.get('profile'):
            raise InconsistentResponseError('Server response did not include the profile')
        return data['profile']

    def get_cart(self):
        return self._request('GET', '/api/cart').get('items', [])

    # ==================== ORDERS ====================

    def list_orders(self, admin=False):
        path = '/api/admin/orders' if admin else '/api/orders'
        return self._request('GET', path).get('orders', [])

    def cancel_order(self, order_id, user_id=None, admin=False):
        if admin:
            data = self._request('POST', f'/api/admin/orders/{order_id}/cancel')
        else:
            data = self._request('POST', '/functions/v1/cancelOrder', {'order_id': order_id, 'user_id': user_id})
        return self._order_from(data)

    def return_order(self, order_id):
        return self._order_from(self._request('POST', f'/api/orders/{order_id}/return'))

    def mark_paid(self, order_id):
        return self._order_from(self._request('PUT', f'/api/admin/orders/{order_id}/mark-paid'))

    # ==================== CHECKOUT ====================

    def create_payment_order(self, amount, user_id=None, payout_id=None, payment_type=None, coupon_used=False):
        """Start a Razorpay order for ``amount`` rupees; returns ``{id, amount, currency}``.

        With ``payout_id`` the server prices the cart first and refuses a mismatched amount.
        """
        data = self._request('POST', '/functions/v1/createOrder', {
            'amount': amount,
            'user_id': user_id,
            'payout_id': payout_id,
            'payment_type': payment_type,
            'coupon_used': bool(coupon_used),
        })
        order = data.get('order') or {}
        if not order.get('id'):
            raise InconsistentResponseError('Payment order was created without an id')
        return order

    def verify_payment(self, razorpay_order_id, razorpay_payment_id, razorpay_signature,
                       payout_id, payment_type, coupon_used=False, user_id=None):
        data = self._request('POST', '/functions/v1/verifyPayment', {
            'razorpay_order_id': razorpay_order_id,
            'razorpay_payment_id': razorpay_payment_id,
            'razorpay_signature': razorpay_signature,
            'payout_id': payout_id,
            'payment_type': payment_type,
            'coupon_used': bool(coupon_used),
            'user_id': user_id,
        })
        return self._order_from(data)

    def place_cod_order(self, payout_id, coupon_used=False, user_id=None):
        data = self._request('POST', '/functions/v1/placeCodOrder', {
            'payout_id': payout_id,
            'coupon_used': bool(coupon_used),
            'user_id': user_id,
        })
        return self._order_from(data)
