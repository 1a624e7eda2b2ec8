"""Razorpay integration: order creation, refunds and signature checks."""
import hashlib
import hmac
import logging
import time

import razorpay
import requests

import config
from errors import InconsistentResponseError, RemoteCallError

logger = logging.getLogger(__name__)

GATEWAY_ERRORS = (
    razorpay.errors.BadRequestError,
    razorpay.errors.GatewayError,
    razorpay.errors.ServerError,
    requests.exceptions.RequestException,
)

_client = None


def has_payment_keys():
    return bool(config.RAZORPAY_KEY_ID and config.RAZORPAY_KEY_SECRET)


def get_client():
    global _client
    if not has_payment_keys():
        raise RemoteCallError('Missing Razorpay credentials', status=500, retryable=False)
    if _client is None:
        _client = razorpay.Client(auth=(config.RAZORPAY_KEY_ID, config.RAZORPAY_KEY_SECRET))
        _client.set_app_details({'title': 'klstall-storefront', 'version': '1.0'})
        logger.info('Razorpay client initialized; key_id: %s****', config.RAZORPAY_KEY_ID[:8])
    return _client


def _hmac_hex(secret, payload):
    if isinstance(payload, str):
        payload = payload.encode('utf-8')
    return hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).hexdigest()


def payment_signature(order_id, payment_id, secret=None):
    """HMAC-SHA256 hex of ``order_id|payment_id``, the scheme Razorpay Checkout signs with."""
    return _hmac_hex(secret or config.RAZORPAY_KEY_SECRET, f'{order_id}|{payment_id}')


def verify_signature(order_id, payment_id, signature, secret=None):
    secret = secret or config.RAZORPAY_KEY_SECRET
    if not (secret and order_id and payment_id and signature):
        return False
    return hmac.compare_digest(payment_signature(order_id, payment_id, secret), signature)


def verify_webhook(body, signature, secret=None):
    secret = secret or config.RAZORPAY_WEBHOOK_SECRET
    if not (secret and signature):
        return False
    return hmac.compare_digest(_hmac_hex(secret, body), signature)


def create_gateway_order(amount_paise, user_id=None):
    try:
        order = get_client().order.create({
            'amount': amount_paise,
            'currency': config.CURRENCY,
            'receipt': f'receipt_{int(time.time() * 1000)}',
            'notes': {'user_id': user_id or 'unknown'},
        })
    except GATEWAY_ERRORS as e:
        logger.exception('Razorpay order creation failed for user %s', user_id)
        raise RemoteCallError(f'Unable to start payment: {e}')

    if not order or not order.get('id'):
        raise InconsistentResponseError('Payment gateway returned no order id')
    logger.info('Razorpay order %s created for %s paise', order['id'], amount_paise)
    return order


def refund_payment(payment_id, amount_paise):
    try:
        refund = get_client().payment.refund(payment_id, {'amount': amount_paise})
    except GATEWAY_ERRORS as e:
        logger.exception('Razorpay refund failed for payment %s', payment_id)
        raise RemoteCallError(f'Refund request failed: {e}')

    if not refund or not refund.get('id'):
        raise InconsistentResponseError('Payment gateway returned no refund id')
    logger.info('Refund %s requested for payment %s (%s)', refund['id'], payment_id, refund.get('status'))
    return refund
