import logging
from io import BytesIO

from flask import Flask, g, jsonify, request, send_file
from flask_cors import CORS

import config
import invoice
import lifecycle
import mailer
import payments
import pricing
import storage
from auth import require_admin, require_user
from chatbot import ChatBot, default_provider
from errors import (
    DataAccessError,
    ForbiddenError,
    IllegalTransitionError,
    InconsistentResponseError,
    InvalidPayableAmountError,
    MissingFieldsError,
    NotFoundError,
    RemoteCallError,
    StorefrontError,
    ValidationError,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

chat_bot = ChatBot(default_provider())

PAYOUT_REQUIRED_FIELDS = ('name', 'phone', 'event_date', 'event_time', 'event_place', 'address', 'pincode')
LANGUAGES = ('en', 'ta')


@app.errorhandler(StorefrontError)
def handle_storefront_error(error):
    if error.status >= 500:
        logger.warning('%s on %s %s: %s', type(error).__name__, request.method, request.path, error.message)
    return jsonify(error.to_dict()), error.status


def _data(result, not_found=None):
    """Unwrap a storage result dict, turning failures into HTTP errors at this boundary."""
    if not result['success']:
        raise DataAccessError(result['message'], status=result['status'])
    if not_found and result['data'] is None:
        raise NotFoundError(not_found)
    return result['data']


def _flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes')
    return bool(value)


def _check_body_user(data):
    user_id = data.get('user_id')
    if user_id and user_id != g.user['id']:
        raise ForbiddenError('user_id does not match the signed-in user')


def _with_badge(order, is_admin=False):
    return dict(order, badge=lifecycle.badge(order, is_admin).as_dict())


@app.route('/api/health', methods=['GET'])
def health():
    return jsonify({
        'success': True,
        'payments': payments.has_payment_keys(),
        'mail': mailer.mail_configured(),
        'chatbot': chat_bot.provider is not None,
    })


# ==================== PACKAGES ====================

def _package_payload(data, partial=False):
    payload = {}
    if 'title' in data or not partial:
        title = (data.get('title') or '').strip()
        if not title:
            raise MissingFieldsError(('title',), 'Package title is required')
        payload['title'] = title
    if 'price' in data or not partial:
        try:
            price = float(data.get('price'))
        except (TypeError, ValueError):
            raise ValidationError('Price must be a valid number')
        if price < 0:
            raise ValidationError('Price cannot be negative')
        payload['price'] = price
    for field in ('description', 'image', 'category'):
        if field in data:
            payload[field] = (data.get(field) or '').strip()
    if 'is_active' in data:
        payload['is_active'] = 1 if _flag(data['is_active']) else 0
    return payload


@app.route('/api/packages', methods=['GET'])
def list_packages():
    return jsonify({'success': True, 'packages': _data(storage.list_packages())})


@app.route('/api/admin/packages', methods=['GET'])
@require_admin
def admin_list_packages():
    return jsonify({'success': True, 'packages': _data(storage.list_packages(active_only=False))})


@app.route('/api/admin/packages', methods=['POST'])
@require_admin
def create_package():
    package = _data(storage.create_package(_package_payload(request.json or {})))
    logger.info('Package %s created by %s', package['id'], g.user['id'])
    return jsonify({'success': True, 'package': package}), 201


@app.route('/api/admin/packages/<int:package_id>', methods=['PUT'])
@require_admin
def update_package(package_id):
    payload = _package_payload(request.json or {}, partial=True)
    package = _data(storage.update_package(package_id, payload), 'Package not found')
    return jsonify({'success': True, 'package': package})


@app.route('/api/admin/packages/<int:package_id>', methods=['DELETE'])
@require_admin
def delete_package(package_id):
    if not _data(storage.delete_package(package_id)):
        raise NotFoundError('Package not found')
    return jsonify({'success': True, 'message': 'Package deleted'})


# ==================== CART ====================

def _cart_response(user_id, **extra):
    items = _data(storage.get_cart(user_id))
    total = pricing.subtotal(items) if items else pricing.ZERO
    return jsonify({'success': True, 'items': items, 'subtotal': float(total), **extra})


@app.route('/api/cart', methods=['GET'])
@require_user
def get_cart():
    return _cart_response(g.user['id'])


@app.route('/api/cart', methods=['POST'])
@require_user
def add_to_cart():
    data = request.json or {}
    if not data.get('package_id'):
        raise MissingFieldsError(('package_id',))
    qty = data.get('qty', 1)
    if not isinstance(qty, int) or isinstance(qty, bool) or qty < 1:
        raise ValidationError('Quantity must be at least 1')

    package = _data(storage.get_package(data['package_id']), 'Package not found')
    if not package['is_active']:
        raise ValidationError('This package is not available right now')

    item = _data(storage.add_to_cart(g.user['id'], package, qty))
    return _cart_response(g.user['id'], item=item)


@app.route('/api/cart/<int:item_id>', methods=['PUT'])
@require_user
def update_cart_item(item_id):
    qty = (request.json or {}).get('qty')
    if not isinstance(qty, int) or isinstance(qty, bool) or qty < 1:
        raise ValidationError('Quantity must be at least 1')
    item = _data(storage.update_cart_qty(g.user['id'], item_id, qty), 'Cart item not found')
    return _cart_response(g.user['id'], item=item)


@app.route('/api/cart/<int:item_id>', methods=['DELETE'])
@require_user
def remove_cart_item(item_id):
    if not _data(storage.remove_cart_item(g.user['id'], item_id)):
        raise NotFoundError('Cart item not found')
    return _cart_response(g.user['id'])


@app.route('/api/cart', methods=['DELETE'])
@require_user
def clear_cart():
    _data(storage.clear_cart(g.user['id']))
    return _cart_response(g.user['id'])


# ==================== PROFILE & CHECKOUT ====================

@app.route('/api/profile', methods=['GET'])
@require_user
def get_profile():
    return jsonify({'success': True, 'profile': g.user})


@app.route('/api/profile', methods=['PUT'])
@require_user
def update_profile():
    data = request.json or {}
    fields = {k: (data.get(k) or '').strip() for k in storage.PROFILE_EDITABLE_FIELDS if k in data}
    profile = _data(storage.update_profile(g.user['id'], fields))
    return jsonify({'success': True, 'profile': profile})


@app.route('/api/preferences', methods=['GET'])
@require_user
def get_preferences():
    return jsonify({'success': True, 'preferences': _data(storage.get_preferences(g.user['id']))})


@app.route('/api/preferences', methods=['PUT'])
@require_user
def update_preferences():
    data = request.json or {}
    fields = {}
    if 'language' in data:
        if data['language'] not in LANGUAGES:
            raise ValidationError(f"Language must be one of: {', '.join(LANGUAGES)}")
        fields['language'] = data['language']
    for flag in ('notifications', 'chatbot_enabled'):
        if flag in data:
            if not isinstance(data[flag], bool):
                raise ValidationError(f'{flag} must be true or false')
            fields[flag] = data[flag]

    prefs = _data(storage.save_preferences(g.user['id'], fields))
    return jsonify({'success': True, 'preferences': prefs})


@app.route('/api/payout', methods=['POST'])
@require_user
def create_payout():
    data = request.json or {}
    data.setdefault('phone', data.get('number'))
    missing = [field for field in PAYOUT_REQUIRED_FIELDS if not str(data.get(field) or '').strip()]
    if missing:
        raise MissingFieldsError(missing)

    payment_method = data.get('payment_method') or 'COD'
    online_type = (data.get('online_type') or 'FULL') if payment_method == 'ONLINE' else None
    cart = _data(storage.get_cart(g.user['id']))
    quote = pricing.quote(cart, g.user['coins'], False, payment_method, online_type or 'FULL')

    payload = {k: str(data.get(k) or '').strip() for k in PAYOUT_REQUIRED_FIELDS}
    payload.update(
        nearby_location=(data.get('nearby_location') or '').strip(),
        payment_method=payment_method,
        online_type=online_type,
    )
    payout = _data(storage.create_payout(g.user['id'], payload))
    return jsonify({'success': True, 'payout': payout, 'quote': quote.as_dict()}), 201


@app.route('/api/checkout/quote', methods=['POST'])
@require_user
def checkout_quote():
    data = request.json or {}
    cart = _data(storage.get_cart(g.user['id']))
    quote = pricing.quote(
        cart,
        g.user['coins'],
        _flag(data.get('coupon_applied')),
        data.get('payment_method') or 'COD',
        data.get('online_type') or 'FULL',
    )
    return jsonify({
        'success': True,
        'quote': quote.as_dict(),
        'coins': g.user['coins'],
        'coupon_eligible': pricing.is_coupon_eligible(g.user['coins']),
    })


def _build_order(user, payout_id, coupon_used, payment_method, payment_type=None):
    """Price the user's current cart against fresh coins and return ``(quote, record)``."""
    if not payout_id:
        raise MissingFieldsError(('payout_id',))
    payout = _data(storage.get_payout(user['id'], payout_id), 'Payout details not found')
    cart = _data(storage.get_cart(user['id']))
    profile = _data(storage.get_profile(user['id']), 'Profile not found')

    quote = pricing.quote(cart, profile['coins'], _flag(coupon_used), payment_method, payment_type or 'FULL')
    record = {
        'user_id': user['id'],
        'payout_id': payout['id'],
        'items': [
            {
                'id': item['id'],
                'package_id': item.get('package_id'),
                'name': item['name'],
                'price': item['price'],
                'qty': item['qty'],
                'image': item.get('image') or '',
            }
            for item in cart
        ],
        'total': float(quote.subtotal),
        'discount_applied': quote.coupon_applied,
        'discount_amount': float(quote.discount),
        'final_total': float(quote.final_total),
        'payment_method': payment_method,
        'payment_type': quote.online_type,
        'customer_name': payout['name'],
        'customer_phone': payout['phone'],
        'event_date': payout['event_date'],
        'event_time': payout['event_time'],
        'event_place': payout['event_place'],
        'address': payout['address'],
        'pincode': payout['pincode'],
    }
    return quote, record


def _store_order(record):
    order = _data(storage.create_order(record))
    logger.info('Order %s created for %s (%s, %s)', order['id'], order['user_id'],
                order['payment_method'], order['final_total'])
    mailer.send_order_notification(order)
    return order


# ==================== PAYMENT FUNCTIONS ====================

@app.route('/functions/v1/createOrder', methods=['POST'])
@require_user
def create_payment_order():
    data = request.json or {}
    _check_body_user(data)
    if data.get('amount') is None:
        raise MissingFieldsError(('amount',))
    try:
        amount_paise = pricing.to_paise(data['amount'])
    except ValidationError:
        raise InvalidPayableAmountError()
    if amount_paise <= 0:
        raise InvalidPayableAmountError()

    # verifyPayment repeats this check after capture
    if data.get('payout_id'):
        quote, _ = _build_order(g.user, data['payout_id'], data.get('coupon_used'), 'ONLINE',
                                data.get('payment_type') or 'FULL')
        if pricing.to_paise(quote.payable_now) != amount_paise:
            raise IllegalTransitionError('Amount does not match the order total')

    order = payments.create_gateway_order(amount_paise, g.user['id'])
    _data(storage.record_gateway_order(order['id'], g.user['id'], amount_paise))
    return jsonify({
        'success': True,
        'order': {
            'id': order['id'],
            'amount': order.get('amount', amount_paise),
            'currency': order.get('currency', config.CURRENCY),
        },
        'key_id': config.RAZORPAY_KEY_ID,
    })


def _refund_unplaced_payment(gateway_order, payment_id, reason):
    """Give back a captured payment that cannot become an order."""
    rzp_order_id = gateway_order['razorpay_order_id']
    try:
        refund = payments.refund_payment(payment_id, gateway_order['amount_paise'])
    except RemoteCallError:
        logger.error('Payment %s on %s was rejected (%s) and could not be refunded',
                     payment_id, rzp_order_id, reason.message)
        raise RemoteCallError(f'{reason.message}. The payment could not be refunded yet, please try again.')

    _data(storage.record_gateway_refund(rzp_order_id, payment_id, refund['id'], refund.get('status') or 'pending'))
    logger.warning('Payment %s on %s refunded as %s: %s', payment_id, rzp_order_id, refund['id'], reason.message)
    return refund


@app.route('/functions/v1/verifyPayment', methods=['POST'])
@require_user
def verify_payment():
    data = request.json or {}
    _check_body_user(data)
    required = ('razorpay_order_id', 'razorpay_payment_id', 'razorpay_signature', 'payout_id')
    missing = [field for field in required if not data.get(field)]
    if missing:
        raise MissingFieldsError(missing)

    rzp_order_id = data['razorpay_order_id']
    if not payments.verify_signature(rzp_order_id, data['razorpay_payment_id'], data['razorpay_signature']):
        logger.warning('Invalid payment signature for %s from %s', rzp_order_id, g.user['id'])
        raise ValidationError('Invalid signature')

    gateway_order = _data(storage.get_gateway_order(rzp_order_id))
    if not gateway_order or gateway_order['user_id'] != g.user['id']:
        raise NotFoundError('Payment order not found')

    existing = _data(storage.find_order(razorpay_order_id=rzp_order_id))
    if existing:
        return jsonify({'success': True, 'order': existing})
    if gateway_order.get('refund_id'):
        raise IllegalTransitionError('This payment was already refunded')

    try:
        quote, record = _build_order(
            g.user, data['payout_id'], data.get('coupon_used'), 'ONLINE', data.get('payment_type') or 'FULL'
        )
        if pricing.to_paise(quote.payable_now) != gateway_order['amount_paise']:
            logger.warning('Paid amount %s paise does not match quote %s for %s',
                           gateway_order['amount_paise'], quote.payable_now, rzp_order_id)
            raise IllegalTransitionError('Paid amount does not match the order total')
    except (ValidationError, NotFoundError, IllegalTransitionError) as e:
        _refund_unplaced_payment(gateway_order, data['razorpay_payment_id'], e)
        raise StorefrontError(f'{e.message}. Your payment has been refunded.', status=e.status) from e

    record.update(
        amount_paid=float(quote.payable_now),
        payment_status='paid',
        status='confirmed',
        razorpay_order_id=rzp_order_id,
        razorpay_payment_id=data['razorpay_payment_id'],
        razorpay_signature=data['razorpay_signature'],
    )
    return jsonify({'success': True, 'order': _store_order(record)})


@app.route('/functions/v1/placeCodOrder', methods=['POST'])
@require_user
def place_cod_order():
    data = request.json or {}
    _check_body_user(data)
    _, record = _build_order(g.user, data.get('payout_id'), data.get('coupon_used'), 'COD')
    record.update(amount_paid=0, payment_status='pending', status='pending')
    return jsonify({'success': True, 'order': _store_order(record)})


def _cancel_order(order_id, actor, as_admin=False):
    """Claim the cancellation, then refund online payments through the gateway.

    A failed refund puts the previous status back so the order can be cancelled again.
    """
    order = _data(storage.get_order(order_id), 'Order not found')
    if not as_admin and order['user_id'] != actor['id']:
        raise NotFoundError('Order not found')
    lifecycle.check_action(order, lifecycle.CANCEL, as_admin)

    previous_status = lifecycle.order_status(order)
    claimed = _data(storage.set_order_field_if(order['id'], 'status', 'cancelled', current_not_in=('cancelled',)))
    if claimed is None:
        raise IllegalTransitionError('Order is already cancelled')
    logger.info('Order %s cancelled by %s', order['id'], actor['id'])

    if not lifecycle.needs_refund(order):
        return claimed

    try:
        if not order.get('razorpay_payment_id'):
            raise InconsistentResponseError('Order has no gateway payment to refund')
        refund = payments.refund_payment(
            order['razorpay_payment_id'],
            pricing.to_paise(order.get('amount_paid') or order['final_total']),
        )
    except RemoteCallError:
        restored = storage.set_order_field_if(order['id'], 'status', previous_status, current_in=('cancelled',))
        if not restored['success'] or restored['data'] is None:
            logger.error('Could not restore status %s on order %s after a failed refund',
                         previous_status, order['id'])
        raise

    fields = {'refund_id': refund['id'], 'refund_status': refund.get('status') or 'pending'}
    if fields['refund_status'] == 'processed':
        fields['payment_status'] = 'refunded'
    return _data(storage.update_order(order['id'], fields))


@app.route('/functions/v1/cancelOrder', methods=['POST'])
@require_user
def cancel_order():
    data = request.json or {}
    _check_body_user(data)
    if not data.get('order_id'):
        raise MissingFieldsError(('order_id',))
    order = _cancel_order(data['order_id'], g.user)
    return jsonify({'success': True, 'order': order})


@app.route('/functions/v1/refundWebhook', methods=['POST'])
def refund_webhook():
    body = request.get_data()
    if not payments.verify_webhook(body, request.headers.get('X-Razorpay-Signature')):
        logger.warning('Rejected refund webhook with a bad signature')
        raise ValidationError('Invalid signature')

    event = request.get_json(silent=True) or {}
    name = event.get('event')
    refund = ((event.get('payload') or {}).get('refund') or {}).get('entity') or {}
    if name not in ('refund.processed', 'refund.failed') or not refund.get('id'):
        return jsonify({'success': True, 'ignored': True})

    order = _data(storage.find_order(refund_id=refund['id']))
    if order is None:
        logger.warning('Refund %s does not belong to any order', refund['id'])
        return jsonify({'success': True, 'ignored': True})

    if name == 'refund.processed':
        fields = {'refund_status': 'processed', 'payment_status': 'refunded'}
    else:
        fields = {'refund_status': 'failed'}
    order = _data(storage.update_order(order['id'], fields))
    logger.info('Refund %s on order %s is %s', refund['id'], order['id'], fields['refund_status'])
    return jsonify({'success': True, 'order': order})


# ==================== ORDERS ====================

@app.route('/api/orders', methods=['GET'])
@require_user
def list_orders():
    orders = _data(storage.list_orders(g.user['id']))
    return jsonify({'success': True, 'orders': [_with_badge(o) for o in orders]})


@app.route('/api/orders/<int:order_id>/return', methods=['POST'])
@require_user
def return_order(order_id):
    order = _data(storage.get_order(order_id), 'Order not found')
    if order['user_id'] != g.user['id']:
        raise NotFoundError('Order not found')
    lifecycle.check_action(order, lifecycle.RETURN)

    updated = _data(storage.set_order_field_if(order_id, 'status', 'returned', current_in=('completed',)))
    if updated is None:
        raise IllegalTransitionError('Order is no longer completed')
    logger.info('Order %s returned by %s', order_id, g.user['id'])
    return jsonify({'success': True, 'order': updated})


@app.route('/api/orders/<int:order_id>/invoice', methods=['GET'])
@require_user
def order_invoice(order_id):
    order = _data(storage.get_order(order_id), 'Order not found')
    if order['user_id'] != g.user['id'] and not g.user['is_admin']:
        raise NotFoundError('Order not found')

    owner = g.user if order['user_id'] == g.user['id'] else _data(storage.get_profile(order['user_id'])) or {}
    pdf = invoice.build_invoice(order, owner.get('email'))
    return send_file(
        BytesIO(pdf),
        as_attachment=True,
        download_name=invoice.invoice_filename(order),
        mimetype='application/pdf'
    )


@app.route('/api/admin/orders', methods=['GET'])
@require_admin
def admin_list_orders():
    orders = _data(storage.list_orders())
    return jsonify({'success': True, 'orders': [_with_badge(o, is_admin=True) for o in orders]})


@app.route('/api/admin/orders/<int:order_id>/mark-paid', methods=['PUT'])
@require_admin
def mark_order_paid(order_id):
    order = _data(storage.get_order(order_id), 'Order not found')
    lifecycle.check_action(order, lifecycle.MARK_PAID, is_admin=True)

    updated = _data(storage.set_order_field_if(order_id, 'payment_status', 'paid', current_not_in=('paid',)))
    if updated is None:
        raise IllegalTransitionError('Order is already paid')
    logger.info('Order %s marked paid by %s', order_id, g.user['id'])
    return jsonify({'success': True, 'order': updated})


@app.route('/api/admin/orders/<int:order_id>/status', methods=['PUT'])
@require_admin
def update_order_status(order_id):
    new_status = ((request.json or {}).get('status') or '').strip().lower()
    if not new_status:
        raise MissingFieldsError(('status',))
    order = _data(storage.get_order(order_id), 'Order not found')
    lifecycle.check_admin_status(order, new_status)

    current = lifecycle.order_status(order)
    updated = _data(storage.set_order_field_if(order_id, 'status', new_status, current_in=(current,)))
    if updated is None:
        raise IllegalTransitionError('Order status changed, please reload')
    return jsonify({'success': True, 'order': updated})


@app.route('/api/admin/orders/<int:order_id>/cancel', methods=['POST'])
@require_admin
def admin_cancel_order(order_id):
    order = _cancel_order(order_id, g.user, as_admin=True)
    return jsonify({'success': True, 'order': order})


# ==================== CONTACT, BOOKINGS & CHAT ====================

@app.route('/api/send-email', methods=['POST'])
def send_email():
    data = request.json or {}
    contact = {k: (data.get(k) or '').strip() for k in ('name', 'email', 'message')}
    missing = [k for k, v in contact.items() if not v]
    if missing:
        raise MissingFieldsError(missing)
    if '@' not in contact['email']:
        raise ValidationError('Please enter a valid email address')

    contact_id = _data(storage.save_contact(contact['name'], contact['email'], contact['message']))
    emailed = mailer.send_contact_email(contact)
    return jsonify({'success': True, 'id': contact_id, 'emailed': emailed,
                    'message': 'Thanks! We will get back to you soon.'})


@app.route('/api/book-stall', methods=['POST'])
def book_stall():
    data = request.json or {}
    booking = {
        'name': (data.get('name') or '').strip(),
        'stall_type': (data.get('stallType') or data.get('stall_type') or '').strip(),
        'event_type': (data.get('event') or data.get('event_type') or '').strip(),
        'phone': (data.get('phone') or '').strip(),
        'message': (data.get('message') or '').strip(),
    }
    missing = [k for k in ('name', 'phone') if not booking[k]]
    if missing:
        raise MissingFieldsError(missing)

    booking_id = _data(storage.save_stall_booking(booking))
    logger.info('Stall booking %s received from %s', booking_id, booking['name'])
    return jsonify({'success': True, 'id': booking_id, 'message': 'Booking request received'}), 201


@app.route('/api/chat', methods=['POST'])
def chat():
    data = request.json or {}
    message = data.get('message')
    conversation_id = data.get('conversation_id') or 'default'
    if not isinstance(message, str):
        raise ValidationError('message must be text')
    if not isinstance(conversation_id, str) or len(conversation_id) > 100:
        raise ValidationError('conversation_id must be a short string')
    try:
        reply = chat_bot.reply(message, conversation_id)
    except ValueError as e:
        raise ValidationError(str(e))
    return jsonify({'success': True, **reply.as_dict()})


@app.cli.command('init-db')
def init_db_command():
    storage.init_db()
    logger.info('Database ready at %s', config.DATABASE_PATH)


if __name__ == '__main__':
    storage.init_db()
    logger.info('Starting Flask server...')
    logger.info('KL Stall storefront running on %s', config.PUBLIC_APP_URL)
    app.run(debug=True, port=config.PORT)
