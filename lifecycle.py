"""Order lifecycle rules.

Maps the raw order fields to the badge shown in the order lists and decides
which actions are legal. Used by the Flask routes before mutating a row and
by ``OrderBoard`` before sending a request.
"""
from dataclasses import dataclass

from errors import IllegalTransitionError

ORDER_STATUSES = ('pending', 'confirmed', 'completed', 'cancelled', 'returned')
PAYMENT_STATUSES = ('pending', 'paid', 'refunded')
PAID_STATES = ('paid', 'success')

CANCEL = 'cancel'
RETURN = 'return'
MARK_PAID = 'mark_paid'
ACTIONS = (CANCEL, RETURN, MARK_PAID)

# Forward moves an admin may make through the status endpoint
ADMIN_STATUS_FLOW = {
    'pending': ('confirmed',),
    'confirmed': ('completed',),
}

BADGE_COLORS = {
    'pending': 'orange',
    'confirmed': 'blue',
    'completed': 'green',
    'cancelled': 'red',
    'refund-pending': 'yellow',
    'refunded': 'purple',
    'returned': 'amber',
    'processing': 'gray',
}


@dataclass(frozen=True)
class Badge:
    label: str
    color: str
    actions: tuple = ()
    processing: bool = False

    def as_dict(self):
        return {
            'label': self.label,
            'color': self.color,
            'actions': list(self.actions),
            'processing': self.processing,
        }


def _norm(value):
    return (value or '').strip().lower()


def order_status(order):
    status = _norm(order.get('status'))
    return status if status in ORDER_STATUSES else 'pending'


def payment_status(order):
    return _norm(order.get('payment_status')) or 'pending'


def is_cod(order):
    return _norm(order.get('payment_method')) == 'cod'


def is_paid(order):
    return payment_status(order) in PAID_STATES


def needs_refund(order):
    """Online orders that were charged get a gateway refund on cancel."""
    return not is_cod(order) and is_paid(order)


def can_cancel(order):
    return order_status(order) != 'cancelled'


def can_return(order):
    return order_status(order) == 'completed'


def can_mark_paid(order, is_admin=False):
    return bool(is_admin) and payment_status(order) != 'paid' and order_status(order) != 'cancelled'


def allowed_actions(order, is_admin=False):
    actions = []
    if can_cancel(order):
        actions.append(CANCEL)
    if can_return(order):
        actions.append(RETURN)
    if can_mark_paid(order, is_admin):
        actions.append(MARK_PAID)
    return tuple(actions)


def badge_label(order):
    status = order_status(order)
    if status != 'cancelled':
        return status

    refund = _norm(order.get('refund_status'))
    if payment_status(order) == 'refunded' or refund == 'processed':
        return 'refunded'
    if refund or needs_refund(order):
        return 'refund-pending'
    return 'cancelled'


def badge(order, is_admin=False, processing=False):
    label = badge_label(order)
    if processing:
        return Badge(label, BADGE_COLORS['processing'], (), True)
    return Badge(label, BADGE_COLORS[label], allowed_actions(order, is_admin))


def check_action(order, action, is_admin=False):
    if action not in allowed_actions(order, is_admin):
        raise IllegalTransitionError(f"Cannot {action.replace('_', ' ')} an order that is {badge_label(order)}")


def apply_locally(order, action):
    """Optimistic copy of ``order`` after ``action``; refund fields are left to the server."""
    updated = dict(order)
    if action == CANCEL:
        updated['status'] = 'cancelled'
    elif action == RETURN:
        updated['status'] = 'returned'
    elif action == MARK_PAID:
        updated['payment_status'] = 'paid'
    else:
        raise ValueError(f'Unknown order action: {action}')
    return updated


def check_admin_status(order, new_status):
    current = order_status(order)
    if new_status not in ADMIN_STATUS_FLOW.get(current, ()):
        raise IllegalTransitionError(f'Cannot move an order from {current} to {new_status}')
