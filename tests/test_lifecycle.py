import pytest

import lifecycle
from errors import IllegalTransitionError


def order(**fields):
    row = {'id': 1, 'status': 'pending', 'payment_status': 'pending', 'payment_method': 'ONLINE'}
    row.update(fields)
    return row


def test_unknown_status_shows_as_pending():
    b = lifecycle.badge(order(status='weird'))
    assert b.label == 'pending'
    assert b.color == 'orange'


@pytest.mark.parametrize('fields, label', [
    ({'status': 'cancelled', 'payment_status': 'paid'}, 'refund-pending'),
    ({'status': 'cancelled', 'payment_status': 'success'}, 'refund-pending'),
    ({'status': 'cancelled', 'payment_status': 'paid', 'refund_status': 'pending'}, 'refund-pending'),
    ({'status': 'cancelled', 'payment_status': 'paid', 'refund_status': 'processed'}, 'refunded'),
    ({'status': 'cancelled', 'payment_status': 'refunded'}, 'refunded'),
    ({'status': 'cancelled', 'payment_method': 'COD', 'payment_status': 'paid'}, 'cancelled'),
    ({'status': 'cancelled', 'payment_status': 'pending'}, 'cancelled'),
    ({'status': 'returned'}, 'returned'),
])
def test_badge_labels(fields, label):
    assert lifecycle.badge_label(order(**fields)) == label


def test_actions_for_user_and_admin():
    assert lifecycle.allowed_actions(order()) == ('cancel',)
    assert lifecycle.allowed_actions(order(status='completed')) == ('cancel', 'return')
    assert lifecycle.allowed_actions(order(), is_admin=True) == ('cancel', 'mark_paid')
    assert lifecycle.allowed_actions(order(payment_status='paid'), is_admin=True) == ('cancel',)
    assert lifecycle.allowed_actions(order(status='cancelled'), is_admin=True) == ()


def test_processing_badge_has_no_actions():
    b = lifecycle.badge(order(status='completed'), processing=True)
    assert b.processing
    assert b.color == 'gray'
    assert b.actions == ()
    assert b.label == 'completed'


def test_check_action_rejects_illegal_moves():
    with pytest.raises(IllegalTransitionError):
        lifecycle.check_action(order(status='cancelled'), lifecycle.CANCEL)
    with pytest.raises(IllegalTransitionError):
        lifecycle.check_action(order(), lifecycle.RETURN)
    with pytest.raises(IllegalTransitionError):
        lifecycle.check_action(order(), lifecycle.MARK_PAID, is_admin=False)


def test_apply_locally_returns_a_copy():
    original = order(status='completed')
    updated = lifecycle.apply_locally(original, lifecycle.RETURN)
    assert updated['status'] == 'returned'
    assert original['status'] == 'completed'
    assert lifecycle.apply_locally(order(), lifecycle.MARK_PAID)['payment_status'] == 'paid'


def test_admin_status_flow_only_moves_forward():
    lifecycle.check_admin_status(order(), 'confirmed')
    lifecycle.check_admin_status(order(status='confirmed'), 'completed')
    with pytest.raises(IllegalTransitionError):
        lifecycle.check_admin_status(order(), 'completed')
    with pytest.raises(IllegalTransitionError):
        lifecycle.check_admin_status(order(status='completed'), 'pending')
