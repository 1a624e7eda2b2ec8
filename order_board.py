"""Client-side order list with optimistic updates.

Each order action is checked against the lifecycle rules, marked in flight,
applied locally, then replaced by the row the server returns. A failed call
restores the previous row and records the error instead of raising.
"""
import logging
import threading

import lifecycle
from errors import StorefrontError

logger = logging.getLogger(__name__)


class OrderBoard:
    def __init__(self, client, is_admin=False):
        self.client = client
        self.is_admin = is_admin
        self.orders = []
        self.errors = []
        self.in_flight = set()
        self.mounted = True
        self._lock = threading.Lock()

    def load(self):
        orders = self.client.list_orders(admin=self.is_admin)
        with self._lock:
            if self.mounted:
                self.orders = list(orders)
        return self.orders

    def unmount(self):
        with self._lock:
            self.mounted = False

    def _index(self, order_id):
        for i, order in enumerate(self.orders):
            if order['id'] == order_id:
                return i
        return None

    def find(self, order_id):
        with self._lock:
            i = self._index(order_id)
            return None if i is None else self.orders[i]

    def badge(self, order_id):
        with self._lock:
            i = self._index(order_id)
            if i is None:
                return None
            return lifecycle.badge(self.orders[i], self.is_admin, processing=order_id in self.in_flight)

    def view(self):
        with self._lock:
            return [
                dict(order, badge=lifecycle.badge(order, self.is_admin,
                                                  processing=order['id'] in self.in_flight).as_dict())
                for order in self.orders
            ]

    def _replace(self, order_id, row):
        i = self._index(order_id)
        if i is not None:
            self.orders[i] = row

    def _transition(self, order_id, action, call):
        """Returns True when the server accepted ``action``; False otherwise."""
        with self._lock:
            i = self._index(order_id)
            if i is None:
                self.errors.append(f'Order {order_id} not found')
                return False
            if order_id in self.in_flight:
                logger.info('Ignoring %s for order %s: request already in flight', action, order_id)
                return False
            previous = self.orders[i]
            try:
                lifecycle.check_action(previous, action, self.is_admin)
            except StorefrontError as e:
                self.errors.append(e.message)
                return False
            self.in_flight.add(order_id)
            self.orders[i] = lifecycle.apply_locally(previous, action)

        try:
            updated = call()
        except StorefrontError as e:
            logger.warning('%s failed for order %s: %s', action, order_id, e.message)
            with self._lock:
                if self.mounted:
                    self._replace(order_id, previous)
                    self.errors.append(e.message)
            return False
        else:
            with self._lock:
                if self.mounted:
                    self._replace(order_id, updated)
            return True
        finally:
            with self._lock:
                self.in_flight.discard(order_id)

    def cancel(self, order_id, user_id=None):
        return self._transition(
            order_id, lifecycle.CANCEL,
            lambda: self.client.cancel_order(order_id, user_id, admin=self.is_admin),
        )

    def return_order(self, order_id):
        return self._transition(order_id, lifecycle.RETURN, lambda: self.client.return_order(order_id))

    def mark_paid(self, order_id):
        return self._transition(order_id, lifecycle.MARK_PAID, lambda: self.client.mark_paid(order_id))
