"""sqlite3 data-access layer.

Every public function returns a result dict: ``{'success': True, 'data': ...}``
or ``{'success': False, 'message': ..., 'status': 500}``. ``sqlite3.Error``
never leaves this module.
"""
import functools
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime

import config

logger = logging.getLogger(__name__)

ORDER_COLUMNS = (
    'user_id', 'payout_id', 'items', 'total', 'discount_applied', 'discount_amount',
    'final_total', 'amount_paid', 'payment_method', 'payment_type', 'payment_status',
    'status', 'razorpay_order_id', 'razorpay_payment_id', 'razorpay_signature',
    'refund_id', 'refund_status', 'customer_name', 'customer_phone', 'event_date',
    'event_time', 'event_place', 'address', 'pincode',
)
ORDER_MUTABLE_FIELDS = ('status', 'payment_status', 'refund_id', 'refund_status')
PROFILE_EDITABLE_FIELDS = ('full_name', 'phone', 'address')
PACKAGE_FIELDS = ('title', 'description', 'price', 'image', 'category', 'is_active')
PAYOUT_FIELDS = (
    'name', 'phone', 'event_date', 'event_time', 'event_place', 'address', 'pincode',
    'nearby_location', 'payment_method', 'online_type',
)


def now():
    return datetime.now().isoformat()


def get_db_connection():
    conn = sqlite3.connect(config.DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def connect():
    conn = get_db_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def db_result(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return {'success': True, 'data': func(*args, **kwargs)}
        except sqlite3.Error:
            logger.exception('Database call %s failed', func.__name__)
            return {'success': False, 'message': 'Database error, please try again', 'status': 500}
    return wrapper


def init_db():
    with connect() as conn:
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS profiles (
                id TEXT PRIMARY KEY,
                email TEXT,
                full_name TEXT DEFAULT '',
                phone TEXT DEFAULT '',
                address TEXT DEFAULT '',
                coins INTEGER DEFAULT 0,
                is_admin INTEGER DEFAULT 0,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS packages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                description TEXT DEFAULT '',
                price REAL NOT NULL,
                image TEXT DEFAULT '',
                category TEXT DEFAULT 'Stall',
                is_active INTEGER DEFAULT 1,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS cart (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                package_id INTEGER,
                name TEXT NOT NULL,
                price REAL NOT NULL,
                qty INTEGER DEFAULT 1,
                image TEXT DEFAULT '',
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS payout_details (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                phone TEXT NOT NULL,
                event_date TEXT NOT NULL,
                event_time TEXT NOT NULL,
                event_place TEXT NOT NULL,
                address TEXT NOT NULL,
                pincode TEXT NOT NULL,
                nearby_location TEXT DEFAULT '',
                payment_method TEXT DEFAULT 'COD',
                online_type TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS orders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                payout_id INTEGER,
                items TEXT NOT NULL,
                total REAL NOT NULL,
                discount_applied INTEGER DEFAULT 0,
                discount_amount REAL DEFAULT 0,
                final_total REAL NOT NULL,
                amount_paid REAL DEFAULT 0,
                payment_method TEXT NOT NULL,
                payment_type TEXT,
                payment_status TEXT DEFAULT 'pending',
                status TEXT DEFAULT 'pending',
                razorpay_order_id TEXT,
                razorpay_payment_id TEXT,
                razorpay_signature TEXT,
                refund_id TEXT,
                refund_status TEXT,
                customer_name TEXT,
                customer_phone TEXT,
                event_date TEXT,
                event_time TEXT,
                event_place TEXT,
                address TEXT,
                pincode TEXT,
                created_at DATETIME,
                updated_at DATETIME
            )
        ''')

        # Ensure legacy databases have the refund columns
        cursor.execute("PRAGMA table_info(orders)")
        order_columns = [col[1] for col in cursor.fetchall()]
        for column in ('refund_id', 'refund_status', 'amount_paid'):
            if column not in order_columns:
                column_type = 'REAL DEFAULT 0' if column == 'amount_paid' else 'TEXT'
                cursor.execute(f"ALTER TABLE orders ADD COLUMN {column} {column_type}")

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS gateway_orders (
                razorpay_order_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                amount_paise INTEGER NOT NULL,
                razorpay_payment_id TEXT,
                refund_id TEXT,
                refund_status TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute("PRAGMA table_info(gateway_orders)")
        gateway_columns = [col[1] for col in cursor.fetchall()]
        for column in ('razorpay_payment_id', 'refund_id', 'refund_status'):
            if column not in gateway_columns:
                cursor.execute(f"ALTER TABLE gateway_orders ADD COLUMN {column} TEXT")

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS preferences (
                user_id TEXT PRIMARY KEY,
                language TEXT DEFAULT 'en',
                notifications INTEGER DEFAULT 1,
                chatbot_enabled INTEGER DEFAULT 1,
                updated_at DATETIME
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS contact_form (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT NOT NULL,
                message TEXT NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS stall_bookings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                customer_name TEXT NOT NULL,
                stall_type TEXT,
                event_type TEXT,
                phone TEXT NOT NULL,
                message TEXT DEFAULT '',
                status TEXT DEFAULT 'pending',
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_cart_user_id ON cart(user_id)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_orders_user_id ON orders(user_id)')


# ==================== ROW SERIALIZATION ====================

def serialize_profile(row):
    if row is None:
        return None
    profile = dict(row)
    profile['coins'] = int(profile.get('coins') or 0)
    profile['is_admin'] = bool(profile.get('is_admin'))
    return profile


def serialize_package(row):
    if row is None:
        return None
    package = dict(row)
    package['is_active'] = bool(package.get('is_active'))
    return package


def serialize_order(row):
    if row is None:
        return None
    order = dict(row)
    try:
        order['items'] = json.loads(order.get('items') or '[]')
    except (TypeError, json.JSONDecodeError):
        order['items'] = []
    order['discount_applied'] = bool(order.get('discount_applied'))
    return order


# ==================== PROFILES ====================

@db_result
def ensure_profile(user_id, email=None, full_name=''):
    with connect() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM profiles WHERE id = ?', (user_id,))
        row = cursor.fetchone()
        if row:
            return serialize_profile(row)
        cursor.execute(
            'INSERT INTO profiles (id, email, full_name) VALUES (?, ?, ?)',
            (user_id, email, full_name or ''),
        )
        cursor.execute('SELECT * FROM profiles WHERE id = ?', (user_id,))
        return serialize_profile(cursor.fetchone())


@db_result
def get_profile(user_id):
    with connect() as conn:
        row = conn.execute('SELECT * FROM profiles WHERE id = ?', (user_id,)).fetchone()
        return serialize_profile(row)


@db_result
def update_profile(user_id, fields):
    updates = {k: v for k, v in fields.items() if k in PROFILE_EDITABLE_FIELDS}
    with connect() as conn:
        if updates:
            assignments = ', '.join(f'{field} = ?' for field in updates)
            conn.execute(f'UPDATE profiles SET {assignments} WHERE id = ?', (*updates.values(), user_id))
        row = conn.execute('SELECT * FROM profiles WHERE id = ?', (user_id,)).fetchone()
        return serialize_profile(row)


# ==================== PACKAGES ====================

@db_result
def list_packages(active_only=True):
    query = 'SELECT * FROM packages'
    if active_only:
        query += ' WHERE is_active = 1'
    with connect() as conn:
        rows = conn.execute(query + ' ORDER BY id').fetchall()
        return [serialize_package(row) for row in rows]


@db_result
def get_package(package_id):
    with connect() as conn:
        row = conn.execute('SELECT * FROM packages WHERE id = ?', (package_id,)).fetchone()
        return serialize_package(row)


@db_result
def create_package(payload):
    fields = {k: v for k, v in payload.items() if k in PACKAGE_FIELDS}
    with connect() as conn:
        cursor = conn.cursor()
        cursor.execute(
            f"INSERT INTO packages ({', '.join(fields)}) VALUES ({', '.join('?' for _ in fields)})",
            tuple(fields.values()),
        )
        row = cursor.execute('SELECT * FROM packages WHERE id = ?', (cursor.lastrowid,)).fetchone()
        return serialize_package(row)


@db_result
def update_package(package_id, payload):
    fields = {k: v for k, v in payload.items() if k in PACKAGE_FIELDS}
    with connect() as conn:
        cursor = conn.cursor()
        if fields:
            assignments = ', '.join(f'{field} = ?' for field in fields)
            cursor.execute(f'UPDATE packages SET {assignments} WHERE id = ?', (*fields.values(), package_id))
        row = cursor.execute('SELECT * FROM packages WHERE id = ?', (package_id,)).fetchone()
        return serialize_package(row)


@db_result
def delete_package(package_id):
    with connect() as conn:
        cursor = conn.execute('DELETE FROM packages WHERE id = ?', (package_id,))
        return cursor.rowcount > 0


# ==================== CART ====================

@db_result
def get_cart(user_id):
    with connect() as conn:
        rows = conn.execute('SELECT * FROM cart WHERE user_id = ? ORDER BY created_at, id', (user_id,)).fetchall()
        return [dict(row) for row in rows]


@db_result
def add_to_cart(user_id, package, qty=1):
    with connect() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT id FROM cart WHERE user_id = ? AND package_id = ?', (user_id, package['id']))
        existing = cursor.fetchone()
        if existing:
            cursor.execute('UPDATE cart SET qty = qty + ? WHERE id = ?', (qty, existing['id']))
            item_id = existing['id']
        else:
            cursor.execute(
                'INSERT INTO cart (user_id, package_id, name, price, qty, image) VALUES (?, ?, ?, ?, ?, ?)',
                (user_id, package['id'], package['title'], package['price'], qty, package.get('image') or ''),
            )
            item_id = cursor.lastrowid
        return dict(cursor.execute('SELECT * FROM cart WHERE id = ?', (item_id,)).fetchone())


@db_result
def update_cart_qty(user_id, item_id, qty):
    with connect() as conn:
        cursor = conn.execute('UPDATE cart SET qty = ? WHERE id = ? AND user_id = ?', (qty, item_id, user_id))
        if cursor.rowcount == 0:
            return None
        return dict(conn.execute('SELECT * FROM cart WHERE id = ?', (item_id,)).fetchone())


@db_result
def remove_cart_item(user_id, item_id):
    with connect() as conn:
        cursor = conn.execute('DELETE FROM cart WHERE id = ? AND user_id = ?', (item_id, user_id))
        return cursor.rowcount > 0


@db_result
def clear_cart(user_id):
    with connect() as conn:
        return conn.execute('DELETE FROM cart WHERE user_id = ?', (user_id,)).rowcount


# ==================== PAYOUT DETAILS ====================

@db_result
def create_payout(user_id, payload):
    fields = {k: payload.get(k) for k in PAYOUT_FIELDS}
    with connect() as conn:
        cursor = conn.cursor()
        cursor.execute(
            f"INSERT INTO payout_details (user_id, {', '.join(fields)}) "
            f"VALUES (?, {', '.join('?' for _ in fields)})",
            (user_id, *fields.values()),
        )
        return dict(cursor.execute('SELECT * FROM payout_details WHERE id = ?', (cursor.lastrowid,)).fetchone())


@db_result
def get_payout(user_id, payout_id):
    with connect() as conn:
        row = conn.execute(
            'SELECT * FROM payout_details WHERE id = ? AND user_id = ?', (payout_id, user_id)
        ).fetchone()
        return dict(row) if row else None


# ==================== GATEWAY ORDERS ====================

@db_result
def record_gateway_order(razorpay_order_id, user_id, amount_paise):
    with connect() as conn:
        conn.execute(
            'INSERT OR REPLACE INTO gateway_orders (razorpay_order_id, user_id, amount_paise) VALUES (?, ?, ?)',
            (razorpay_order_id, user_id, amount_paise),
        )
        return {'razorpay_order_id': razorpay_order_id, 'user_id': user_id, 'amount_paise': amount_paise}


@db_result
def get_gateway_order(razorpay_order_id):
    with connect() as conn:
        row = conn.execute(
            'SELECT * FROM gateway_orders WHERE razorpay_order_id = ?', (razorpay_order_id,)
        ).fetchone()
        return dict(row) if row else None


@db_result
def record_gateway_refund(razorpay_order_id, payment_id, refund_id, refund_status):
    """Remember a refund issued for a captured payment that never became an order."""
    with connect() as conn:
        conn.execute(
            '''
            UPDATE gateway_orders SET razorpay_payment_id = ?, refund_id = ?, refund_status = ?
            WHERE razorpay_order_id = ?
            ''',
            (payment_id, refund_id, refund_status, razorpay_order_id),
        )
        row = conn.execute(
            'SELECT * FROM gateway_orders WHERE razorpay_order_id = ?', (razorpay_order_id,)
        ).fetchone()
        return dict(row) if row else None


# ==================== PREFERENCES ====================

PREFERENCE_DEFAULTS = {'language': 'en', 'notifications': True, 'chatbot_enabled': True}


def serialize_preferences(row):
    prefs = dict(row)
    prefs['notifications'] = bool(prefs.get('notifications'))
    prefs['chatbot_enabled'] = bool(prefs.get('chatbot_enabled'))
    return prefs


@db_result
def get_preferences(user_id):
    with connect() as conn:
        row = conn.execute('SELECT * FROM preferences WHERE user_id = ?', (user_id,)).fetchone()
        if row is None:
            return dict(PREFERENCE_DEFAULTS, user_id=user_id, updated_at=None)
        return serialize_preferences(row)


@db_result
def save_preferences(user_id, fields):
    updates = {k: v for k, v in fields.items() if k in PREFERENCE_DEFAULTS}
    for flag in ('notifications', 'chatbot_enabled'):
        if flag in updates:
            updates[flag] = 1 if updates[flag] else 0
    with connect() as conn:
        conn.execute(
            'INSERT OR IGNORE INTO preferences (user_id, updated_at) VALUES (?, ?)', (user_id, now())
        )
        if updates:
            assignments = ', '.join(f'{field} = ?' for field in updates)
            conn.execute(
                f'UPDATE preferences SET {assignments}, updated_at = ? WHERE user_id = ?',
                (*updates.values(), now(), user_id),
            )
        row = conn.execute('SELECT * FROM preferences WHERE user_id = ?', (user_id,)).fetchone()
        return serialize_preferences(row)


# ==================== ORDERS ====================

@db_result
def create_order(record):
    """Insert the order and empty the buyer's cart in one transaction."""
    fields = {k: record.get(k) for k in ORDER_COLUMNS}
    fields['items'] = json.dumps(record.get('items') or [])
    fields['discount_applied'] = 1 if record.get('discount_applied') else 0
    timestamp = now()
    with connect() as conn:
        cursor = conn.cursor()
        cursor.execute(
            f"INSERT INTO orders ({', '.join(fields)}, created_at, updated_at) "
            f"VALUES ({', '.join('?' for _ in fields)}, ?, ?)",
            (*fields.values(), timestamp, timestamp),
        )
        order_id = cursor.lastrowid
        cursor.execute('DELETE FROM cart WHERE user_id = ?', (fields['user_id'],))
        return serialize_order(cursor.execute('SELECT * FROM orders WHERE id = ?', (order_id,)).fetchone())


@db_result
def get_order(order_id):
    with connect() as conn:
        return serialize_order(conn.execute('SELECT * FROM orders WHERE id = ?', (order_id,)).fetchone())


@db_result
def find_order(**criteria):
    column, value = next(iter(criteria.items()))
    if column not in ('razorpay_order_id', 'refund_id'):
        raise ValueError(f'Cannot look orders up by {column}')
    with connect() as conn:
        row = conn.execute(f'SELECT * FROM orders WHERE {column} = ?', (value,)).fetchone()
        return serialize_order(row)


@db_result
def list_orders(user_id=None):
    with connect() as conn:
        if user_id is None:
            rows = conn.execute('SELECT * FROM orders ORDER BY created_at DESC, id DESC').fetchall()
        else:
            rows = conn.execute(
                'SELECT * FROM orders WHERE user_id = ? ORDER BY created_at DESC, id DESC', (user_id,)
            ).fetchall()
        return [serialize_order(row) for row in rows]


@db_result
def set_order_field_if(order_id, field, value, current_in=None, current_not_in=None):
    """Conditional update; returns the new row, or None when the current value did not qualify.

    A missing status counts as 'pending'.
    """
    if field not in ORDER_MUTABLE_FIELDS:
        raise ValueError(f'{field} cannot be changed')
    if current_in is not None:
        operator, values = 'IN', tuple(current_in)
    else:
        operator, values = 'NOT IN', tuple(current_not_in or ())
    placeholders = ', '.join('?' for _ in values) or "''"
    with connect() as conn:
        cursor = conn.execute(
            f"UPDATE orders SET {field} = ?, updated_at = ? "
            f"WHERE id = ? AND COALESCE({field}, 'pending') {operator} ({placeholders})",
            (value, now(), order_id, *values),
        )
        if cursor.rowcount == 0:
            return None
        return serialize_order(conn.execute('SELECT * FROM orders WHERE id = ?', (order_id,)).fetchone())


@db_result
def update_order(order_id, fields):
    updates = {k: v for k, v in fields.items() if k in ORDER_MUTABLE_FIELDS}
    if not updates:
        raise ValueError('No order fields to update')
    assignments = ', '.join(f'{field} = ?' for field in updates)
    with connect() as conn:
        conn.execute(
            f'UPDATE orders SET {assignments}, updated_at = ? WHERE id = ?',
            (*updates.values(), now(), order_id),
        )
        return serialize_order(conn.execute('SELECT * FROM orders WHERE id = ?', (order_id,)).fetchone())


# ==================== CONTACT & BOOKINGS ====================

@db_result
def save_contact(name, email, message):
    with connect() as conn:
        cursor = conn.execute(
            'INSERT INTO contact_form (name, email, message) VALUES (?, ?, ?)', (name, email, message)
        )
        return cursor.lastrowid


@db_result
def save_stall_booking(payload):
    with connect() as conn:
        cursor = conn.execute(
            '''
            INSERT INTO stall_bookings (customer_name, stall_type, event_type, phone, message, status)
            VALUES (?, ?, ?, ?, ?, 'pending')
            ''',
            (payload['name'], payload.get('stall_type'), payload.get('event_type'),
             payload['phone'], payload.get('message', '')),
        )
        return cursor.lastrowid
