import functools
import logging

import requests
from flask import g, request

import config
import storage
from errors import AuthError, DataAccessError, ForbiddenError, RemoteCallError

logger = logging.getLogger(__name__)


def fetch_supabase_user(access_token: str) -> dict:
    """Resolve a Supabase access token to its user through the Auth REST API."""
    if not config.SUPABASE_URL or not config.SUPABASE_ANON_KEY:
        logger.warning('Supabase URL or anon key not configured; rejecting bearer token.')
        return {'success': False, 'message': 'Authentication is not configured', 'status': 503}

    try:
        resp = requests.get(
            f'{config.SUPABASE_URL}/auth/v1/user',
            headers={
                'apikey': config.SUPABASE_ANON_KEY,
                'Authorization': f'Bearer {access_token}',
            },
            timeout=10
        )
    except requests.exceptions.RequestException:
        return {
            'success': False,
            'message': 'Authentication service is unreachable. Please try again shortly.',
            'status': 503
        }

    if resp.status_code == 200:
        try:
            user = resp.json()
        except ValueError:
            user = None
        if user and user.get('id'):
            return {'success': True, 'user': user}
        return {'success': False, 'message': 'Authentication service returned no user', 'status': 502}

    return {'success': False, 'message': 'Invalid or expired session', 'status': 401}


def bearer_token():
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def current_profile():
    token = bearer_token()
    if not token:
        raise AuthError()

    result = fetch_supabase_user(token)
    if not result['success']:
        if result['status'] >= 500:
            raise RemoteCallError(result['message'], status=result['status'])
        raise AuthError(result['message'], status=result['status'])

    user = result['user']
    metadata = user.get('user_metadata') or {}
    profile = storage.ensure_profile(user['id'], user.get('email'), metadata.get('full_name', ''))
    if not profile['success']:
        raise DataAccessError(profile['message'])
    return profile['data']


def require_user(view):
    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        g.user = current_profile()
        return view(*args, **kwargs)
    return wrapper


def require_admin(view):
    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        g.user = current_profile()
        if not g.user['is_admin']:
            raise ForbiddenError('Admin access required')
        return view(*args, **kwargs)
    return wrapper
