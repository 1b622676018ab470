# asset_tracker/security.py
import hashlib
import secrets
from datetime import timedelta
from functools import wraps

import jwt
from flask import current_app
from flask_login import current_user

from asset_tracker import db
from asset_tracker.clock import utcnow
from asset_tracker.errors import ForbiddenError, UnauthorizedError
from asset_tracker.logger import get_logger

logger = get_logger(__name__)

ACCESS = 'access'
REFRESH = 'refresh'


def hash_token(token):
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _secret_for(token_type):
    if token_type == REFRESH:
        return current_app.config['JWT_REFRESH_SECRET']
    return current_app.config['JWT_SECRET']


def encode_token(user, token_type=ACCESS):
    now = utcnow()
    if token_type == REFRESH:
        expires_in = current_app.config['JWT_REFRESH_EXPIRES']
    else:
        expires_in = current_app.config['JWT_ACCESS_EXPIRES']
    payload = {
        'sub': str(user.id),
        'email': user.email,
        'role': user.role,
        'type': token_type,
        'iat': now,
        'exp': now + timedelta(seconds=expires_in),
        # Keeps two tokens minted in the same second distinct
        'jti': secrets.token_hex(8),
    }
    token = jwt.encode(payload, _secret_for(token_type), algorithm=current_app.config['JWT_ALGORITHM'])
    return token, now + timedelta(seconds=expires_in)


def decode_token(token, token_type=ACCESS):
    try:
        payload = jwt.decode(token, _secret_for(token_type),
                             algorithms=[current_app.config['JWT_ALGORITHM']])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError('Token has expired')
    except jwt.InvalidTokenError:
        raise UnauthorizedError('Invalid token')
    if payload.get('type') != token_type:
        raise UnauthorizedError('Invalid token type')
    return payload


def load_user_from_request(request):
    """Resolve `Authorization: Bearer <token>` to a user for Flask-Login."""
    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        return None
    try:
        payload = decode_token(header[len('Bearer '):].strip())
    except UnauthorizedError as exc:
        logger.debug('Rejected bearer token: %s', exc.message)
        return None

    from asset_tracker.models import User
    user = db.session.get(User, int(payload['sub']))
    if user is None or not user.can_login:
        return None
    return user


def roles_required(*roles):
    """Allow the view only for authenticated users holding one of `roles`."""
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                raise UnauthorizedError('Authentication required')
            if not current_user.has_role(*roles):
                raise ForbiddenError(required_roles=list(roles))
            return view(*args, **kwargs)
        return wrapped
    return decorator
