"""Bearer-token identity shared by the HTTP routes and socket room joins.

Tokens are HS256 JWTs carrying the user id. Whoever the token names is the
acting player for every league-night operation; ids in a request body are
only ever checked against it.
"""
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from functools import wraps
from flask import request, current_app
import jwt
from leaguenight.app import db
from leaguenight.errors import AuthenticationError
from leaguenight.models import User

TOKEN_ALGORITHM = 'HS256'


def generate_token(user_id):
    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(hours=current_app.config.get('JWT_EXPIRATION_HOURS', 24))
    payload = {'user_id': user_id, 'iat': issued_at, 'exp': issued_at + lifetime}
    return jwt.encode(payload, current_app.config['SECRET_KEY'], algorithm=TOKEN_ALGORITHM)


def bearer_token(raw_value):
    """Strip an optional ``Bearer`` scheme; socket joins send the bare token."""
    token = str(raw_value or '').strip()
    scheme, _, rest = token.partition(' ')
    if rest and scheme.lower() == 'bearer':
        return rest.strip()
    return token


def authenticate(raw_token):
    """Return the token's user, or raise ``AuthenticationError`` saying why not."""
    token = bearer_token(raw_token)
    if not token:
        raise AuthenticationError()
    try:
        claims = jwt.decode(
            token, current_app.config['SECRET_KEY'], algorithms=[TOKEN_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError('Token expired', code='TokenExpired')
    except jwt.InvalidTokenError:
        raise AuthenticationError('Invalid token', code='InvalidToken')

    user_id = claims.get('user_id')
    user = db.session.get(User, user_id) if user_id is not None else None
    if not user:
        raise AuthenticationError('User not found', code='InvalidToken')
    return user


def csrf_token_for_bearer(raw_token):
    """HMAC of the bearer token, so a cross-site page cannot forge the header."""
    token = bearer_token(raw_token)
    secret = str(current_app.config.get('SECRET_KEY') or '')
    if not token or not secret:
        return ''
    return hmac.new(secret.encode('utf-8'), token.encode('utf-8'), hashlib.sha256).hexdigest()


def csrf_token_matches(raw_token, candidate):
    expected = csrf_token_for_bearer(raw_token)
    provided = str(candidate or '').strip()
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected, provided)


def login_required(f):
    """Resolve the bearer token into ``request.current_user`` or fail with 401."""
    @wraps(f)
    def decorated(*args, **kwargs):
        request.current_user = authenticate(request.headers.get('Authorization', ''))
        return f(*args, **kwargs)
    return decorated
