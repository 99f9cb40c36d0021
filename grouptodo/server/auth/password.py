"""Password hashing and the short-lived reset-password access credential."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import bcrypt
from jose import JWTError, jwt

from grouptodo.server.errors import InvalidPasswordError, InvalidTokenError

RESET_PASSWORD_TOKEN_USE = 'reset_password'

# bcrypt only reads this many bytes of input.
MAX_PASSWORD_BYTES = 72

_EPOCH = datetime(1970, 1, 1)
_MICROSECOND = timedelta(microseconds=1)


def ensure_password_length(password: str) -> None:
    """
    Raises:
        InvalidPasswordError: If the UTF-8 encoding exceeds ``MAX_PASSWORD_BYTES``
    """
    size = len(password.encode('utf-8'))
    if size > MAX_PASSWORD_BYTES:
        raise InvalidPasswordError(size=size, max_bytes=MAX_PASSWORD_BYTES)


def hash_password(password: str) -> str:
    ensure_password_length(password)
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(plain: str, hashed: str) -> bool:
    # Nothing longer than the limit was ever hashed, so it cannot match.
    if len(plain.encode('utf-8')) > MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(plain.encode('utf-8'), hashed.encode('utf-8'))


def _to_timestamp(value: datetime) -> int:
    return int(value.replace(tzinfo=UTC).timestamp())


def _from_timestamp(value: int) -> datetime:
    return datetime.fromtimestamp(value, UTC).replace(tzinfo=None)


def _to_microseconds(value: datetime) -> int:
    return (value - _EPOCH) // _MICROSECOND


def _from_microseconds(value: int) -> datetime:
    return _EPOCH + value * _MICROSECOND


@dataclass(frozen=True)
class ResetPasswordClaims:
    user_id: int
    action_token_id: int
    issued_at: datetime
    expires_at: datetime


def create_reset_password_access_token(
    user_id: int,
    action_token_id: int,
    now: datetime,
    ttl: timedelta,
    secret: str,
    algorithm: str,
) -> tuple[str, datetime]:
    """Sign a JWT that authorizes exactly one password change for ``user_id``.

    ``iat`` is whole seconds; ``iat_us`` keeps the exact issue time so it can be
    compared with ``password_changed_at``.

    Returns:
        Tuple of (encoded token, expiry)
    """
    expires_at = now + ttl
    claims = {
        'sub': str(user_id),
        'token_use': RESET_PASSWORD_TOKEN_USE,
        'action_token_id': action_token_id,
        'iat': _to_timestamp(now),
        'iat_us': _to_microseconds(now),
        'exp': _to_timestamp(expires_at),
    }
    return jwt.encode(claims, secret, algorithm=algorithm), expires_at


def decode_reset_password_access_token(
    token: str,
    now: datetime,
    secret: str,
    algorithm: str,
) -> ResetPasswordClaims:
    """Verify signature, purpose and expiry of a reset-password credential.

    Expiry is checked against ``now`` rather than the wall clock.

    Raises:
        InvalidTokenError: If the token is malformed, forged, expired or was
            issued for another purpose
    """
    try:
        claims = jwt.decode(
            token, secret, algorithms=[algorithm], options={'verify_exp': False}
        )
    except JWTError as e:
        raise InvalidTokenError(token_kind='reset_access', cause=str(e))

    if claims.get('token_use') != RESET_PASSWORD_TOKEN_USE:
        raise InvalidTokenError(token_kind='reset_access', cause='token_use')

    try:
        parsed = ResetPasswordClaims(
            user_id=int(claims['sub']),
            action_token_id=int(claims['action_token_id']),
            issued_at=_from_microseconds(int(claims['iat_us'])),
            expires_at=_from_timestamp(int(claims['exp'])),
        )
    except (KeyError, TypeError, ValueError, OverflowError):
        raise InvalidTokenError(token_kind='reset_access', cause='claims')

    if parsed.expires_at <= now:
        raise InvalidTokenError(token_kind='reset_access', cause='expired')
    return parsed
