"""Issue and redeem single-use action tokens.

A token link carries the row id and a raw secret. Only the HMAC of the
secret is stored, keyed by a subject key that is unique per purpose and
target, so re-issuing for the same subject replaces the previous token.

Redemption is two-phase inside one transaction: look the row up and compare
hashes, then consume it with a conditional UPDATE. Only the caller whose
UPDATE matched a row may apply the domain effect.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from grouptodo.core.clock import Clock
from grouptodo.core.logger import grouptodo_logger as logger
from grouptodo.server.auth.token_codec import DEFAULT_SECRET_BYTES, TokenCodec
from grouptodo.server.errors import InvalidTokenError
from grouptodo.storage.action_token import ActionToken, ActionTokenType
from grouptodo.storage.action_token_store import ActionTokenStore

OPAQUE_TOKEN_SEPARATOR = '.'


def reset_password_subject(user_id: int) -> str:
    return f'{ActionTokenType.RESET_PASSWORD.value}:user:{user_id}'


def group_invite_subject(group_id: int, email: str) -> str:
    return f'{ActionTokenType.GROUP_INVITE.value}:group:{group_id}|email:{email.lower()}'


def task_assignment_subject(task_id: int, assignee_id: int) -> str:
    return f'{ActionTokenType.TASK_ASSIGNMENT.value}:task:{task_id}|assignee:{assignee_id}'


def sub_task_assignment_subject(sub_task_id: int, assignee_id: int) -> str:
    return (
        f'{ActionTokenType.TASK_ASSIGNMENT.value}:subtask:{sub_task_id}'
        f'|assignee:{assignee_id}'
    )


def format_opaque_token(token_id: int, raw_secret: str) -> str:
    return f'{token_id}{OPAQUE_TOKEN_SEPARATOR}{raw_secret}'


def parse_opaque_token(value: str) -> tuple[int, str]:
    """Split an ``{id}.{raw}`` token into its id and raw secret.

    Raw secrets are base64url and never contain a dot, so the first dot is
    the separator.

    Raises:
        InvalidTokenError: If the value is not of that shape
    """
    token_id, sep, raw_secret = (value or '').partition(OPAQUE_TOKEN_SEPARATOR)
    if not sep or not raw_secret or not token_id.isdigit():
        raise InvalidTokenError(cause='malformed')
    return int(token_id), raw_secret


@dataclass(frozen=True)
class IssuedToken:
    token_id: int
    raw_secret: str = field(repr=False)
    expires_at: datetime


@dataclass
class ActionTokenService:
    """Shared issue / verify-and-consume protocol for every token purpose."""

    codec: TokenCodec
    clock: Clock
    secret_bytes: int = DEFAULT_SECRET_BYTES

    def issue(
        self,
        session: Session,
        token_type: ActionTokenType,
        subject_key: str,
        ttl: timedelta,
        *,
        issued_by_id: Optional[int] = None,
        user_id: Optional[int] = None,
        email: Optional[str] = None,
        group_id: Optional[int] = None,
        task_id: Optional[int] = None,
        sub_task_id: Optional[int] = None,
    ) -> IssuedToken:
        """Create or replace the token for ``subject_key``.

        Args:
            session: Transactional session; the token is visible once it commits
            token_type: Purpose of the token
            subject_key: Unique key for the purpose and target
            ttl: Lifetime from now
            issued_by_id: User who caused the token to be issued

        Returns:
            IssuedToken: The row id and the raw secret to embed in the link
        """
        now = self.clock.now()
        raw_secret = self.codec.generate_secret(self.secret_bytes)
        expires_at = now + ttl
        token_id = ActionTokenStore.upsert(
            session,
            token_type=token_type,
            subject_key=subject_key,
            token_hash=self.codec.derive_hash(raw_secret),
            expires_at=expires_at,
            now=now,
            issued_by_id=issued_by_id,
            user_id=user_id,
            email=email,
            group_id=group_id,
            task_id=task_id,
            sub_task_id=sub_task_id,
        )
        logger.info(
            'Action token issued',
            extra={
                'token_id': token_id,
                'token_type': token_type.value,
                'expires_at': expires_at.isoformat(),
            },
        )
        return IssuedToken(token_id=token_id, raw_secret=raw_secret, expires_at=expires_at)

    def revoke(self, session: Session, subject_key: str) -> bool:
        """Invalidate the outstanding token for a subject, if there is one."""
        revoked = ActionTokenStore.revoke(session, subject_key, self.clock.now()) == 1
        if revoked:
            logger.info('Action token revoked')
        return revoked

    def check(
        self,
        session: Session,
        token_type: ActionTokenType,
        token_id: int,
        raw_secret: str,
    ) -> ActionToken:
        """Validate a token without consuming it.

        Raises:
            InvalidTokenError: If the token is unusable or the secret does not match
        """
        token = ActionTokenStore.get_active(session, token_type, token_id, self.clock.now())
        if token is None or not self.codec.matches(token.token_hash, raw_secret):
            logger.info(
                'Action token rejected',
                extra={'token_id': token_id, 'token_type': token_type.value},
            )
            raise InvalidTokenError(token_id=token_id, token_type=token_type.value)
        return token

    def verify_and_consume(
        self,
        session: Session,
        token_type: ActionTokenType,
        token_id: int,
        raw_secret: str,
        *,
        user_id: Optional[int] = None,
    ) -> ActionToken:
        """Validate a token and mark it consumed.

        The caller applies its domain effect in the same session; if that
        raises, the consume rolls back with it.

        Args:
            session: Transactional session
            token_type: Expected purpose
            token_id: Row id from the link
            raw_secret: Secret from the link
            user_id: When given, the token must be bound to this user

        Returns:
            ActionToken: The token row as it was before consumption

        Raises:
            InvalidTokenError: If the token is unusable, mismatched, or a
                concurrent redemption won the race
        """
        token = self.check(session, token_type, token_id, raw_secret)
        consumed = ActionTokenStore.consume(
            session, token.id, self.clock.now(), user_id=user_id
        )
        if consumed != 1:
            logger.info(
                'Action token consume lost',
                extra={'token_id': token_id, 'token_type': token_type.value},
            )
            raise InvalidTokenError(token_id=token_id, token_type=token_type.value)
        return token
