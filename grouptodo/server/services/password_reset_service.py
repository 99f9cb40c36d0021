"""Service for the forgotten-password flow."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from grouptodo.core.clock import Clock
from grouptodo.core.config import GroupTodoConfig
from grouptodo.core.logger import grouptodo_logger as logger
from grouptodo.server.auth.password import (
    create_reset_password_access_token,
    decode_reset_password_access_token,
    ensure_password_length,
    hash_password,
    verify_password,
)
from grouptodo.server.errors import InvalidTokenError, PasswordReuseError
from grouptodo.server.services.action_token_service import (
    ActionTokenService,
    IssuedToken,
    reset_password_subject,
)
from grouptodo.server.services.email_service import Mailer, MailTemplate, send_best_effort
from grouptodo.storage.action_token import ActionTokenType
from grouptodo.storage.database import UnitOfWork
from grouptodo.storage.user_store import UserStore, normalize_email


@dataclass(frozen=True)
class ResetPasswordGrant:
    """Short-lived credential handed out after a reset link was redeemed."""

    user_id: int
    access_token: str
    expires_at: datetime


@dataclass
class PasswordResetService:
    """Service for password reset operations.

    The flow has three steps:
    1. ``request_password_reset`` mails a one-time link
    2. ``verify_reset_token`` redeems the link and returns a reset credential
    3. ``reset_password`` sets the new password using that credential
    """

    unit_of_work: UnitOfWork
    action_tokens: ActionTokenService
    mailer: Mailer
    config: GroupTodoConfig
    clock: Clock

    def request_password_reset(self, email: str) -> Optional[IssuedToken]:
        """Issue a reset token for the account owning ``email`` and mail the link.

        An unknown address is not an error, so the response does not reveal
        which addresses have accounts.

        Returns:
            IssuedToken or None when no account matches
        """
        email = normalize_email(email)

        with self.unit_of_work.transaction() as session:
            user = UserStore.get_user_by_email(session, email)
            if user is None:
                logger.info('Password reset requested for unknown email')
                return None

            issued = self.action_tokens.issue(
                session,
                ActionTokenType.RESET_PASSWORD,
                reset_password_subject(user.id),
                self.config.reset_password_token_ttl,
                issued_by_id=user.id,
                user_id=user.id,
            )
            user_id, user_name = user.id, user.name

        logger.info(
            'Password reset token issued',
            extra={'user_id': user_id, 'token_id': issued.token_id},
        )

        link = self.config.build_url(
            f'api/auth/verify-reset-token/{issued.token_id}/{issued.raw_secret}'
        )
        send_best_effort(
            self.mailer,
            email,
            MailTemplate.RESET_PASSWORD,
            {
                'name': user_name,
                'link': link,
                'expires_in_minutes': int(
                    self.config.reset_password_token_ttl.total_seconds() // 60
                ),
            },
        )
        return issued

    def verify_reset_token(self, token_id: int, raw_secret: str) -> ResetPasswordGrant:
        """Redeem a reset link.

        Raises:
            InvalidTokenError: If the link is unknown, expired, already used or forged
        """
        with self.unit_of_work.transaction() as session:
            token = self.action_tokens.verify_and_consume(
                session, ActionTokenType.RESET_PASSWORD, token_id, raw_secret
            )
            user_id = token.user_id

        access_token, expires_at = create_reset_password_access_token(
            user_id=user_id,
            action_token_id=token.id,
            now=self.clock.now(),
            ttl=self.config.reset_password_access_ttl,
            secret=self.config.jwt_secret.get_secret_value(),
            algorithm=self.config.jwt_algorithm,
        )
        logger.info(
            'Password reset token redeemed',
            extra={'user_id': user_id, 'token_id': token_id},
        )
        return ResetPasswordGrant(
            user_id=user_id, access_token=access_token, expires_at=expires_at
        )

    def reset_password(self, access_token: str, new_password: str) -> None:
        """Set a new password using the credential from ``verify_reset_token``.

        The credential stops working as soon as the password has been changed
        after it was issued.

        Raises:
            InvalidTokenError: If the credential is invalid, expired or superseded
            InvalidPasswordError: If the new password is too long to hash
            PasswordReuseError: If the new password equals the current one
        """
        ensure_password_length(new_password)
        claims = decode_reset_password_access_token(
            access_token,
            now=self.clock.now(),
            secret=self.config.jwt_secret.get_secret_value(),
            algorithm=self.config.jwt_algorithm,
        )

        with self.unit_of_work.transaction() as session:
            user = UserStore.get_user_by_id(session, claims.user_id)
            if user is None:
                raise InvalidTokenError(token_kind='reset_access', cause='user')
            if (
                user.password_changed_at is not None
                and user.password_changed_at >= claims.issued_at
            ):
                raise InvalidTokenError(token_kind='reset_access', cause='superseded')
            if verify_password(new_password, user.password_hash):
                raise PasswordReuseError(user_id=user.id)

            UserStore.update_password_hash(
                session, user, hash_password(new_password), self.clock.now()
            )

        logger.info('Password reset completed', extra={'user_id': claims.user_id})
