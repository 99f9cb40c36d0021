"""
Store class for managing one-time action tokens.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session
from grouptodo.storage.action_token import ActionToken, ActionTokenType

_DIALECT_INSERTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}


class ActionTokenStore:
    """Store for action tokens. Every method runs in the caller's transaction."""

    @staticmethod
    def upsert(
        session: Session,
        *,
        token_type: ActionTokenType,
        subject_key: str,
        token_hash: str,
        expires_at: datetime,
        now: datetime,
        issued_by_id: Optional[int] = None,
        user_id: Optional[int] = None,
        email: Optional[str] = None,
        group_id: Optional[int] = None,
        task_id: Optional[int] = None,
        sub_task_id: Optional[int] = None,
    ) -> int:
        """Create the token for ``subject_key`` or overwrite the existing one.

        Overwriting replaces the hash and expiry and clears the consumed and
        revoked markers, so any link issued earlier for the same subject stops
        validating.

        Returns:
            int: The token row id
        """
        dialect = session.get_bind().dialect.name
        insert = _DIALECT_INSERTS.get(dialect)
        if insert is None:
            raise RuntimeError(f'Action token upsert is not supported on {dialect}')

        stmt = insert(ActionToken).values(
            type=token_type,
            subject_key=subject_key,
            token_hash=token_hash,
            user_id=user_id,
            email=email,
            group_id=group_id,
            task_id=task_id,
            sub_task_id=sub_task_id,
            issued_by_id=issued_by_id,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ActionToken.subject_key],
            set_={
                'token_hash': token_hash,
                'expires_at': expires_at,
                'issued_by_id': issued_by_id,
                'consumed_at': None,
                'revoked_at': None,
                'updated_at': now,
            },
        )
        session.execute(stmt)

        return session.execute(
            select(ActionToken.id).where(ActionToken.subject_key == subject_key)
        ).scalar_one()

    @staticmethod
    def get_active(
        session: Session,
        token_type: ActionTokenType,
        token_id: int,
        now: datetime,
    ) -> Optional[ActionToken]:
        """Get a token that is of the given type and still usable.

        Args:
            session: Transactional session
            token_type: Expected token type
            token_id: Token row id taken from the link
            now: Current time

        Returns:
            ActionToken or None if absent, consumed, revoked or expired
        """
        return session.execute(
            select(ActionToken).where(
                ActionToken.id == token_id,
                ActionToken.type == token_type,
                ActionToken.consumed_at.is_(None),
                ActionToken.revoked_at.is_(None),
                ActionToken.expires_at > now,
            )
        ).scalar_one_or_none()

    @staticmethod
    def consume(
        session: Session,
        token_id: int,
        now: datetime,
        *,
        user_id: Optional[int] = None,
    ) -> int:
        """Mark a token consumed if, and only if, it is still usable.

        This single conditional UPDATE is the serialization point between
        concurrent redemptions: the database lets exactly one of them match.

        Args:
            session: Transactional session
            token_id: Token row id
            now: Current time
            user_id: When given, the token must also be bound to this user

        Returns:
            int: Number of rows updated; only 1 means the caller won
        """
        conditions = [
            ActionToken.id == token_id,
            ActionToken.consumed_at.is_(None),
            ActionToken.revoked_at.is_(None),
            ActionToken.expires_at > now,
        ]
        if user_id is not None:
            conditions.append(ActionToken.user_id == user_id)

        result = session.execute(
            update(ActionToken)
            .where(*conditions)
            .values(consumed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    def revoke(session: Session, subject_key: str, now: datetime) -> int:
        """Revoke the outstanding token for a subject, if any.

        Returns:
            int: Number of rows revoked (0 or 1)
        """
        result = session.execute(
            update(ActionToken)
            .where(
                ActionToken.subject_key == subject_key,
                ActionToken.consumed_at.is_(None),
                ActionToken.revoked_at.is_(None),
            )
            .values(revoked_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    def detach_group(
        session: Session,
        group_id: int,
        task_ids: list[int],
        sub_task_ids: list[int],
        now: datetime,
    ) -> int:
        """Revoke and unlink every token that points at a group or its tasks.

        Rows stay for audit with their group, task and sub-task references
        cleared, which is what the foreign keys do on delete where enforced.

        Returns:
            int: Number of outstanding tokens revoked
        """
        refers_to_group = or_(
            ActionToken.group_id == group_id,
            ActionToken.task_id.in_(task_ids),
            ActionToken.sub_task_id.in_(sub_task_ids),
        )
        revoked = session.execute(
            update(ActionToken)
            .where(
                refers_to_group,
                ActionToken.consumed_at.is_(None),
                ActionToken.revoked_at.is_(None),
            )
            .values(revoked_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        session.execute(
            update(ActionToken)
            .where(refers_to_group)
            .values(group_id=None, task_id=None, sub_task_id=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return revoked

    @staticmethod
    def get_by_subject_key(session: Session, subject_key: str) -> Optional[ActionToken]:
        return session.execute(
            select(ActionToken).where(ActionToken.subject_key == subject_key)
        ).scalar_one_or_none()
