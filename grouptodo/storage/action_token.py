"""
SQLAlchemy model for one-time action tokens.
"""

from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, String
from grouptodo.storage.base import Base


class ActionTokenType(str, PyEnum):
    RESET_PASSWORD = 'RESET_PASSWORD'
    GROUP_INVITE = 'GROUP_INVITE'
    TASK_ASSIGNMENT = 'TASK_ASSIGNMENT'


class ActionToken(Base):  # type: ignore
    """A single-use, time-limited credential.

    Only the HMAC of the secret is stored. ``subject_key`` identifies the one
    outstanding token for a purpose and target; issuing again for the same
    subject overwrites the row, which invalidates the previous link. Rows are
    kept after consumption for audit.
    """

    __tablename__ = 'action_token'

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(
        Enum(ActionTokenType, name='action_token_type', native_enum=False, length=32),
        nullable=False,
    )
    subject_key = Column(String(512), nullable=False, unique=True)
    token_hash = Column(String(128), nullable=False)
    user_id = Column(Integer, ForeignKey('user.id'), nullable=True)
    email = Column(String(254), nullable=True)
    group_id = Column(Integer, ForeignKey('group.id', ondelete='SET NULL'), nullable=True)
    task_id = Column(Integer, ForeignKey('task.id', ondelete='SET NULL'), nullable=True)
    sub_task_id = Column(
        Integer, ForeignKey('sub_task.id', ondelete='SET NULL'), nullable=True
    )
    issued_by_id = Column(Integer, ForeignKey('user.id'), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    consumed_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('ix_action_token_type_user_consumed', 'type', 'user_id', 'consumed_at'),
        Index('ix_action_token_expires_consumed', 'expires_at', 'consumed_at'),
    )
