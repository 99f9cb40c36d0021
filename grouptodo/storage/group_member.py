"""
SQLAlchemy model for a user's membership in a group.
"""

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer
from sqlalchemy.orm import relationship
from grouptodo.server.auth.authorization import GroupRole
from grouptodo.storage.base import Base


class GroupMember(Base):  # type: ignore
    """Membership of a user in a group.

    Exactly one row per group carries the OWNER role. Owner rows are never
    deleted through member operations.
    """

    __tablename__ = 'group_member'

    group_id = Column(
        Integer,
        ForeignKey('group.id', ondelete='CASCADE'),
        primary_key=True,
    )
    user_id = Column(
        Integer,
        ForeignKey('user.id', ondelete='CASCADE'),
        primary_key=True,
        index=True,
    )
    role = Column(
        Enum(GroupRole, name='group_role', native_enum=False, length=20),
        nullable=False,
        default=GroupRole.MEMBER,
    )
    joined_at = Column(DateTime, nullable=False)

    group = relationship('Group', back_populates='members')
    user = relationship('User')
