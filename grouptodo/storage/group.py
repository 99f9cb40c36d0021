"""
SQLAlchemy model for Group.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, text
from sqlalchemy.orm import relationship
from grouptodo.storage.base import Base


class Group(Base):  # type: ignore
    __tablename__ = 'group'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    owner_id = Column(Integer, ForeignKey('user.id'), nullable=False, index=True)
    created_at = Column(
        DateTime,
        nullable=False,
        server_default=text('CURRENT_TIMESTAMP'),
    )

    members = relationship('GroupMember', back_populates='group')
