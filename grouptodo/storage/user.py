"""
SQLAlchemy model for User.
"""

from sqlalchemy import Column, DateTime, Integer, String
from grouptodo.storage.base import Base


class User(Base):  # type: ignore
    __tablename__ = 'user'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    # Stored lower-cased and stripped
    email = Column(String(254), nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    password_changed_at = Column(DateTime, nullable=True)
