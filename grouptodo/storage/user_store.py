"""
Store class for managing users.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session
from grouptodo.storage.user import User


def normalize_email(email: str) -> str:
    return email.lower().strip()


class UserStore:
    """Store for managing users."""

    @staticmethod
    def create_user(session: Session, name: str, email: str, password_hash: str) -> User:
        user = User(name=name, email=normalize_email(email), password_hash=password_hash)
        session.add(user)
        session.flush()
        return user

    @staticmethod
    def get_user_by_id(session: Session, user_id: int) -> Optional[User]:
        return session.get(User, user_id)

    @staticmethod
    def get_user_by_email(session: Session, email: str) -> Optional[User]:
        return session.execute(
            select(User).where(User.email == normalize_email(email))
        ).scalar_one_or_none()

    @staticmethod
    def update_password_hash(
        session: Session, user: User, password_hash: str, now: datetime
    ) -> None:
        user.password_hash = password_hash
        user.password_changed_at = now
        session.flush()
