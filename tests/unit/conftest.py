"""Shared fixtures: in-memory database, frozen clock and wired services."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from grouptodo.core.config import GroupTodoConfig
from grouptodo.server.auth.authorization import GroupRole
from grouptodo.server.auth.token_codec import TokenCodec
from grouptodo.server.services.action_token_service import ActionTokenService
from grouptodo.storage.database import (
    UnitOfWork,
    create_db_engine,
    create_session_maker,
    init_db,
)
from grouptodo.storage.group import Group
from grouptodo.storage.group_member import GroupMember
from grouptodo.storage.user import User

NOW = datetime(2026, 3, 2, 9, 30, 0)
TEST_HMAC_SECRET = 'test-hmac-secret'
TEST_JWT_SECRET = 'test-jwt-secret'


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current = self.current + delta


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def config():
    return GroupTodoConfig(
        _env_file=None,
        database_url='sqlite://',
        token_hmac_secret=TEST_HMAC_SECRET,
        jwt_secret=TEST_JWT_SECRET,
        web_host='https://todo.example.com',
    )


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine with all tables."""
    engine = create_db_engine('sqlite://')
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest.fixture
def unit_of_work(session_maker):
    return UnitOfWork(session_maker)


@pytest.fixture
def codec():
    return TokenCodec(TEST_HMAC_SECRET)


@pytest.fixture
def action_tokens(codec, clock):
    return ActionTokenService(codec=codec, clock=clock)


@pytest.fixture
def mailer():
    mailer = MagicMock()
    mailer.send.return_value = True
    return mailer


def add_user(session, user_id, name=None, email=None, password_hash='not-a-real-hash'):
    user = User(
        id=user_id,
        name=name or f'user{user_id}',
        email=email or f'user{user_id}@example.com',
        password_hash=password_hash,
    )
    session.add(user)
    session.flush()
    return user


def add_group(session, group_id, owner_id, members=None, name=None):
    """Create a group with its owner plus ``members`` given as {user_id: role}."""
    session.add(Group(id=group_id, name=name or f'group{group_id}', owner_id=owner_id, created_at=NOW))
    session.flush()
    session.add(GroupMember(group_id=group_id, user_id=owner_id, role=GroupRole.OWNER, joined_at=NOW))
    for user_id, role in (members or {}).items():
        session.add(GroupMember(group_id=group_id, user_id=user_id, role=role, joined_at=NOW))
    session.flush()


@pytest.fixture
def seeded(unit_of_work):
    """Users 1-4 and 9, and group 3 owned by 1 with admin 2 and member 4.

    User 9 (a@b.com) is not a member of any group.
    """
    with unit_of_work.transaction() as session:
        add_user(session, 1, name='Olivia Owner')
        add_user(session, 2, name='Adam Admin')
        add_user(session, 3)
        add_user(session, 4, name='Mia Member')
        add_user(session, 9, name='Ann', email='a@b.com')
        add_group(session, 3, owner_id=1, members={2: GroupRole.ADMIN, 4: GroupRole.MEMBER})
    return unit_of_work


@pytest.fixture
def user_factory():
    return add_user


@pytest.fixture
def group_factory():
    return add_group
