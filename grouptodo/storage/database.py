"""Engine, session factory and the unit of work used by every service."""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from grouptodo.storage.base import Base

T = TypeVar('T')


def create_db_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine, with the SQLite tweaks needed for in-process use."""
    if database_url.startswith('sqlite'):
        kwargs.setdefault('connect_args', {'check_same_thread': False})
        if ':memory:' in database_url or database_url in ('sqlite://', 'sqlite+pysqlite://'):
            kwargs.setdefault('poolclass', StaticPool)
    else:
        kwargs.setdefault('pool_pre_ping', True)
    return create_engine(database_url, **kwargs)


def create_session_maker(engine: Engine) -> sessionmaker:
    # Rows returned from a committed transaction stay readable.
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    # Import models so they register on Base.metadata
    from grouptodo.storage import action_token, group, group_member, task, user  # noqa: F401

    Base.metadata.create_all(engine)


@dataclass
class UnitOfWork:
    """Runs a unit of work inside a single database transaction.

    The transaction commits when the block exits normally and rolls back when
    it raises, so a domain error never leaves partial changes behind.
    """

    session_maker: sessionmaker

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        with self.session_maker.begin() as session:
            yield session

    def run(self, fn: Callable[[Session], T]) -> T:
        with self.transaction() as session:
            return fn(session)
