"""Pytest configuration and shared fixtures."""

from collections import deque
from typing import Iterable
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from barrim_registry.config import LedgerConfig
from barrim_registry.core.providers import FixedClock, IdGenerator, RandomIdGenerator
from barrim_registry.db.database import (
    create_database_engine,
    create_session_factory,
    init_schema,
)
from barrim_registry.repositories.memory_impl import create_memory_container
from barrim_registry.repositories.sqlalchemy_impl import create_sqlalchemy_container
from barrim_registry.services import Registry
from tests.helpers.concurrency import barrier_sync


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests against the in-memory store")
    config.addinivalue_line("markers", "integration: tests against a SQLite database")
    config.addinivalue_line("markers", "concurrency: multi-threaded race tests")


class ScriptedIds(IdGenerator):
    """Random ids, referral codes taken from a script before falling back to random."""

    def __init__(self, codes: Iterable[str] = ()):
        self._codes = deque(codes)
        self._fallback = RandomIdGenerator()
        self.issued_ids = []

    def script_codes(self, *codes: str) -> None:
        self._codes.extend(codes)

    def new_id(self) -> UUID:
        entity_id = uuid4()
        self.issued_ids.append(entity_id)
        return entity_id

    def new_referral_code(self) -> str:
        if self._codes:
            return self._codes.popleft()
        return self._fallback.new_referral_code()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def ids() -> ScriptedIds:
    return ScriptedIds()


@pytest.fixture
def ledger() -> LedgerConfig:
    return LedgerConfig()


@pytest.fixture
def repos():
    """In-memory repository container."""
    return create_memory_container()


@pytest.fixture
def registry(repos, clock, ids, ledger) -> Registry:
    return Registry(repos, clock=clock, ids=ids, ledger=ledger)


@pytest.fixture
def approver_id() -> UUID:
    return uuid4()


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'registry.db'}"


@pytest.fixture
def session_factory(sqlite_url) -> sessionmaker:
    """Session factory on a fresh SQLite file with the schema created."""
    engine = create_database_engine(sqlite_url, enable_query_logging=False)
    init_schema(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def sql_repos(session_factory):
    return create_sqlalchemy_container(session_factory)


@pytest.fixture
def sql_registry(sql_repos, clock, ids, ledger) -> Registry:
    return Registry(sql_repos, clock=clock, ids=ids, ledger=ledger)


@pytest.fixture
def barrier_factory():
    return barrier_sync
