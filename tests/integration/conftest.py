"""Fixtures for multi-threaded race tests."""

import pytest

from barrim_registry.config import LedgerConfig
from barrim_registry.repositories.memory_impl import create_memory_container
from barrim_registry.services import Registry


@pytest.fixture
def race_ledger() -> LedgerConfig:
    # Every lost compare-and-update means another writer won, so N writers
    # need at most N attempts each
    return LedgerConfig(max_update_attempts=10)


@pytest.fixture(params=["memory", "sqlite"])
def race_registry(request, clock, ids, race_ledger) -> Registry:
    """Registry on each backend, shared by all worker threads."""
    if request.param == "memory":
        repos = create_memory_container()
    else:
        repos = request.getfixturevalue("sql_repos")
    return Registry(repos, clock=clock, ids=ids, ledger=race_ledger)
