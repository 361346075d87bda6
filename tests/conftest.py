"""
Pytest configuration and shared fixtures

Fun fact: Files named conftest.py are discovered automatically, so every
fixture here is available to all tests in this directory and below.
"""

import tempfile
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path

import pytest

from budget_versioning.catalog import InMemoryBudgetCatalog
from budget_versioning.kernel.event_store import SQLiteEventStore
from budget_versioning.kernel.policy import VersioningPolicy
from budget_versioning.kernel.time import ManualTimeProvider
from budget_versioning.service import BudgetVersioning
from budget_versioning.versions.handlers import VersionCommandHandlers
from budget_versioning.versions.projections import VersionRegistry
from tests.helpers import build_catalog


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "versions.db"


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> ManualTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2024-01-10 09:00 UTC, early in the 2024 planning cycle.
    """
    return ManualTimeProvider(datetime(2024, 1, 10, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> VersioningPolicy:
    return VersioningPolicy()


@pytest.fixture
def catalog() -> InMemoryBudgetCatalog:
    """
    Provide the standard test catalog

    fy-2024 (acme): salaries 500000, rent 120000, travel 80000
    fy-2025 (acme): salaries-2025 520000
    fy-globex (globex): one line of 10000
    """
    return build_catalog()


@pytest.fixture
def registry() -> VersionRegistry:
    """Provide a fresh, empty version registry"""
    return VersionRegistry()


@pytest.fixture
def handlers(test_time: ManualTimeProvider, policy: VersioningPolicy) -> VersionCommandHandlers:
    """Handlers are stateless - they take the registry and catalog per call"""
    return VersionCommandHandlers(test_time, policy)


@pytest.fixture
def engine(
    temp_db: Path,
    catalog: InMemoryBudgetCatalog,
    policy: VersioningPolicy,
    test_time: ManualTimeProvider,
) -> BudgetVersioning:
    """Provide a BudgetVersioning façade over a temporary database"""
    return BudgetVersioning(temp_db, catalog, policy=policy, time_provider=test_time)
