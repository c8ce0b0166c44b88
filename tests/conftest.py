"""
Pytest configuration and fixtures for dbcompare tests.

Comparison tests run against in-memory dialects (see fakes.py); no
database server is needed.
"""

import io

import pytest

from dbcompare.dialect import DatabaseType
from dbcompare.model import TypeCategory
from fakes import FakeDialect, make_table


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture
def source_dialect() -> FakeDialect:
    return FakeDialect(DatabaseType.POSTGRESQL)


@pytest.fixture
def target_dialect() -> FakeDialect:
    return FakeDialect(DatabaseType.SQLSERVER)


@pytest.fixture
def diff_sink() -> io.BytesIO:
    return io.BytesIO()


@pytest.fixture
def table_t():
    """Two-column table T(id numeric PK, col text)."""
    return make_table("T", {"id": TypeCategory.NUMERIC, "col": TypeCategory.TEXT})


@pytest.fixture(autouse=True)
def clear_tracing_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests from exporting spans to a collector configured in the shell."""
    monkeypatch.delenv("OTLP_ENDPOINT", raising=False)
