import os

os.environ.setdefault("ENV", "test")

import pytest  # noqa: E402

from app.core.retry import RetryOptions  # noqa: E402
from app.db import DatabaseManager  # noqa: E402

pytest_plugins = [
    "tests.fixtures.tenant_fixtures",
    "tests.fixtures.messaging_fixtures",
]


@pytest.fixture
def fast_retry() -> RetryOptions:
    """Three attempts with no backoff sleep."""
    return RetryOptions(max_attempts=3, delay_ms=0, backoff_multiplier=2, max_delay_ms=0)


@pytest.fixture
def db_manager():
    """Fresh in-memory sqlite database with the automation tables created."""
    manager = DatabaseManager("sqlite://")
    manager.create_all()
    yield manager
    manager.engine.dispose()


@pytest.fixture
def db(db_manager):
    with db_manager.db_session() as session:
        yield session
