from __future__ import annotations

import os
from pathlib import Path
import tempfile

# Point the app at a throwaway SQLite database before any docguard module reads settings.
_DB_DIR = Path(tempfile.mkdtemp(prefix="docguard-tests-"))
_DB_PATH = _DB_DIR / "docguard.sqlite3"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ.setdefault("RL_BACKEND", "database")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402

from docguard.apps.api.rate_limit import reset_rate_limiter_state  # noqa: E402
from docguard.core.config import get_settings  # noqa: E402
from docguard.domain.models import Base  # noqa: E402
from docguard.persistence.db import engine  # noqa: E402


_sync_engine = create_engine(f"sqlite:///{_DB_PATH}")


@pytest.fixture(scope="session", autouse=True)
def create_schema() -> None:
    # Build the schema once from the ORM metadata; migrations target Postgres.
    Base.metadata.create_all(_sync_engine)
    yield
    Base.metadata.drop_all(_sync_engine)
    _sync_engine.dispose()


@pytest.fixture(autouse=True)
def clean_tables() -> None:
    # Every test starts from empty tables.
    yield
    with _sync_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture(autouse=True)
async def dispose_engine_between_tests() -> None:
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    yield
    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_settings_and_limiters() -> None:
    get_settings.cache_clear()
    reset_rate_limiter_state()
    yield
    get_settings.cache_clear()
    reset_rate_limiter_state()
