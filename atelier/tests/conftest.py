from __future__ import annotations

import os
import tempfile

# Point the engine at a throwaway SQLite file before any atelier module builds it.
_TEST_DB_PATH = os.path.join(tempfile.gettempdir(), f"atelier-test-{os.getpid()}.db")
os.environ["DATABASE_URL"] = os.environ.get(
    "ATELIER_TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB_PATH}"
)

import pytest  # noqa: E402

from atelier.core.config import get_settings  # noqa: E402
from atelier.domain.models import Base  # noqa: E402
from atelier.persistence.db import engine  # noqa: E402


@pytest.fixture(autouse=True)
async def reset_schema_between_tests() -> None:
    # Rebuild the schema per test so seeded rows never leak across cases.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    # Tests that monkeypatch env vars must not see settings cached by an earlier test.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
