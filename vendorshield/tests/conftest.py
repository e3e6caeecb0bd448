from __future__ import annotations

import os

# Point the module-level engine at sqlite before any vendorshield import builds it.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from vendorshield.core.config import get_settings
from vendorshield.domain.models import Base


@pytest.fixture(autouse=True)
def reset_settings_cache() -> None:
    # Tests monkeypatch env vars; drop cached settings on both sides of each test.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'vendorshield.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()
