from __future__ import annotations

from typing import AsyncGenerator

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vendorshield.core.config import get_settings
from vendorshield.persistence.db import SessionLocal, get_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; closed on success and error.
    async with get_session() as session:
        yield session


def require_compliance_enabled() -> None:
    if not get_settings().compliance_enabled:
        raise HTTPException(
            status_code=503,
            detail={"code": "COMPLIANCE_DISABLED", "message": "Compliance evaluation is disabled"},
        )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    # Batch runs open one session per vendor, so they take the factory rather than a session.
    return SessionLocal
