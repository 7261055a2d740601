from __future__ import annotations

"""SQLAlchemy async session store.

Usage
-----

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (for tests/dev; production typically uses
  migrations).
- Create a session factory with ``create_sessionmaker``.
- Build the store with ``SqlSessionStore(session_factory)``.

Each method opens its own ``AsyncSession`` and commits before returning, so a
saved session is durable once ``save`` completes.
"""

import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..schemas.session import Session
from .models import Base, SessionRow


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Plain ``sqlite://`` and ``postgresql://`` URLs are rewritten to their async
    drivers (``aiosqlite`` and ``asyncpg``).
    """
    url = re.sub(r"^sqlite://", "sqlite+aiosqlite://", db_url, count=1)
    url = re.sub(r"^postgres(?:ql)?://", "postgresql+asyncpg://", url, count=1)
    return create_async_engine(url, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@dataclass(frozen=True)
class SqlSessionStore:
    """SQL implementation of ``SessionStore``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def load(self, key: str) -> Optional[Session]:
        async with self.session_factory() as s:
            row = await s.get(SessionRow, key)
            if row is None:
                return None
            return Session.from_json(row.payload)

    async def save(self, session: Session) -> None:
        """
        Insert or replace the stored snapshot of ``session``.

        Args:
            session: The session to persist; its ``id`` is the key.
        """
        async with self.session_factory() as s:
            row = await s.get(SessionRow, session.id)
            if row is None:
                s.add(
                    SessionRow(
                        id=session.id,
                        payload=session.to_json(),
                        created_at=session.created_at,
                        updated_at=session.updated_at,
                    )
                )
            else:
                row.payload = session.to_json()
                row.updated_at = session.updated_at
            await s.commit()

    async def delete(self, key: str) -> None:
        async with self.session_factory() as s:
            await s.execute(delete(SessionRow).where(SessionRow.id == key))
            await s.commit()
