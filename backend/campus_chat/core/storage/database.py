"""Async database engine and session management."""

import logging
from pathlib import Path
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Owns the async engine and hands out sessions."""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url

        engine_kwargs = {"echo": echo}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url:
                # One shared connection so every session sees the same in-memory db
                engine_kwargs["poolclass"] = StaticPool
            else:
                _ensure_sqlite_directory(database_url)

        self.engine = create_async_engine(database_url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_all(self) -> None:
        """Create all tables registered on Base."""
        # Models must be imported so their tables are registered
        from campus_chat.models import database  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database tables ready at {self.database_url}")

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            yield session


def _ensure_sqlite_directory(database_url: str) -> None:
    _, _, path = database_url.partition(":///")
    if path:
        Path(path).parent.mkdir(parents=True, exist_ok=True)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a session bound to the app's database."""
    database: Database = request.app.state.database
    async for session in database.session():
        yield session
