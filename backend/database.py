# database.py - Lazy async database setup
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker,
)

from config import DATABASE_URL, SQL_ECHO

logger = logging.getLogger("pr-board.database")


def _engine_kwargs(url: str) -> dict:
    # SQLite (tests) uses a static pool that rejects sizing arguments
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": 20,
        "max_overflow": 0,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


class Database:
    """Engine and session factory, created on first use.

    ``connect`` is idempotent and safe under concurrent first calls: the
    first caller builds the engine and creates tables, later callers reuse it.
    """

    def __init__(self, url: str = DATABASE_URL, echo: bool = SQL_ECHO):
        self.url = url
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self.session_maker: Optional[async_sessionmaker] = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self.session_maker is not None

    async def connect(self) -> async_sessionmaker:
        if self.session_maker is not None:
            return self.session_maker
        async with self._lock:
            if self.session_maker is None:
                from models import Base

                engine = create_async_engine(self.url, echo=self.echo, **_engine_kwargs(self.url))
                async with engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
                self.engine = engine
                self.session_maker = async_sessionmaker(
                    engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )
                logger.info("Database initialized")
        return self.session_maker

    async def dispose(self) -> None:
        """Close database connection pool"""
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self.session_maker = None

    @asynccontextmanager
    async def session(self):
        """Context manager for database operations outside of the request cycle"""
        session_maker = await self.connect()
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


async def get_db_session(request: Request):
    """Dependency for getting database session (FastAPI Depends)"""
    session_maker = await request.app.state.context.database.connect()
    async with session_maker() as session:
        yield session
