from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base

from ..core.logging import logger

Base = declarative_base()


class Database:
    """Async engine and session factory, one per process.

    Constructed by the application factory and stored on ``app.state``.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = create_async_engine(url, echo=echo, future=True)
        self.session_factory = sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )

    def session(self) -> AsyncSession:
        """Open a session; use as ``async with database.session() as session``."""
        return self.session_factory()

    async def init_db(self):
        # Import registers the tables on Base.metadata
        from . import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized", extra_fields={"dialect": self.engine.dialect.name})

    async def ping(self) -> bool:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def dispose(self):
        await self.engine.dispose()
