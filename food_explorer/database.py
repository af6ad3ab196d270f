from contextlib import asynccontextmanager

from fastapi import Request
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import DeclarativeBase


# Declarative base class
class Base(DeclarativeBase):
    pass


class Database:
    """Owns the async engine and session factory for one application."""

    def __init__(self, url: str, echo: bool = False, **engine_kwargs):
        self.url = url
        self.engine = create_async_engine(url, echo=echo, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False,
        )

    async def create_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self):
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self):
        async with self.session_factory() as session:
            yield session


@asynccontextmanager
async def transaction(db: AsyncSession):
    """Commit once on success, roll everything back on any failure."""
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise


# Dependency to get async session
async def get_db(request: Request):
    async with request.app.state.database.session() as session:
        yield session
