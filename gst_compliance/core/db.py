# gst_compliance/core/db.py
"""Async Postgres engine for the ``number_sequences`` counters."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gst_compliance.config.settings import settings

# No connection is opened until a session first executes.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
)

SequenceSession = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db():
    async with SequenceSession() as session:
        yield session
