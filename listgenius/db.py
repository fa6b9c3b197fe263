"""
Database engine, session factory and tables
SQLAlchemy asyncio; SQLite via aiosqlite by default
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotaRecord(Base):
    """Generation units consumed by one user in one calendar month"""

    __tablename__ = "quota_records"

    user_id = Column(String(255), primary_key=True)
    month_key = Column(String(7), primary_key=True)  # YYYY-MM, UTC
    used_count = Column(Integer, nullable=False, default=0)
    plan_tier = Column(String(20), nullable=False, default="free")
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class SavedGeneration(Base):
    __tablename__ = "saved_generations"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    tags = Column(JSON, nullable=False)
    materials = Column(JSON, nullable=False)
    tone = Column(String(50), nullable=True)
    word_count = Column(Integer, nullable=True)
    bulk_import_id = Column(String(36), nullable=True)
    bulk_import_date = Column(DateTime(timezone=True), nullable=True)
    source = Column(String(20), nullable=False, default="manual")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_saved_generations_bulk_import", "user_id", "bulk_import_id"),
        Index("idx_saved_generations_created_at", "user_id", "created_at"),
    )


def create_engine(database_url: str) -> AsyncEngine:
    """
    Build the async engine
    SQLite transactions start with BEGIN IMMEDIATE so concurrent quota
    reservations serialise on the write lock instead of failing with SQLITE_BUSY
    """
    engine = create_async_engine(database_url)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine.sync_engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")
