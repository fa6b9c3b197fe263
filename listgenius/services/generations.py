"""
Saved generation repository
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..db import SavedGeneration
from ..errors import StorageUnavailable
from ..models import CSVRow, GenerationRecord, ListingOutput

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def to_record(generation: SavedGeneration) -> GenerationRecord:
    return GenerationRecord(
        id=generation.id,
        title=generation.title,
        description=generation.description,
        tags=list(generation.tags or []),
        materials=list(generation.materials or []),
        tone=generation.tone,
        wordCount=generation.word_count,
        bulkImportId=generation.bulk_import_id,
        bulkImportDate=_iso(generation.bulk_import_date),
        source=generation.source,
        createdAt=_iso(generation.created_at),
    )


class GenerationRepository:
    def __init__(self, sessions: async_sessionmaker):
        self.sessions = sessions

    async def save(
        self,
        user_id: str,
        listing: ListingOutput,
        row: CSVRow,
        bulk_import_id: Optional[str] = None,
        bulk_import_date: Optional[datetime] = None,
        source: str = "manual",
    ) -> GenerationRecord:
        """
        Persist one generated listing
        Raises:
            StorageUnavailable: If the write failed
        """
        generation = SavedGeneration(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=listing.title,
            description=listing.description,
            tags=list(listing.tags),
            materials=list(listing.materials),
            tone=row.tone,
            word_count=row.wordCount,
            bulk_import_id=bulk_import_id,
            bulk_import_date=bulk_import_date,
            source=source,
            created_at=datetime.now(timezone.utc),
        )

        try:
            async with self.sessions() as session:
                async with session.begin():
                    session.add(generation)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save generation for {user_id}: {e}")
            raise StorageUnavailable("Failed to save generation")

        return to_record(generation)

    async def list_for_export(
        self,
        user_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        bulk_import_id: Optional[str] = None,
        source: Optional[str] = None,
    ) -> List[GenerationRecord]:
        """Saved generations for one user, newest first"""
        query = select(SavedGeneration).where(SavedGeneration.user_id == user_id)

        if start_date:
            query = query.where(SavedGeneration.created_at >= start_date)
        if end_date:
            query = query.where(SavedGeneration.created_at <= end_date)
        if bulk_import_id:
            query = query.where(SavedGeneration.bulk_import_id == bulk_import_id)
        if source:
            query = query.where(SavedGeneration.source == source)

        query = query.order_by(SavedGeneration.created_at.desc())

        try:
            async with self.sessions() as session:
                result = await session.execute(query)
                generations = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load generations for {user_id}: {e}")
            raise StorageUnavailable("Failed to load generations")

        return [to_record(g) for g in generations]
