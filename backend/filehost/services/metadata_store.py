"""Relational file metadata access.

Returns frozen ``StoredFile`` snapshots rather than ORM instances so values can
be cached and shared across requests safely. Absence is ``None`` / ``[]``;
database failures become ``MetadataStoreError``.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, exists, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from filehost.models.file_record import FileRecord
from filehost.schemas.file import FileListQuery
from filehost.services.errors import MetadataStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredFile:
    id: uuid.UUID
    remote_id: str
    prefix: str
    name: str
    size: int
    mime_type: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: FileRecord) -> "StoredFile":
        return cls(
            id=record.id,
            remote_id=record.remote_id,
            prefix=record.prefix,
            name=record.name,
            size=record.size,
            mime_type=record.mime_type,
            created_at=record.created_at,
        )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _starts_with(column, value: str):
    return column.like(f"{_escape_like(value)}%", escape="\\")


class MetadataStore:
    """CRUD over the ``files`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(
        self, *, remote_id: str, prefix: str, name: str, size: int, mime_type: str,
    ) -> StoredFile:
        record = FileRecord(
            remote_id=remote_id,
            prefix=prefix,
            name=name,
            size=size,
            mime_type=mime_type,
        )
        try:
            async with self._session_factory() as db:
                db.add(record)
                await db.commit()
                await db.refresh(record)
                return StoredFile.from_record(record)
        except SQLAlchemyError as e:
            logger.error("Failed to insert file record %s/%s: %s", prefix, name, e)
            raise MetadataStoreError("Could not save file metadata") from e

    async def get_by_id(self, file_id: uuid.UUID) -> Optional[StoredFile]:
        try:
            async with self._session_factory() as db:
                record = await db.get(FileRecord, file_id)
                return StoredFile.from_record(record) if record else None
        except SQLAlchemyError as e:
            raise MetadataStoreError("Could not read file metadata") from e

    async def find_by_address(self, prefix: str, name: str) -> Optional[StoredFile]:
        """First record at ``prefix/name``; the oldest wins when duplicates exist."""
        query = (
            select(FileRecord)
            .where(FileRecord.prefix == prefix, FileRecord.name == name)
            .order_by(FileRecord.created_at, FileRecord.id)
            .limit(1)
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                record = result.scalars().first()
                return StoredFile.from_record(record) if record else None
        except SQLAlchemyError as e:
            raise MetadataStoreError("Could not read file metadata") from e

    async def prefix_exists(self, prefix: str) -> bool:
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(exists().where(FileRecord.prefix == prefix)))
                return bool(result.scalar())
        except SQLAlchemyError as e:
            raise MetadataStoreError("Could not read file metadata") from e

    async def find_many(self, filters: FileListQuery) -> list[StoredFile]:
        """Records matching ``filters`` in the database's scan order."""
        query = select(FileRecord)

        if filters.prefix:
            query = query.where(_starts_with(FileRecord.prefix, filters.prefix))
        if filters.name:
            query = query.where(_starts_with(FileRecord.name, filters.name))
        if filters.id is not None:
            query = query.where(FileRecord.id == filters.id)
        if filters.remote_id:
            query = query.where(FileRecord.remote_id == filters.remote_id)
        if filters.min_size is not None:
            query = query.where(FileRecord.size >= filters.min_size)
        if filters.max_size is not None:
            query = query.where(FileRecord.size <= filters.max_size)
        if filters.mime_type is not None:
            query = query.where(FileRecord.mime_type == filters.mime_type)
        if filters.created_at_from is not None:
            query = query.where(FileRecord.created_at >= filters.created_at_from)
        if filters.created_at_to is not None:
            query = query.where(FileRecord.created_at <= filters.created_at_to)
        if filters.skip:
            query = query.offset(filters.skip)
        if filters.take is not None:
            query = query.limit(filters.take)

        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return [StoredFile.from_record(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise MetadataStoreError("Could not list file metadata") from e

    async def delete_by_id(self, file_id: uuid.UUID) -> bool:
        """Delete the row. Returns False when nothing was deleted."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(delete(FileRecord).where(FileRecord.id == file_id))
                await db.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error("Failed to delete file record %s: %s", file_id, e)
            raise MetadataStoreError("Could not delete file metadata") from e
