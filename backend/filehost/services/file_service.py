"""File coordinator: keeps the remote store, the metadata table and the cache in step.

Cache layout (one TTLCache, two key families):
    FileService:getByPrefixAndName[<json [prefix, name]>] -> StoredFile or ABSENT
    FileService:getList{<json filter>}                     -> tuple[StoredFile, ...]

The metadata table is the source of truth. Point lookups may serve a record
for up to one lookup TTL after another request deleted it; list entries are
dropped on every upload and delete.

Every upload and delete bumps a write generation. A read that started before
such a write does not store its result, so a lookup that missed the database
cannot park ABSENT over an address an upload created in the meantime.
"""
import asyncio
import json
import logging
import secrets
import string
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Optional
from urllib.parse import quote

from filehost.schemas.file import FileListQuery, FileResponse, PREFIX_LENGTH
from filehost.services.errors import (
    MetadataStoreError,
    NotFoundError,
    RemoteStoreError,
    ValidationError,
)
from filehost.services.metadata_store import MetadataStore, StoredFile
from filehost.services.remote_store import RemoteStore, UploadedFile
from filehost.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

LOOKUP_KEY_PREFIX = "FileService:getByPrefixAndName"
LIST_KEY_PREFIX = "FileService:getList"

PREFIX_ALPHABET = string.ascii_letters
PREFIX_ATTEMPTS = 5


class _Absent:
    """Negative-cache marker: the address was looked up and not found."""

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


@dataclass
class Download:
    """A resolved file plus its single-pass byte stream."""
    record: StoredFile
    stream: AsyncIterator[bytes]

    @property
    def size(self) -> int:
        return self.record.size

    @property
    def mime_type(self) -> str:
        return self.record.mime_type


def lookup_key(prefix: str, name: str) -> str:
    return f"{LOOKUP_KEY_PREFIX}[{json.dumps([prefix, name])}]"


def list_key(filters: FileListQuery) -> str:
    return f"{LIST_KEY_PREFIX}{{{filters.cache_fingerprint()}}}"


def generate_prefix() -> str:
    return "".join(secrets.choice(PREFIX_ALPHABET) for _ in range(PREFIX_LENGTH))


class FileCoordinator:
    """Upload, lookup, download, list and delete of hosted files."""

    def __init__(
        self,
        remote_store: RemoteStore,
        metadata_store: MetadataStore,
        cache: TTLCache,
        *,
        server_url: str = "",
        lookup_ttl: float = 300,
        list_ttl: float = 30,
        file_size_limit: int = 0,
    ):
        self.remote_store = remote_store
        self.metadata_store = metadata_store
        self.cache = cache
        self.server_url = server_url.rstrip("/")
        self.lookup_ttl = lookup_ttl
        self.list_ttl = list_ttl
        self.file_size_limit = file_size_limit
        self._generation = 0

    def _invalidate(self, record: StoredFile) -> None:
        self._generation += 1
        self.cache.delete(lookup_key(record.prefix, record.name))
        self.cache.delete_prefix(LIST_KEY_PREFIX)

    def _fill(self, key: str, value, ttl: float, generation: int) -> None:
        """Cache a read result unless a write landed while it was in flight."""
        if generation != self._generation:
            logger.debug("Not caching %s: written concurrently", key)
            return
        self.cache.set(key, value, ttl)

    # ── Upload ───────────────────────────────────────────────────

    def _validate(self, file: UploadedFile) -> None:
        if file.source is None or not callable(getattr(file.source, "read", None)):
            raise ValidationError("Upload has no readable content")
        if not isinstance(file.size, int) or file.size < 0:
            raise ValidationError("Upload size is missing or invalid")
        if not file.original_name:
            raise ValidationError("Upload has no filename")
        if self.file_size_limit and file.size > self.file_size_limit:
            raise ValidationError(
                f"{file.original_name} exceeds the file size limit of {self.file_size_limit} bytes"
            )

    @staticmethod
    def _release(file: UploadedFile) -> None:
        close = getattr(file.source, "close", None)
        if close is None:
            return
        try:
            close()
        except OSError as e:
            logger.warning("Could not release upload buffer for %s: %s", file.original_name, e)

    async def _new_prefix(self) -> str:
        """Random prefix, regenerated while it is already in use."""
        for attempt in range(1, PREFIX_ATTEMPTS + 1):
            prefix = generate_prefix()
            if not await self.metadata_store.prefix_exists(prefix):
                return prefix
            logger.warning("Prefix collision on %s (attempt %d/%d)", prefix, attempt, PREFIX_ATTEMPTS)
        # Uniqueness is not a data-store constraint; keep the last candidate.
        return prefix

    async def _discard_remote(self, remote_id: str) -> None:
        try:
            await self.remote_store.delete(remote_id)
            logger.info("Removed orphaned remote payload %s", remote_id)
        except RemoteStoreError as e:
            logger.error("Orphaned remote payload %s could not be removed: %s", remote_id, e)

    async def upload(self, file: UploadedFile) -> StoredFile:
        """Store the payload remotely, then persist its metadata.

        Nothing is persisted when the remote write fails. When persisting fails
        after the remote write, the remote payload is deleted again and the
        original error is raised.
        """
        try:
            self._validate(file)
            mime_type = file.mime_type or "application/octet-stream"
            remote = await self.remote_store.create(file.source, mime_type, file.original_name)
            try:
                prefix = await self._new_prefix()
                record = await self.metadata_store.create(
                    remote_id=remote.id,
                    prefix=prefix,
                    name=file.original_name,
                    size=file.size,
                    mime_type=mime_type,
                )
            except MetadataStoreError:
                logger.error(
                    "Metadata write failed after remote upload of %s (%s)",
                    file.original_name, remote.id,
                )
                await self._discard_remote(remote.id)
                raise
        finally:
            self._release(file)

        # A stale negative entry must not hide the new address.
        self._invalidate(record)
        logger.info("Uploaded %s/%s (%d bytes, %s)", record.prefix, record.name, record.size, record.id)
        return record

    async def upload_many(self, files: Iterable[UploadedFile]) -> list[StoredFile]:
        """Upload independent files concurrently; results keep input order."""
        return list(await asyncio.gather(*(self.upload(f) for f in files)))

    # ── Lookup / download ────────────────────────────────────────

    async def lookup_by_address(self, prefix: str, name: str) -> StoredFile:
        key = lookup_key(prefix, name)
        cached = self.cache.get(key)
        if cached is ABSENT:
            logger.debug("Negative cache hit for %s/%s", prefix, name)
            raise NotFoundError("File not found")
        if cached is not None:
            logger.debug("Cache hit for %s/%s", prefix, name)
            return cached

        generation = self._generation
        record = await self.metadata_store.find_by_address(prefix, name)
        if record is None:
            self._fill(key, ABSENT, self.lookup_ttl, generation)
            raise NotFoundError("File not found")

        self._fill(key, record, self.lookup_ttl, generation)
        return record

    async def open_download(self, prefix: str, name: str) -> Download:
        record = await self.lookup_by_address(prefix, name)
        stream = await self.remote_store.read_stream(record.remote_id)
        return Download(record=record, stream=stream)

    # ── Listing ──────────────────────────────────────────────────

    async def list_files(self, filters: FileListQuery) -> list[StoredFile]:
        key = list_key(filters)
        if filters.revalidate:
            self.cache.delete(key)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("List cache hit for %s", key)
            return list(cached)

        generation = self._generation
        records = await self.metadata_store.find_many(filters)
        self._fill(key, tuple(records), self.list_ttl, generation)
        return records

    # ── Delete ───────────────────────────────────────────────────

    async def delete_by_id(self, file_id: uuid.UUID) -> StoredFile:
        """Delete the remote payload, then the metadata row.

        A payload that is already gone remotely does not stop the delete. If the
        row cannot be removed after the payload was, the row is left pointing
        at nothing; that is logged and the error re-raised.
        """
        record = await self.metadata_store.get_by_id(file_id)
        if record is None:
            raise NotFoundError("File not found")

        try:
            await self.remote_store.delete(record.remote_id)
        except RemoteStoreError as e:
            if not e.is_not_found:
                raise
            logger.warning("Remote payload %s for file %s was already gone", record.remote_id, record.id)

        try:
            deleted = await self.metadata_store.delete_by_id(record.id)
        except MetadataStoreError:
            logger.error(
                "File %s lost its remote payload %s but its metadata row remains",
                record.id, record.remote_id,
            )
            raise
        if not deleted:
            logger.warning("File %s was deleted concurrently", record.id)

        self._invalidate(record)
        logger.info("Deleted %s/%s (%s)", record.prefix, record.name, record.id)
        return record

    # ── Presentation ─────────────────────────────────────────────

    def public_url(self, record: StoredFile) -> Optional[str]:
        if not self.server_url:
            return None
        return f"{self.server_url}/{record.prefix}/{quote(record.name, safe='')}"

    def describe(self, record: StoredFile) -> FileResponse:
        response = FileResponse.model_validate(record)
        response.url = self.public_url(record)
        return response
