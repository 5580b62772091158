"""
File host test configuration.

Provides:
- A fresh SQLite database file per test (aiosqlite)
- A metadata store that counts calls, to prove cache hits skip the database
- An in-memory remote store with failure switches
- A controllable clock for TTL expiry
"""
import io
import os
import uuid
from collections import Counter
from typing import AsyncIterator, BinaryIO, Optional

# Settings are read at import time; keep tests off the production defaults.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("FILE_STORAGE_TYPE", "local")
os.environ.setdefault("AUTHORIZATION_SERVICE_URL", "http://auth.invalid")

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from filehost.database import create_session_factory
from filehost.models import Base
from filehost.services.errors import RemoteStoreError
from filehost.services.file_service import FileCoordinator
from filehost.services.metadata_store import MetadataStore
from filehost.services.remote_store import RemoteObjectRef, RemoteStore, UploadedFile
from filehost.services.ttl_cache import TTLCache


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingMetadataStore(MetadataStore):
    """MetadataStore that records how often each read hits the database."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.calls = Counter()

    async def find_by_address(self, prefix, name):
        self.calls["find_by_address"] += 1
        return await super().find_by_address(prefix, name)

    async def find_many(self, filters):
        self.calls["find_many"] += 1
        return await super().find_many(filters)

    async def get_by_id(self, file_id):
        self.calls["get_by_id"] += 1
        return await super().get_by_id(file_id)


class InMemoryRemoteStore(RemoteStore):
    """Remote store double keeping payloads in a dict."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.calls = Counter()
        self.fail_create: Optional[RemoteStoreError] = None
        self.fail_delete: Optional[RemoteStoreError] = None

    async def create(self, source: BinaryIO, mime_type: str, name: str) -> RemoteObjectRef:
        self.calls["create"] += 1
        if self.fail_create:
            raise self.fail_create
        remote_id = f"remote-{uuid.uuid4().hex}"
        self.objects[remote_id] = source.read()
        return RemoteObjectRef(id=remote_id, name=name, mime_type=mime_type)

    async def read_stream(self, remote_id: str) -> AsyncIterator[bytes]:
        self.calls["read_stream"] += 1
        if remote_id not in self.objects:
            raise RemoteStoreError(404, "File not found")
        data = self.objects[remote_id]

        async def chunks():
            for i in range(0, len(data), 4):
                yield data[i:i + 4]

        return chunks()

    async def delete(self, remote_id: str) -> None:
        self.calls["delete"] += 1
        if self.fail_delete:
            raise self.fail_delete
        if remote_id not in self.objects:
            raise RemoteStoreError(404, "File not found")
        del self.objects[remote_id]


def make_upload(name: str = "report.txt", content: bytes = b"0123456789", mime_type: str = "text/plain") -> UploadedFile:
    return UploadedFile(source=io.BytesIO(content), size=len(content), original_name=name, mime_type=mime_type)


async def collect(stream: AsyncIterator[bytes]) -> bytes:
    return b"".join([chunk async for chunk in stream])


@pytest.fixture
async def db_engine(tmp_path):
    # One connection per session, so concurrent uploads do not share a transaction.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'files.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def metadata_store(session_factory):
    return CountingMetadataStore(session_factory)


@pytest.fixture
def remote_store():
    return InMemoryRemoteStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(default_ttl=300, clock=clock)


@pytest.fixture
def coordinator(remote_store, metadata_store, cache):
    return FileCoordinator(
        remote_store,
        metadata_store,
        cache,
        server_url="https://files.example.com/",
        lookup_ttl=300,
        list_ttl=30,
    )
