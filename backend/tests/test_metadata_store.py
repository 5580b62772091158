"""Tests for MetadataStore filters and lookups against SQLite."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from filehost.models.file_record import FileRecord
from filehost.schemas.file import FileListQuery
from filehost.services.errors import MetadataStoreError
from filehost.services.metadata_store import MetadataStore


async def _seed(store: MetadataStore):
    rows = [
        ("abcDEF", "report.txt", 10, "text/plain"),
        ("abcXYZ", "report-final.pdf", 2048, "application/pdf"),
        ("qwerty", "photo.png", 500, "image/png"),
    ]
    return [
        await store.create(remote_id=f"r{i}", prefix=p, name=n, size=s, mime_type=m)
        for i, (p, n, s, m) in enumerate(rows)
    ]


async def test_create_and_get_by_id(metadata_store):
    record = await metadata_store.create(
        remote_id="drive-1", prefix="abcDEF", name="report.txt", size=10, mime_type="text/plain",
    )
    assert isinstance(record.id, uuid.UUID)
    assert record.created_at is not None

    loaded = await metadata_store.get_by_id(record.id)
    assert loaded == record


async def test_missing_rows_are_none_not_errors(metadata_store):
    assert await metadata_store.get_by_id(uuid.uuid4()) is None
    assert await metadata_store.find_by_address("zzzzzz", "nothing.txt") is None
    assert await metadata_store.find_many(FileListQuery(name="nothing")) == []
    assert await metadata_store.delete_by_id(uuid.uuid4()) is False


async def test_find_by_address_picks_oldest_duplicate(metadata_store, session_factory):
    now = datetime.now(timezone.utc)
    async with session_factory() as db:
        db.add(FileRecord(remote_id="newer", prefix="abcDEF", name="a.txt", size=1,
                          mime_type="text/plain", created_at=now))
        db.add(FileRecord(remote_id="older", prefix="abcDEF", name="a.txt", size=1,
                          mime_type="text/plain", created_at=now - timedelta(minutes=5)))
        await db.commit()

    for _ in range(3):
        record = await metadata_store.find_by_address("abcDEF", "a.txt")
        assert record.remote_id == "older"


async def test_prefix_exists(metadata_store):
    await _seed(metadata_store)
    assert await metadata_store.prefix_exists("qwerty")
    assert not await metadata_store.prefix_exists("zzzzzz")


@pytest.mark.parametrize(
    "filters, expected",
    [
        (FileListQuery(), {"report.txt", "report-final.pdf", "photo.png"}),
        (FileListQuery(prefix="abc"), {"report.txt", "report-final.pdf"}),
        (FileListQuery(name="report"), {"report.txt", "report-final.pdf"}),
        (FileListQuery(min_size=10, max_size=500), {"report.txt", "photo.png"}),
        (FileListQuery(max_size=9), set()),
        (FileListQuery(mime_type="application/pdf"), {"report-final.pdf"}),
        (FileListQuery(remote_id="r2"), {"photo.png"}),
    ],
)
async def test_find_many_filters(metadata_store, filters, expected):
    await _seed(metadata_store)
    records = await metadata_store.find_many(filters)
    assert {r.name for r in records} == expected


async def test_find_many_by_id(metadata_store):
    seeded = await _seed(metadata_store)
    records = await metadata_store.find_many(FileListQuery(id=seeded[1].id))
    assert [r.id for r in records] == [seeded[1].id]


async def test_find_many_created_at_range(metadata_store):
    await _seed(metadata_store)
    now = datetime.now(timezone.utc)

    window = FileListQuery(created_at_from=now - timedelta(hours=1), created_at_to=now + timedelta(hours=1))
    assert len(await metadata_store.find_many(window)) == 3

    future = FileListQuery(created_at_from=now + timedelta(hours=1))
    assert await metadata_store.find_many(future) == []


async def test_find_many_name_prefix_is_literal(metadata_store):
    await metadata_store.create(remote_id="x", prefix="abcDEF", name="100%_done.txt", size=1, mime_type="text/plain")
    await metadata_store.create(remote_id="y", prefix="abcDEF", name="100abc.txt", size=1, mime_type="text/plain")

    records = await metadata_store.find_many(FileListQuery(name="100%_"))
    assert [r.name for r in records] == ["100%_done.txt"]


async def test_find_many_pagination(metadata_store):
    await _seed(metadata_store)
    first = await metadata_store.find_many(FileListQuery(take=2))
    rest = await metadata_store.find_many(FileListQuery(skip=2))
    assert len(first) == 2
    assert len(rest) == 1
    assert {r.id for r in first}.isdisjoint({r.id for r in rest})


async def test_delete_by_id(metadata_store):
    record, *_ = await _seed(metadata_store)
    assert await metadata_store.delete_by_id(record.id) is True
    assert await metadata_store.get_by_id(record.id) is None


async def test_database_errors_become_metadata_store_errors(metadata_store, db_engine):
    async with db_engine.begin() as conn:
        await conn.run_sync(FileRecord.__table__.drop)

    with pytest.raises(MetadataStoreError) as exc_info:
        await metadata_store.find_by_address("abcDEF", "report.txt")
    assert isinstance(exc_info.value.__cause__, OperationalError)
