"""Remote object store abstraction. Google Drive in production, local disk for dev."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, BinaryIO, Optional

from filehost.config import Settings

# Bytes per read/write when moving payloads between stores and responses.
CHUNK_SIZE = 1024 * 1024


@dataclass
class UploadedFile:
    """Upload input: a readable binary source plus what the client declared about it."""
    source: BinaryIO
    size: int
    original_name: str
    mime_type: str = "application/octet-stream"


@dataclass(frozen=True)
class RemoteObjectRef:
    """What the provider returns for a stored payload."""
    id: str
    name: Optional[str] = None
    mime_type: Optional[str] = None


class RemoteStore(ABC):
    """Create / read / delete operations against an object storage provider.

    Every failure is raised as ``RemoteStoreError``.
    """

    @abstractmethod
    async def create(self, source: BinaryIO, mime_type: str, name: str) -> RemoteObjectRef:
        """Upload ``source`` (consumed fully) and return the provider reference."""

    @abstractmethod
    async def read_stream(self, remote_id: str) -> AsyncIterator[bytes]:
        """Return a single-pass iterator over the payload bytes.

        Implementations must raise for missing objects before returning.
        """

    @abstractmethod
    async def delete(self, remote_id: str) -> None:
        """Remove the payload. Unknown ids raise ``RemoteStoreError`` with status 404."""

    async def close(self) -> None:
        """Release provider resources."""


def create_remote_store(settings: Settings) -> RemoteStore:
    """Pick the remote store implementation from ``FILE_STORAGE_TYPE``."""
    if settings.FILE_STORAGE_TYPE == "local":
        from filehost.services.local_storage import LocalStorage
        return LocalStorage(settings.FILE_STORAGE_PATH)

    if settings.FILE_STORAGE_TYPE == "drive":
        from filehost.services.drive_storage import DriveStorage
        return DriveStorage.from_settings(settings)

    raise ValueError(f"Unknown storage type: {settings.FILE_STORAGE_TYPE}")
