"""Directory-backed remote store for local development."""
import logging
import os
import uuid
from pathlib import Path
from typing import AsyncIterator, BinaryIO

import aiofiles

from filehost.services.errors import RemoteStoreError
from filehost.services.remote_store import CHUNK_SIZE, RemoteObjectRef, RemoteStore

logger = logging.getLogger(__name__)


class LocalStorage(RemoteStore):
    """Stores each payload as ``<uuid><ext>`` under ``base_path``."""

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path_for(self, remote_id: str) -> Path:
        # Ids are generated here; anything with a path separator is not ours.
        if not remote_id or os.sep in remote_id or "/" in remote_id or remote_id in (".", ".."):
            raise RemoteStoreError(404, f"File not found: {remote_id}")
        return self.base_path / remote_id

    async def create(self, source: BinaryIO, mime_type: str, name: str) -> RemoteObjectRef:
        remote_id = f"{uuid.uuid4()}{Path(name).suffix}"
        path = self.base_path / remote_id
        try:
            async with aiofiles.open(path, "wb") as f:
                while chunk := source.read(CHUNK_SIZE):
                    await f.write(chunk)
        except OSError as e:
            path.unlink(missing_ok=True)
            raise RemoteStoreError(500, str(e)) from e
        return RemoteObjectRef(id=remote_id, name=name, mime_type=mime_type)

    async def read_stream(self, remote_id: str) -> AsyncIterator[bytes]:
        path = self._path_for(remote_id)
        if not path.is_file():
            raise RemoteStoreError(404, f"File not found: {remote_id}")
        return self._iter_file(path)

    async def _iter_file(self, path: Path) -> AsyncIterator[bytes]:
        async with aiofiles.open(path, "rb") as f:
            while chunk := await f.read(CHUNK_SIZE):
                yield chunk

    async def delete(self, remote_id: str) -> None:
        path = self._path_for(remote_id)
        try:
            os.remove(path)
        except FileNotFoundError as e:
            raise RemoteStoreError(404, f"File not found: {remote_id}") from e
        except OSError as e:
            raise RemoteStoreError(500, str(e)) from e
