"""Google Drive remote store.

The Drive SDK is synchronous, so every call runs through asyncio.to_thread.
httplib2 connections are not thread-safe: each call gets its own authorized
Http object instead of sharing the one built into the service.
"""
import asyncio
import io
import logging
from typing import AsyncIterator, BinaryIO, Callable, Optional

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import credentials as user_credentials
from google.oauth2 import service_account
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload, MediaIoBaseUpload

from filehost.config import Settings
from filehost.services.errors import RemoteStoreError
from filehost.services.remote_store import CHUNK_SIZE, RemoteObjectRef, RemoteStore

logger = logging.getLogger(__name__)

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive"]
TOKEN_URI = "https://oauth2.googleapis.com/token"


def _error_message(error: HttpError) -> str:
    reason = getattr(error, "reason", None)
    return reason or str(error)


class DriveStorage(RemoteStore):
    """Stores payloads as files inside a single Drive folder."""

    def __init__(
        self,
        service,
        folder_id: str,
        http_factory: Optional[Callable[[], httplib2.Http]] = None,
    ):
        self._service = service
        self.folder_id = folder_id
        self._http_factory = http_factory

    @classmethod
    def from_settings(cls, settings: Settings) -> "DriveStorage":
        if not settings.DRIVE_FOLDER_ID:
            raise ValueError("DRIVE_FOLDER_ID not set. Cannot use Drive storage.")

        if settings.GOOGLE_SERVICE_ACCOUNT_PATH:
            creds = service_account.Credentials.from_service_account_file(
                settings.GOOGLE_SERVICE_ACCOUNT_PATH, scopes=DRIVE_SCOPES,
            )
        elif settings.GOOGLE_REFRESH_TOKEN:
            creds = user_credentials.Credentials(
                token=None,
                refresh_token=settings.GOOGLE_REFRESH_TOKEN,
                client_id=settings.GOOGLE_CLIENT_ID,
                client_secret=settings.GOOGLE_CLIENT_SECRET,
                token_uri=TOKEN_URI,
                scopes=DRIVE_SCOPES,
            )
        else:
            raise ValueError(
                "Google credentials not set. Provide GOOGLE_SERVICE_ACCOUNT_PATH "
                "or GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET/GOOGLE_REFRESH_TOKEN."
            )

        service = build("drive", "v3", credentials=creds, cache_discovery=False)
        return cls(
            service,
            settings.DRIVE_FOLDER_ID,
            http_factory=lambda: AuthorizedHttp(creds, http=httplib2.Http()),
        )

    def _http_kwargs(self) -> dict:
        if self._http_factory is None:
            return {}
        return {"http": self._http_factory()}

    async def _call(self, sync_fn, *args):
        """Run a blocking SDK call in a worker thread, translating provider errors."""
        try:
            return await asyncio.to_thread(sync_fn, *args)
        except HttpError as e:
            raise RemoteStoreError(e.resp.status, _error_message(e)) from e
        except (httplib2.HttpLib2Error, GoogleAuthError, OSError) as e:
            raise RemoteStoreError(502, str(e) or type(e).__name__) from e

    async def create(self, source: BinaryIO, mime_type: str, name: str) -> RemoteObjectRef:
        def _create() -> dict:
            media = MediaIoBaseUpload(source, mimetype=mime_type, chunksize=CHUNK_SIZE, resumable=True)
            request = self._service.files().create(
                body={"name": name, "mimeType": mime_type, "parents": [self.folder_id]},
                media_body=media,
                fields="id, name, mimeType",
            )
            return request.execute(**self._http_kwargs())

        data = await self._call(_create)
        if not data or not data.get("id"):
            raise RemoteStoreError(502, "Drive did not return a file id")
        logger.debug("Created Drive file %s for %s", data["id"], name)
        return RemoteObjectRef(id=data["id"], name=data.get("name"), mime_type=data.get("mimeType"))

    async def read_stream(self, remote_id: str) -> AsyncIterator[bytes]:
        def _open() -> tuple[MediaIoBaseDownload, io.BytesIO]:
            request = self._service.files().get_media(fileId=remote_id)
            http_kwargs = self._http_kwargs()
            if http_kwargs:
                request.http = http_kwargs["http"]
            buffer = io.BytesIO()
            return MediaIoBaseDownload(buffer, request, chunksize=CHUNK_SIZE), buffer

        downloader, buffer = await self._call(_open)
        # Pull the first chunk now so a missing file fails before the caller starts responding.
        first, done = await self._call(self._next_chunk, downloader, buffer)
        return self._iter_chunks(downloader, buffer, first, done)

    @staticmethod
    def _next_chunk(downloader: MediaIoBaseDownload, buffer: io.BytesIO) -> tuple[bytes, bool]:
        _, done = downloader.next_chunk()
        data = buffer.getvalue()
        buffer.seek(0)
        buffer.truncate()
        return data, done

    async def _iter_chunks(
        self, downloader: MediaIoBaseDownload, buffer: io.BytesIO, first: bytes, done: bool,
    ) -> AsyncIterator[bytes]:
        if first:
            yield first
        while not done:
            data, done = await self._call(self._next_chunk, downloader, buffer)
            if data:
                yield data

    async def delete(self, remote_id: str) -> None:
        def _delete() -> None:
            self._service.files().delete(fileId=remote_id).execute(**self._http_kwargs())

        await self._call(_delete)
        logger.debug("Deleted Drive file %s", remote_id)

    async def close(self) -> None:
        close = getattr(self._service, "close", None)
        if close is not None:
            await asyncio.to_thread(close)
