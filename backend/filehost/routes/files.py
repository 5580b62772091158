"""Files API routes."""
import logging
import os
import uuid
from typing import Optional

import aiofiles
import aiofiles.os
import aiofiles.tempfile
from fastapi import APIRouter, Depends, File as FastAPIFile, Path, UploadFile
from fastapi.responses import FileResponse, PlainTextResponse, StreamingResponse

from filehost.config import settings
from filehost.dependencies import get_file_coordinator, list_query, require_authorization
from filehost.schemas.file import (
    FileDeleteResponse,
    FileListQuery,
    FileListResponse,
    PREFIX_PATTERN,
)
from filehost.services.file_service import Download, FileCoordinator
from filehost.services.remote_store import UploadedFile

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])

PrefixParam = Path(..., pattern=PREFIX_PATTERN, description="6 letter address prefix")
NameParam = Path(..., min_length=1, description="Original file name")


def _to_uploaded_file(upload: UploadFile) -> UploadedFile:
    size = upload.size
    if size is None:
        upload.file.seek(0, os.SEEK_END)
        size = upload.file.tell()
        upload.file.seek(0)
    return UploadedFile(
        source=upload.file,
        size=size,
        original_name=upload.filename or "",
        mime_type=upload.content_type or "application/octet-stream",
    )


async def _remove_temp_file(path: str) -> None:
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove download buffer %s: %s", path, e)


class TempFileResponse(FileResponse):
    """FileResponse that deletes its file once the response ends, sent or not."""

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await _remove_temp_file(self.path)


async def _buffer_to_temp_file(download: Download, temp_dir: Optional[str]) -> str:
    """Copy the remote stream to a temp file and return its path."""
    async with aiofiles.tempfile.NamedTemporaryFile(
        "wb", delete=False, dir=temp_dir, prefix="filehost-",
    ) as tmp:
        path = tmp.name
        try:
            async for chunk in download.stream:
                await tmp.write(chunk)
        except BaseException:
            await tmp.close()
            await _remove_temp_file(path)
            raise
    return path


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def root():
    return "OK"


@router.post(
    "/upload",
    response_model=FileListResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_authorization)],
)
async def upload_files(
    files: Optional[list[UploadFile]] = FastAPIFile(None),
    coordinator: FileCoordinator = Depends(get_file_coordinator),
):
    """Upload one or more files (multipart field ``files``)."""
    records = await coordinator.upload_many(_to_uploaded_file(f) for f in files or [])
    return FileListResponse(files=[coordinator.describe(r) for r in records])


@router.get(
    "/list",
    response_model=FileListResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_authorization)],
)
async def list_files(
    filters: FileListQuery = Depends(list_query),
    coordinator: FileCoordinator = Depends(get_file_coordinator),
):
    """List file metadata. ``revalidate=true`` bypasses the cached result."""
    records = await coordinator.list_files(filters)
    return FileListResponse(files=[coordinator.describe(r) for r in records])


@router.delete(
    "/delete/{file_id}",
    response_model=FileDeleteResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_authorization)],
)
async def delete_file(
    file_id: uuid.UUID,
    coordinator: FileCoordinator = Depends(get_file_coordinator),
):
    """Delete a file and its record by id."""
    record = await coordinator.delete_by_id(file_id)
    return FileDeleteResponse(file=coordinator.describe(record))


@router.get("/s/{prefix}/{name:path}")
async def stream_file(
    prefix: str = PrefixParam,
    name: str = NameParam,
    coordinator: FileCoordinator = Depends(get_file_coordinator),
):
    """Pipe the file straight from the remote store (no Content-Length)."""
    download = await coordinator.open_download(prefix, name)
    return StreamingResponse(download.stream, media_type=download.mime_type)


@router.get("/{prefix}/{name:path}")
async def download_file(
    prefix: str = PrefixParam,
    name: str = NameParam,
    coordinator: FileCoordinator = Depends(get_file_coordinator),
):
    """Buffer the file locally, then serve it with length and cache headers."""
    download = await coordinator.open_download(prefix, name)
    path = await _buffer_to_temp_file(download, settings.DOWNLOAD_TEMP_DIR or None)
    return TempFileResponse(
        path,
        media_type=download.mime_type,
        headers={"Cache-Control": settings.DOWNLOAD_CACHE_CONTROL},
    )
