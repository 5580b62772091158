"""File request/response schemas."""
import json
import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field, model_validator

from filehost.schemas.base import CamelModel, CamelORMModel

PREFIX_LENGTH = 6
PREFIX_PATTERN = r"^[a-zA-Z]{6}$"


class FileListQuery(CamelModel):
    """Filters for the file listing. Unset fields do not filter."""
    prefix: Optional[str] = Field(None, min_length=1, max_length=PREFIX_LENGTH, pattern=r"^[a-zA-Z]+$")
    name: Optional[str] = Field(None, min_length=1)
    id: Optional[uuid.UUID] = None
    remote_id: Optional[str] = Field(None, min_length=1)
    min_size: Optional[int] = Field(None, ge=0)
    max_size: Optional[int] = Field(None, ge=0)
    mime_type: Optional[str] = None
    created_at_from: Optional[datetime] = None
    created_at_to: Optional[datetime] = None
    skip: Optional[int] = Field(None, ge=0)
    take: Optional[int] = Field(None, ge=1)
    revalidate: bool = False

    @model_validator(mode="after")
    def check_ranges(self):
        if self.min_size is not None and self.max_size is not None and self.min_size > self.max_size:
            raise ValueError("minSize must not exceed maxSize")
        if (
            self.created_at_from is not None
            and self.created_at_to is not None
            and self.created_at_from > self.created_at_to
        ):
            raise ValueError("createdAtFrom must not be after createdAtTo")
        return self

    def cache_fingerprint(self) -> str:
        """Stable serialization of the filter, ignoring ``revalidate``."""
        payload = self.model_dump(mode="json", exclude={"revalidate"})
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class FileResponse(CamelORMModel):
    id: uuid.UUID
    remote_id: str
    prefix: str
    name: str
    size: int
    mime_type: str
    created_at: datetime
    url: Optional[str] = None


class FileListResponse(CamelORMModel):
    files: list[FileResponse]


class FileDeleteResponse(CamelORMModel):
    file: FileResponse
