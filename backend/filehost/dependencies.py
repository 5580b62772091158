"""FastAPI dependencies shared by the routes.

The coordinator and authorization client are built once in the app lifespan
and stored on ``app.state``.
"""
import uuid
from datetime import datetime
from typing import Optional

import pydantic
from fastapi import Header, Query, Request
from fastapi.exceptions import RequestValidationError

from filehost.schemas.file import FileListQuery
from filehost.services.authorization import AuthorizationClient, auth_error_message
from filehost.services.errors import AuthorizationError
from filehost.services.file_service import FileCoordinator


def get_file_coordinator(request: Request) -> FileCoordinator:
    return request.app.state.file_coordinator


def get_authorization_client(request: Request) -> AuthorizationClient:
    return request.app.state.authorization_client


async def require_authorization(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> None:
    """Reject the request unless it carries a valid ``Bearer`` token."""
    if not authorization:
        raise AuthorizationError(auth_error_message("Missing authorization header"))
    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not token.strip():
        raise AuthorizationError(auth_error_message("Expected a Bearer token"))
    await get_authorization_client(request).authenticate(token.strip())


def list_query(
    prefix: Optional[str] = Query(None),
    name: Optional[str] = Query(None),
    id: Optional[uuid.UUID] = Query(None),
    remote_id: Optional[str] = Query(None, alias="remoteId"),
    min_size: Optional[int] = Query(None, alias="minSize"),
    max_size: Optional[int] = Query(None, alias="maxSize"),
    mime_type: Optional[str] = Query(None, alias="mimeType"),
    created_at_from: Optional[datetime] = Query(None, alias="createdAtFrom"),
    created_at_to: Optional[datetime] = Query(None, alias="createdAtTo"),
    skip: Optional[int] = Query(None),
    take: Optional[int] = Query(None),
    revalidate: bool = Query(False),
) -> FileListQuery:
    """Collect list filters from camelCase query parameters."""
    try:
        return FileListQuery(
            prefix=prefix,
            name=name,
            id=id,
            remote_id=remote_id,
            min_size=min_size,
            max_size=max_size,
            mime_type=mime_type,
            created_at_from=created_at_from,
            created_at_to=created_at_to,
            skip=skip,
            take=take,
            revalidate=revalidate,
        )
    except pydantic.ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False, include_context=False)) from e
