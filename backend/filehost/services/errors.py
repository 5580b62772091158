"""Failure taxonomy shared by the file services.

Routes let these propagate; ``filehost.main`` maps them to HTTP responses.
"""


class FileServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(FileServiceError):
    """Malformed upload input."""

    status_code = 400


class NotFoundError(FileServiceError):
    """No record matches the requested id or address."""

    status_code = 404


class MetadataStoreError(FileServiceError):
    """The relational store failed."""

    status_code = 500


class AuthorizationError(FileServiceError):
    """Bearer token missing or rejected by the authorization service."""

    status_code = 401


class RemoteStoreError(FileServiceError):
    """Object storage provider error - carries the provider status and message."""

    def __init__(self, status: int, message: str):
        self.status = status
        super().__init__(message)

    @property
    def status_code(self) -> int:
        if 400 <= self.status < 600:
            return self.status
        return 502

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    def __str__(self) -> str:
        return f"Remote store error {self.status}: {self.message}"
