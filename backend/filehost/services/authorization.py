"""Bearer token validation against the external authorization service."""
import logging
from typing import Optional

import aiohttp

from filehost.services.errors import AuthorizationError

logger = logging.getLogger(__name__)


def auth_error_message(message: Optional[str] = None) -> str:
    return f"[API_ERROR: authentication] {message or 'An error occurs'}"


class AuthorizationClient:
    """Calls ``GET {base_url}/authenticate?token=...``.

    The service answers ``{"status": {"valid": bool, "message": str}}`` on
    success and ``{"message": str}`` with a non-2xx status on failure.
    Open a persistent session with ``open()`` (done in the app lifespan);
    without it each call uses a throwaway session.
    """

    def __init__(self, base_url: str, timeout: float = 10.0):
        if not base_url:
            raise ValueError("AUTHORIZATION_SERVICE_URL not set. Cannot validate tokens.")
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def open(self) -> None:
        if not self._session:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "AuthorizationClient":
        await self.open()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def authenticate(self, token: str) -> None:
        """Return normally for a valid token, raise ``AuthorizationError`` otherwise."""
        if self._session:
            await self._authenticate(self._session, token)
            return
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            await self._authenticate(session, token)

    async def _authenticate(self, session: aiohttp.ClientSession, token: str) -> None:
        url = f"{self.base_url}/authenticate"
        try:
            async with session.get(url, params={"token": token}) as resp:
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = None
                status = resp.status
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.warning("Authorization service unreachable: %s", e)
            raise AuthorizationError(auth_error_message()) from e

        if not isinstance(data, dict):
            raise AuthorizationError(auth_error_message())

        if status >= 400:
            raise AuthorizationError(auth_error_message(data.get("message")))

        result = data.get("status") or {}
        if not result.get("valid"):
            raise AuthorizationError(auth_error_message(result.get("message")))
