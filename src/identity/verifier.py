import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class SessionVerificationError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SessionVerifier(ABC):
    """Resolves a bearer token to the id of the user it was issued for."""

    @abstractmethod
    async def resolve_user_id(self, token: str) -> str:
        """Return the user id, or raise if the token does not map to a user."""


class HttpSessionVerifier(SessionVerifier):
    """Session verifier backed by a Supabase-style ``/auth/v1/user`` endpoint.

    The token is forwarded as-is; the service key travels in the ``apikey``
    header the auth gateway expects.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    def _headers(self, token: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        if self._api_key:
            headers["apikey"] = self._api_key
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def resolve_user_id(self, token: str) -> str:
        client = self._get_client()
        resp = await client.get("/auth/v1/user", headers=self._headers(token))
        if resp.status_code != 200:
            logger.debug("Session verification returned %s", resp.status_code)
            raise SessionVerificationError("Session rejected", resp.status_code)
        data = resp.json()
        user_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(user_id, str) or not user_id:
            raise SessionVerificationError("Session response carried no user id", resp.status_code)
        return user_id

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
