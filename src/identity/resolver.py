import logging
from typing import Mapping, Optional

from .models import AnonymousIdentity, Identity, UserIdentity
from .verifier import SessionVerifier

logger = logging.getLogger(__name__)

UNKNOWN_ADDRESS = "unknown"


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    # Starlette headers are case-insensitive, plain dicts are not
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value


def bearer_token(headers: Mapping[str, str]) -> Optional[str]:
    raw = _header(headers, "Authorization")
    if not raw:
        return None
    scheme, _, token = raw.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def client_address(headers: Mapping[str, str], client_host: Optional[str]) -> str:
    forwarded = _header(headers, "X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if client_host:
        return client_host
    return UNKNOWN_ADDRESS


class IdentityResolver:
    """Maps an inbound request to exactly one identity.

    Authentication is opportunistic: a token that cannot be verified is not an
    error, the caller is simply treated as anonymous.
    """

    def __init__(self, verifier: Optional[SessionVerifier] = None) -> None:
        self._verifier = verifier

    async def resolve(self, headers: Mapping[str, str], client_host: Optional[str] = None) -> Identity:
        token = bearer_token(headers)
        if token and self._verifier is not None:
            try:
                user_id = await self._verifier.resolve_user_id(token)
                return UserIdentity(user_id=user_id)
            except Exception as e:
                logger.debug("Bearer token not resolved, falling back to anonymous: %s", e)
        return AnonymousIdentity(address=client_address(headers, client_host))
