from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List


class UpstreamStream(ABC):
    """An open streamed completion whose status has already been checked."""

    @abstractmethod
    def chunks(self) -> AsyncIterator[bytes]:
        """Yield raw body bytes as they arrive."""

    @abstractmethod
    async def aclose(self) -> None:
        """Release the underlying connection. Safe to call more than once."""


class ProviderAdapter(ABC):
    """Abstract base class for upstream chat-completion providers.

    ``open_stream`` must raise before returning when the provider refuses the
    request, so callers can still answer with a plain HTTP error.
    """

    name: str = "provider"

    @abstractmethod
    async def open_stream(self, messages: List[Dict[str, str]]) -> UpstreamStream:
        """Start a streamed completion for the full message list."""

    async def aclose(self) -> None:
        return None
