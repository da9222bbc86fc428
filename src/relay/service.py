import logging
from dataclasses import dataclass
from typing import AsyncIterator, Mapping, Optional

from identity.resolver import IdentityResolver
from providers.base import ProviderAdapter, UpstreamStream
from quota.limiter import RateLimiter
from quota.models import RateDecision
from streaming.transformer import ClientDisconnected, DisconnectCheck, StreamTransformer
from .config import RelayConfig
from .errors import ConfigurationError, RateLimitExceeded
from .schemas import ConversationRequest

logger = logging.getLogger(__name__)


@dataclass
class RelaySession:
    decision: RateDecision
    upstream: UpstreamStream


class ChatRelayService:
    """Runs one chat request through quota, upstream and transformation.

    ``open`` does everything that can still fail with a plain HTTP error.
    ``stream`` is only entered once the caller has committed to an SSE body.
    """

    def __init__(
        self,
        config: RelayConfig,
        resolver: IdentityResolver,
        limiter: RateLimiter,
        upstream: Optional[ProviderAdapter],
        transformer: Optional[StreamTransformer] = None,
    ) -> None:
        self._config = config
        self._resolver = resolver
        self._limiter = limiter
        self._upstream = upstream
        self._transformer = transformer or StreamTransformer()

    async def open(
        self,
        conversation: ConversationRequest,
        headers: Mapping[str, str],
        client_host: Optional[str] = None,
    ) -> RelaySession:
        if not self._config.upstream_configured or self._upstream is None:
            logger.error("Upstream API key not configured")
            raise ConfigurationError()

        identity = await self._resolver.resolve(headers, client_host)
        decision = await self._limiter.reserve(identity)
        if not decision.allowed:
            raise RateLimitExceeded.local(decision)

        messages = conversation.with_system_prompt(self._config.system_prompt)
        upstream = await self._upstream.open_stream(messages)
        logger.info(
            "Relay opened for %s identity (%d/%d used)",
            identity.kind,
            decision.current_count + 1,
            decision.limit,
        )
        return RelaySession(decision=decision, upstream=upstream)

    async def stream(
        self,
        session: RelaySession,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> AsyncIterator[bytes]:
        try:
            async for frame in self._transformer.relay(session.upstream.chunks(), is_disconnected):
                yield frame
        except ClientDisconnected:
            logger.info("Client disconnected; upstream read aborted")
        finally:
            await session.upstream.aclose()
