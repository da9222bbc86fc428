from typing import Optional

from identity.models import Identity, is_anonymous

RATE_LIMIT_ANON_MESSAGE = (
    "Ai atins limita de {limit} mesaje pe oră. "
    "Autentifică-te pentru o limită mai mare sau încearcă din nou mai târziu."
)
RATE_LIMIT_USER_MESSAGE = (
    "Ai atins limita de {limit} mesaje pe oră. Te rugăm să încerci din nou mai târziu."
)
RATE_LIMIT_UPSTREAM_MESSAGE = (
    "Limita de cereri depășită. Te rugăm să încerci din nou în câteva momente."
)
NOT_CONFIGURED_MESSAGE = "Serviciul AI nu este configurat momentan."
UPSTREAM_ERROR_MESSAGE = "Eroare la comunicarea cu AI. Te rugăm să încerci din nou."


class RelayError(Exception):
    """Base class for failures surfaced to the caller as ``{"error": ...}``."""

    status_code: int = 500
    default_message: str = UPSTREAM_ERROR_MESSAGE

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(RelayError):
    status_code = 503
    default_message = NOT_CONFIGURED_MESSAGE


class RateLimitExceeded(RelayError):
    status_code = 429
    default_message = RATE_LIMIT_UPSTREAM_MESSAGE

    def __init__(
        self,
        message: Optional[str] = None,
        source: str = "upstream",
        retry_after: Optional[str] = None,
        decision=None,
    ) -> None:
        super().__init__(message)
        self.source = source
        self.retry_after = retry_after
        self.decision = decision

    @classmethod
    def local(cls, decision) -> "RateLimitExceeded":
        template = RATE_LIMIT_ANON_MESSAGE if is_anonymous(decision.identity) else RATE_LIMIT_USER_MESSAGE
        return cls(template.format(limit=decision.limit), source="local", decision=decision)

    def __str__(self) -> str:
        return f"RateLimitExceeded(source={self.source}, retry_after={self.retry_after})"


class UpstreamError(RelayError):
    status_code = 500
    default_message = UPSTREAM_ERROR_MESSAGE

    def __init__(self, message: Optional[str] = None, upstream_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class MalformedFrame(Exception):
    """A single SSE event could not be decoded; the stream continues without it."""


class LedgerWriteFailure(Exception):
    """A usage event could not be recorded; the request proceeds regardless."""

    def __init__(self, identity: Identity, cause: Exception) -> None:
        super().__init__(f"failed to record usage for {identity.kind}: {cause}")
        self.identity = identity
        self.cause = cause
