import logging
from typing import Optional

from fastapi import FastAPI
from fastapi import Request as FastAPIRequest
from fastapi.exceptions import RequestValidationError

from identity.resolver import IdentityResolver
from identity.verifier import HttpSessionVerifier, SessionVerifier
from providers.base import ProviderAdapter
from providers.groq import GroqAdapter
from quota.ledger import QuotaLedger
from quota.limiter import RateLimiter
from quota.mongo import close_mongo, get_db, init_mongo
from relay.config import RelayConfig
from relay.errors import RelayError, UPSTREAM_ERROR_MESSAGE
from relay.responses import error_response, plain_error_response, preflight_response, sse_response
from relay.schemas import ConversationRequest
from relay.service import ChatRelayService

logger = logging.getLogger(__name__)

CHAT_PATH = "/ai-chatbot"
INVALID_REQUEST_MESSAGE = "Cerere invalidă: trimite cel puțin un mesaj."


def _build_service(
    config: RelayConfig,
    ledger: QuotaLedger,
    verifier: Optional[SessionVerifier],
    upstream: Optional[ProviderAdapter],
) -> ChatRelayService:
    limiter = RateLimiter(
        ledger,
        auth_limit=config.auth_limit,
        anon_limit=config.anon_limit,
        window_seconds=config.window_seconds,
    )
    return ChatRelayService(config, IdentityResolver(verifier), limiter, upstream)


def create_app(
    config: Optional[RelayConfig] = None,
    ledger: Optional[QuotaLedger] = None,
    verifier: Optional[SessionVerifier] = None,
    upstream: Optional[ProviderAdapter] = None,
) -> FastAPI:
    """Build the relay app.

    Collaborators that are not passed in are built from ``config``; the ledger
    is then backed by MongoDB and only connected on startup.
    """
    config = config or RelayConfig.from_env()
    if verifier is None and config.auth_url:
        verifier = HttpSessionVerifier(config.auth_url, api_key=config.auth_api_key)
    if upstream is None and config.upstream_configured:
        upstream = GroqAdapter.from_config(config)

    app = FastAPI(title="Chat Relay", version="0.1.0")
    app.state.config = config
    app.state.verifier = verifier
    app.state.upstream = upstream
    app.state.service = None
    if ledger is not None:
        app.state.service = _build_service(config, ledger, verifier, upstream)

    @app.on_event("startup")
    async def startup_event() -> None:
        if app.state.service is None:
            await init_mongo()
            mongo_ledger = QuotaLedger(db=get_db(), timeout=config.ledger_timeout)
            app.state.service = _build_service(config, mongo_ledger, verifier, upstream)
        logger.info(
            "Relay initialized (upstream configured: %s, limits: %d auth / %d anon per %ds)",
            config.upstream_configured,
            config.auth_limit,
            config.anon_limit,
            config.window_seconds,
        )

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        for collaborator in (upstream, verifier):
            if collaborator is not None and hasattr(collaborator, "aclose"):
                try:
                    await collaborator.aclose()
                except Exception as e:  # pragma: no cover
                    logger.warning("Failed to close %s: %s", type(collaborator).__name__, e)
        await close_mongo()

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: FastAPIRequest, exc: RequestValidationError):
        logger.info("Rejected invalid chat request (%d validation errors)", len(exc.errors()))
        return plain_error_response(400, INVALID_REQUEST_MESSAGE)

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok"}

    @app.options(CHAT_PATH)
    async def chat_preflight():
        return preflight_response()

    @app.post(CHAT_PATH)
    async def chat(req: ConversationRequest, request: FastAPIRequest):
        service: ChatRelayService = app.state.service
        client_host = request.client.host if request.client else None

        try:
            session = await service.open(req, request.headers, client_host)
        except RelayError as e:
            logger.warning("Chat request refused (%d): %s", e.status_code, e)
            return error_response(e)
        except Exception as e:
            logger.exception("Chat request failed: %s", e)
            return plain_error_response(500, UPSTREAM_ERROR_MESSAGE)

        return sse_response(service.stream(session, request.is_disconnected), session.decision)

    return app


app = create_app()
