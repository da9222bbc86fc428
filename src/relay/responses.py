import logging
from typing import AsyncIterator, Dict, Optional

from fastapi.responses import JSONResponse, Response, StreamingResponse

from quota.models import RateDecision
from .errors import RateLimitExceeded, RelayError
from .schemas import ErrorResponse

logger = logging.getLogger(__name__)

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

SSE_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def rate_limit_headers(decision: Optional[RateDecision]) -> Dict[str, str]:
    if decision is None:
        return {}
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }


def preflight_response() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


def error_response(exc: RelayError) -> JSONResponse:
    headers = dict(CORS_HEADERS)
    if isinstance(exc, RateLimitExceeded):
        headers.update(rate_limit_headers(exc.decision))
        if exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)
    body = ErrorResponse(error=exc.message).model_dump()
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


def plain_error_response(status_code: int, message: str) -> JSONResponse:
    body = ErrorResponse(error=message).model_dump()
    return JSONResponse(status_code=status_code, content=body, headers=dict(CORS_HEADERS))


async def _terminate_on_error(frames: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    # Headers are already out, so no status can be sent any more. Re-raising
    # makes the server drop the connection instead of ending the body cleanly.
    try:
        async for frame in frames:
            yield frame
    except Exception as e:
        logger.exception("Stream failed after headers were sent: %s", e)
        raise


def sse_response(frames: AsyncIterator[bytes], decision: Optional[RateDecision] = None) -> StreamingResponse:
    headers = dict(CORS_HEADERS)
    headers.update(SSE_HEADERS)
    headers.update(rate_limit_headers(decision))
    return StreamingResponse(_terminate_on_error(frames), media_type="text/event-stream", headers=headers)
