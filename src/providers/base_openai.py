import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from relay.errors import RateLimitExceeded, UpstreamError
from providers.base import ProviderAdapter, UpstreamStream

logger = logging.getLogger(__name__)

MAX_LOGGED_BODY = 2000


class HttpxUpstreamStream(UpstreamStream):
    def __init__(self, response: httpx.Response, provider_name: str) -> None:
        self._response = response
        self._provider_name = provider_name
        self._closed = False

    async def chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            logger.error("%s stream interrupted: %s", self._provider_name, e)
            raise UpstreamError(upstream_status=self._response.status_code) from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class BaseOpenAIAdapter(ProviderAdapter):
    """Base adapter for OpenAI-compatible streamed chat completions.

    Subclasses provide the provider name and defaults; credentials and model
    parameters come from the relay configuration.
    """

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        api_key: str,
        model: str,
        client: Optional[httpx.AsyncClient] = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
    ) -> None:
        self._provider_name = provider_name
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        self._client = client
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._top_p = top_p

    @property
    def name(self) -> str:
        return self._provider_name

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    def build_payload(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "stream": True,
        }
        if self._max_tokens is not None:
            payload["max_tokens"] = self._max_tokens
        if self._temperature is not None:
            payload["temperature"] = self._temperature
        if self._top_p is not None:
            payload["top_p"] = self._top_p
        return payload

    async def open_stream(self, messages: List[Dict[str, str]]) -> UpstreamStream:
        client = self._get_client()
        payload = self.build_payload(messages)
        logger.info("Sending request to %s with %d messages", self._provider_name, len(messages))

        request = client.build_request(
            "POST",
            "/chat/completions",
            headers=self._headers(),
            content=json.dumps(payload),
            timeout=self._timeout,
        )
        try:
            resp = await client.send(request, stream=True)
        except httpx.TimeoutException as e:
            logger.error("%s request timed out: %s", self._provider_name, e)
            raise UpstreamError() from e
        except httpx.HTTPError as e:
            logger.error("%s request failed: %s", self._provider_name, e)
            raise UpstreamError() from e

        if resp.status_code == 200:
            return HttpxUpstreamStream(resp, self._provider_name)

        body = await self._read_error_body(resp)
        logger.error("%s API error (%s): %s", self._provider_name, resp.status_code, body)
        if resp.status_code == 429:
            self._raise_rate_limit_error(resp)
        raise UpstreamError(upstream_status=resp.status_code)

    async def _read_error_body(self, resp: httpx.Response) -> str:
        try:
            await resp.aread()
            body = resp.text
        except Exception as e:
            body = f"<unreadable: {e}>"
        finally:
            await resp.aclose()
        if len(body) > MAX_LOGGED_BODY:
            body = f"{body[:MAX_LOGGED_BODY]}...(truncated)"
        return body

    def _raise_rate_limit_error(self, resp: httpx.Response) -> None:
        retry_after = resp.headers.get("retry-after")
        raise RateLimitExceeded(source="upstream", retry_after=retry_after)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
