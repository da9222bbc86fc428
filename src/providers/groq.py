from typing import Optional

import httpx

from .base_openai import BaseOpenAIAdapter


GROQ_BASE_URL = "https://api.groq.com/openai/v1"
GROQ_DEFAULT_MODEL = "llama-3.3-70b-versatile"


class GroqAdapter(BaseOpenAIAdapter):
    """Groq provider adapter (OpenAI-compatible)."""

    def __init__(
        self,
        api_key: str,
        base_url: str = GROQ_BASE_URL,
        model: str = GROQ_DEFAULT_MODEL,
        client: Optional[httpx.AsyncClient] = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        max_tokens: Optional[int] = 3072,
        temperature: Optional[float] = 0.8,
        top_p: Optional[float] = 0.95,
    ) -> None:
        super().__init__(
            provider_name="groq",
            base_url=base_url,
            api_key=api_key,
            model=model,
            client=client,
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            max_tokens=max_tokens,
            temperature=temperature,
            top_p=top_p,
        )

    @classmethod
    def from_config(cls, config, client: Optional[httpx.AsyncClient] = None) -> "GroqAdapter":
        return cls(
            api_key=config.upstream_api_key,
            base_url=config.upstream_base_url,
            model=config.upstream_model,
            client=client,
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            top_p=config.top_p,
        )
