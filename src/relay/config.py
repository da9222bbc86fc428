import logging
import os
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

_CONFIG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "config")

DEFAULT_SYSTEM_PROMPT = (
    "Ești asistent de călătorie pentru o platformă românească de turism. "
    "Răspunde doar în română, în proză naturală, fără markdown decorativ."
)


class RelayConfig(BaseModel):
    """Everything the relay needs, resolved once at startup."""

    upstream_api_key: Optional[str] = None
    upstream_base_url: str = "https://api.groq.com/openai/v1"
    upstream_model: str = "llama-3.3-70b-versatile"
    max_tokens: Optional[int] = Field(default=3072, gt=0)
    temperature: Optional[float] = Field(default=0.8, ge=0, le=2)
    top_p: Optional[float] = Field(default=0.95, ge=0, le=1)
    connect_timeout: float = Field(default=10.0, gt=0)
    read_timeout: float = Field(default=60.0, gt=0)

    auth_limit: int = Field(default=20, gt=0)
    anon_limit: int = Field(default=10, gt=0)
    window_seconds: int = Field(default=3600, gt=0)
    ledger_timeout: float = Field(default=5.0, gt=0)

    auth_url: Optional[str] = None
    auth_api_key: Optional[str] = None

    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    @model_validator(mode="after")
    def _anonymous_limit_is_lower(self) -> "RelayConfig":
        if self.anon_limit >= self.auth_limit:
            raise ValueError(
                f"anon_limit ({self.anon_limit}) must be lower than auth_limit ({self.auth_limit})"
            )
        return self

    @property
    def upstream_configured(self) -> bool:
        return bool(self.upstream_api_key and self.upstream_api_key.strip())

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelayConfig":
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}

        values.update(_load_limits(env.get("RATE_LIMITS_PATH")))

        _set(values, "upstream_api_key", env.get("GROQ_API_KEY"))
        _set(values, "upstream_base_url", env.get("UPSTREAM_BASE_URL"))
        _set(values, "upstream_model", env.get("UPSTREAM_MODEL"))
        _set(values, "max_tokens", env.get("UPSTREAM_MAX_TOKENS"))
        _set(values, "temperature", env.get("UPSTREAM_TEMPERATURE"))
        _set(values, "top_p", env.get("UPSTREAM_TOP_P"))
        _set(values, "connect_timeout", env.get("UPSTREAM_CONNECT_TIMEOUT"))
        _set(values, "read_timeout", env.get("UPSTREAM_READ_TIMEOUT"))
        _set(values, "auth_limit", env.get("AUTH_LIMIT"))
        _set(values, "anon_limit", env.get("ANON_LIMIT"))
        _set(values, "window_seconds", env.get("RATE_LIMIT_WINDOW_SECONDS"))
        _set(values, "ledger_timeout", env.get("LEDGER_TIMEOUT"))
        _set(values, "auth_url", env.get("AUTH_URL"))
        _set(values, "auth_api_key", env.get("AUTH_API_KEY"))

        prompt = _load_system_prompt(env.get("SYSTEM_PROMPT_PATH"))
        if prompt:
            values["system_prompt"] = prompt

        return cls(**values)


def _set(values: Dict[str, Any], key: str, raw: Optional[str]) -> None:
    if raw is not None and raw.strip():
        values[key] = raw.strip()


def _load_limits(limits_path: Optional[str]) -> Dict[str, Any]:
    path = limits_path or os.path.join(_CONFIG_DIR, "rate_limits.yaml")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Rate limits file not found at %s; using defaults", path)
        return {}
    except Exception as e:
        logger.warning("Failed to load rate limits: %s", e)
        return {}

    limits = data.get("rate_limits", {}) if isinstance(data, dict) else {}
    if not isinstance(limits, dict):
        return {}
    result: Dict[str, Any] = {}
    for key in ("auth_limit", "anon_limit", "window_seconds"):
        if limits.get(key) is not None:
            result[key] = limits[key]
    return result


def _load_system_prompt(prompt_path: Optional[str]) -> Optional[str]:
    path = prompt_path or os.path.join(_CONFIG_DIR, "system_prompt.txt")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read().strip() or None
    except FileNotFoundError:
        logger.warning("System prompt not found at %s; using built-in prompt", path)
        return None
    except Exception as e:
        logger.warning("Failed to load system prompt from %s: %s; using built-in prompt", path, e)
        return None
