import logging

import pytest
from pydantic import ValidationError

# Ensure import path includes src
import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from relay.config import DEFAULT_SYSTEM_PROMPT, RelayConfig


def test_defaults():
    config = RelayConfig()
    assert config.auth_limit == 20
    assert config.anon_limit == 10
    assert config.window_seconds == 3600
    assert config.max_tokens == 3072
    assert config.temperature == 0.8
    assert config.top_p == 0.95
    assert config.upstream_configured is False


def test_from_env_reads_limits_file_prompt_and_overrides(tmp_path):
    limits = tmp_path / "limits.yaml"
    limits.write_text("rate_limits:\n  auth_limit: 50\n  anon_limit: 5\n  window_seconds: 600\n", encoding="utf-8")
    prompt = tmp_path / "prompt.txt"
    prompt.write_text("  Răspunde scurt.\n", encoding="utf-8")

    config = RelayConfig.from_env({
        "RATE_LIMITS_PATH": str(limits),
        "SYSTEM_PROMPT_PATH": str(prompt),
        "GROQ_API_KEY": "gsk-live",
        "ANON_LIMIT": "7",
        "UPSTREAM_MODEL": "llama-3.1-8b-instant",
        "UPSTREAM_READ_TIMEOUT": "30",
        "AUTH_URL": "https://auth.example.com",
    })

    assert config.auth_limit == 50
    assert config.anon_limit == 7
    assert config.window_seconds == 600
    assert config.system_prompt == "Răspunde scurt."
    assert config.upstream_api_key == "gsk-live"
    assert config.upstream_configured is True
    assert config.upstream_model == "llama-3.1-8b-instant"
    assert config.read_timeout == 30.0
    assert config.auth_url == "https://auth.example.com"


def test_missing_files_fall_back_to_defaults(tmp_path, caplog):
    caplog.set_level(logging.WARNING)

    config = RelayConfig.from_env({
        "RATE_LIMITS_PATH": str(tmp_path / "absent.yaml"),
        "SYSTEM_PROMPT_PATH": str(tmp_path / "absent.txt"),
    })

    assert config.auth_limit == 20
    assert config.system_prompt == DEFAULT_SYSTEM_PROMPT
    assert "Rate limits file not found" in caplog.text


def test_blank_api_key_is_not_configured(tmp_path):
    config = RelayConfig.from_env({
        "GROQ_API_KEY": "   ",
        "RATE_LIMITS_PATH": str(tmp_path / "absent.yaml"),
    })
    assert config.upstream_api_key is None
    assert config.upstream_configured is False
    assert RelayConfig(upstream_api_key="  ").upstream_configured is False


def test_anonymous_limit_must_be_lower():
    with pytest.raises(ValidationError):
        RelayConfig(auth_limit=10, anon_limit=10)
    with pytest.raises(ValidationError):
        RelayConfig.from_env({"AUTH_LIMIT": "5", "ANON_LIMIT": "8"})


def test_non_numeric_limit_is_rejected():
    with pytest.raises(ValidationError):
        RelayConfig.from_env({"AUTH_LIMIT": "many"})


def test_unreadable_prompt_falls_back_to_builtin(tmp_path, caplog):
    caplog.set_level(logging.WARNING)
    undecodable = tmp_path / "prompt.txt"
    undecodable.write_bytes(b"\xff\xfe\xfa not utf-8")

    config = RelayConfig.from_env({
        "RATE_LIMITS_PATH": str(tmp_path / "absent.yaml"),
        "SYSTEM_PROMPT_PATH": str(undecodable),
    })
    assert config.system_prompt == DEFAULT_SYSTEM_PROMPT
    assert "Failed to load system prompt" in caplog.text

    # a directory cannot be opened as a file
    config = RelayConfig.from_env({
        "RATE_LIMITS_PATH": str(tmp_path / "absent.yaml"),
        "SYSTEM_PROMPT_PATH": str(tmp_path),
    })
    assert config.system_prompt == DEFAULT_SYSTEM_PROMPT
