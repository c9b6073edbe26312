"""Runtime configuration registry for agent providers and managed processes.

Provides centralized configuration for provider CLIs, credential keys and the
timing/buffer settings used by process supervision.
Environment variables take precedence over YAML config.

Usage:
    from conductor.config.runtime_config import get_cli_path, get_default

    cli = get_cli_path("codex")  # Returns configured path or None
    timeout = get_liveness_timeout_seconds()  # 30 unless overridden

Provider configuration:
    from conductor.config.runtime_config import (
        get_provider_env_key,
        get_provider_default_model,
        get_available_providers,
    )

    key = get_provider_env_key("codex")  # Returns "OPENAI_API_KEY"
    model = get_provider_default_model("gemini")  # Returns "gemini-2.5-flash"
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent / "runtime.yaml"
_cached_config: Optional[Dict[str, Any]] = None


def _load_config() -> Dict[str, Any]:
    """Load runtime.yaml configuration, with caching."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            _cached_config = yaml.safe_load(f) or _default_config()
    else:
        _cached_config = _default_config()

    return _cached_config


def _default_config() -> Dict[str, Any]:
    """Return default configuration if runtime.yaml doesn't exist."""
    return {
        "version": "1.0",
        "providers": {
            "claude": {
                "backend": "sdk",
                "env_key": "ANTHROPIC_API_KEY",
                "default_model": "opus",
            },
            "codex": {
                "backend": "cli",
                "cli_path": None,
                "env_key": "OPENAI_API_KEY",
                "default_model": "gpt-5.1-codex-max",
            },
            "gemini": {
                "backend": "cli",
                "cli_path": None,
                "env_key": "GEMINI_API_KEY",
                "default_model": "gemini-2.5-flash",
            },
            "opencode": {
                "backend": "cli",
                "cli_path": None,
                "env_key": None,
                "default_model": "amazon-bedrock/anthropic.claude-sonnet-4-5-20250929-v1:0",
            },
        },
        "defaults": {
            "default_provider": "claude",
            "liveness_timeout_seconds": 30,
            "liveness_check_interval_seconds": 5,
            "max_scrollback_chars": 50000,
            "output_throttle_ms": 100,
            "output_batch_chars": 8192,
            "session_retention_minutes": 30,
            "startup_grace_ms": 200,
        },
    }


def reset_config() -> None:
    """Reset cached config (for testing)."""
    global _cached_config
    _cached_config = None


def _provider_config(provider: str) -> Dict[str, Any]:
    config = _load_config()
    providers = config.get("providers", {}) or {}
    return providers.get(provider.lower(), {}) or {}


def get_cli_path(provider: str) -> Optional[str]:
    """Get an explicitly configured CLI path for a provider.

    Environment variable precedence:
    1. CONDUCTOR_<PROVIDER>_CLI (e.g., CONDUCTOR_CODEX_CLI)
    2. Config file cli_path value
    3. None (caller falls back to PATH lookup)

    Args:
        provider: Provider identifier ("codex", "gemini" or "opencode").

    Returns:
        CLI path string, or None if nothing is configured.
    """
    cli_env_var = f"CONDUCTOR_{provider.upper()}_CLI"
    cli_value = os.environ.get(cli_env_var)
    if cli_value:
        return cli_value

    cli_path = _provider_config(provider).get("cli_path")
    if cli_path:
        return str(cli_path)

    return None


def get_provider_env_key(provider: str) -> Optional[str]:
    """Get the credential environment variable name for a provider."""
    return _provider_config(provider).get("env_key")


def get_provider_default_model(provider: str) -> Optional[str]:
    """Get the default model id configured for a provider."""
    return _provider_config(provider).get("default_model")


def get_available_providers() -> List[str]:
    """Get list of all configured provider IDs.

    Returns:
        List of provider ID strings.
    """
    config = _load_config()
    providers = config.get("providers", {}) or {}
    return list(providers.keys())


def get_default(key: str, fallback: Any = None) -> Any:
    """Get a default setting value.

    Args:
        key: Setting key (e.g., "max_scrollback_chars", "output_throttle_ms").
        fallback: Value to return if key not found.

    Returns:
        Setting value or fallback.
    """
    config = _load_config()
    defaults = config.get("defaults", {}) or {}
    return defaults.get(key, fallback)


def _env_number(env_var: str, fallback: float) -> float:
    raw = os.environ.get(env_var)
    if not raw:
        return fallback
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid %s value '%s'. Using %s.", env_var, raw, fallback)
        return fallback
    if value <= 0:
        logger.warning("%s must be positive (got %s). Using %s.", env_var, raw, fallback)
        return fallback
    return value


def get_liveness_timeout_seconds() -> float:
    """Get the quiet period after which a running agent is reported as stalled.

    CONDUCTOR_LIVENESS_TIMEOUT_SECONDS overrides the config value.
    """
    return _env_number(
        "CONDUCTOR_LIVENESS_TIMEOUT_SECONDS",
        float(get_default("liveness_timeout_seconds", 30)),
    )


def get_liveness_check_interval_seconds() -> float:
    return float(get_default("liveness_check_interval_seconds", 5))


def get_session_retention_minutes() -> float:
    """Get how long finished process sessions are kept before eviction.

    CONDUCTOR_SESSION_RETENTION_MINUTES overrides the config value.
    """
    return _env_number(
        "CONDUCTOR_SESSION_RETENTION_MINUTES",
        float(get_default("session_retention_minutes", 30)),
    )


def get_max_scrollback_chars() -> int:
    return int(get_default("max_scrollback_chars", 50000))


def get_output_throttle_ms() -> int:
    return int(get_default("output_throttle_ms", 100))


def get_output_batch_chars() -> int:
    return int(get_default("output_batch_chars", 8192))


def get_startup_grace_ms() -> int:
    return int(get_default("startup_grace_ms", 200))
