"""
registry.py - Provider lookup by name or model id.

Model routing is a plain ordered table of (predicate, provider name); the
first predicate matching the model id wins, and unmatched ids fall back to
the configured default provider (claude).

    provider = get_provider_for_model("gpt-5.1-codex")   # CodexProvider
    provider = get_provider_for_model("opus")            # ClaudeProvider
    provider = get_provider("gemini")                    # GeminiProvider
    provider = get_provider_for_model("opencode/big-pickle")  # OpenCodeProvider
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Tuple, Type

from conductor.config.model_registry import (
    ModelDefinition,
    is_claude_model,
    is_codex_model,
    is_gemini_model,
    is_opencode_model,
)
from conductor.config.runtime_config import get_default
from conductor.runtime.errors import ProviderNotFoundError
from conductor.runtime.process.detection import InstallationStatus
from conductor.runtime.providers.base import Provider, ValidationResult
from conductor.runtime.providers.claude import ClaudeProvider
from conductor.runtime.providers.codex import CodexProvider
from conductor.runtime.providers.gemini import GeminiProvider
from conductor.runtime.providers.opencode import OpenCodeProvider

logger = logging.getLogger(__name__)

PROVIDERS: Dict[str, Type[Provider]] = {
    "claude": ClaudeProvider,
    "codex": CodexProvider,
    "gemini": GeminiProvider,
    "opencode": OpenCodeProvider,
}

MODEL_ROUTES: List[Tuple[Callable[[str], bool], str]] = [
    (is_claude_model, "claude"),
    (is_codex_model, "codex"),
    (is_gemini_model, "gemini"),
    (is_opencode_model, "opencode"),
]

DEFAULT_PROVIDER = "claude"


def list_providers() -> List[str]:
    """Get the names of all registered providers."""
    return list(PROVIDERS.keys())


def get_provider(name: str) -> Provider:
    """Instantiate a provider by name.

    Raises:
        ProviderNotFoundError: If the name is not registered.
    """
    provider_class = PROVIDERS.get(name.lower())
    if provider_class is None:
        raise ProviderNotFoundError(name, list_providers())
    return provider_class()


def resolve_provider_name(model_id: str) -> str:
    """Name of the provider that handles ``model_id``."""
    for matches, provider_name in MODEL_ROUTES:
        if matches(model_id):
            return provider_name

    default = get_default("default_provider", DEFAULT_PROVIDER)
    if default not in PROVIDERS:
        logger.warning("Configured default_provider '%s' is not registered; using %s", default, DEFAULT_PROVIDER)
        default = DEFAULT_PROVIDER
    logger.debug("No provider route for model '%s'; defaulting to %s", model_id, default)
    return default


def get_provider_for_model(model_id: str) -> Provider:
    """Instantiate the provider that handles ``model_id``."""
    return get_provider(resolve_provider_name(model_id))


def get_all_models() -> List[ModelDefinition]:
    """All models across all providers, in registration order."""
    models: List[ModelDefinition] = []
    for name in list_providers():
        models.extend(get_provider(name).get_available_models())
    return models


def check_all_providers() -> Dict[str, InstallationStatus]:
    """Installation status of every provider, keyed by name."""
    return {name: get_provider(name).detect_installation() for name in list_providers()}


def validate_all_providers() -> Dict[str, ValidationResult]:
    return {name: get_provider(name).validate_config() for name in list_providers()}
