"""
providers/ - Agent backends behind one streaming contract.

Interfaces:
- Provider: execute_query() async generator of canonical events

Providers:
- ClaudeProvider: Claude Code SDK (in process)
- CodexProvider: Codex CLI (subprocess)
- GeminiProvider: Gemini CLI (subprocess)
- OpenCodeProvider: OpenCode CLI (subprocess, prompt on stdin)

Registry:
- get_provider_for_model(): Route a model id to its provider
- get_provider(): Provider by name
- get_all_models() / check_all_providers()

Usage:
    >>> from conductor.runtime.providers import get_provider_for_model
    >>> provider = get_provider_for_model("opus")
    >>> async for event in provider.execute_query("Refactor utils.py", cwd="/repo"):
    ...     print(event.to_dict())
"""

from .base import Provider, ValidationResult
from .claude import ClaudeProvider
from .codex import CodexProvider
from .gemini import GeminiProvider
from .opencode import OpenCodeProvider
from .registry import (
    check_all_providers,
    get_all_models,
    get_provider,
    get_provider_for_model,
    list_providers,
    resolve_provider_name,
)

__all__ = [
    "ClaudeProvider",
    "CodexProvider",
    "GeminiProvider",
    "OpenCodeProvider",
    "Provider",
    "ValidationResult",
    "check_all_providers",
    "get_all_models",
    "get_provider",
    "get_provider_for_model",
    "list_providers",
    "resolve_provider_name",
]
