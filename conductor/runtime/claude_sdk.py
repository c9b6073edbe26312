"""
claude_sdk.py - Claude Code SDK adapter.

This module is the ONLY place that imports the Claude Code SDK package.
It provides:
1. Optional import with availability detection
2. An options builder for agent queries
3. A thin query wrapper yielding raw SDK messages

The SDK is an optional dependency (``pip install conductor[sdk]``). When it is
missing, ``get_sdk_module()`` raises ProviderUnavailableError and the Claude
provider reports that as an error event.

Usage:
    from conductor.runtime.claude_sdk import (
        SDK_AVAILABLE,
        create_agent_options,
        query_with_options,
    )
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from conductor.runtime.errors import ProviderUnavailableError

logger = logging.getLogger(__name__)

# =============================================================================
# SDK Availability Detection
# =============================================================================

SDK_AVAILABLE: bool = False
_sdk_module: Optional[Any] = None
_sdk_import_error: Optional[str] = None

try:
    import claude_code_sdk

    _sdk_module = claude_code_sdk
    SDK_AVAILABLE = True
    logger.debug("claude_code_sdk imported successfully")
except ImportError as e:
    _sdk_import_error = str(e)
    logger.debug("claude_code_sdk not available: %s", e)


def get_sdk_module() -> Any:
    """Get the Claude Code SDK module.

    Returns:
        The claude_code_sdk module.

    Raises:
        ProviderUnavailableError: If SDK is not available.
    """
    if not SDK_AVAILABLE:
        raise ProviderUnavailableError(
            f"Claude Code SDK is not available: {_sdk_import_error}. "
            "Install with: pip install claude-code-sdk"
        )
    return _sdk_module


def get_sdk_version() -> Optional[str]:
    if not SDK_AVAILABLE:
        return None
    return getattr(_sdk_module, "__version__", None)


def get_sdk_import_error() -> Optional[str]:
    return _sdk_import_error


# =============================================================================
# Options Builder
# =============================================================================

DEFAULT_PERMISSION_MODE = "acceptEdits"
DEFAULT_MAX_TURNS = 1000


def create_agent_options(
    cwd: Optional[Union[str, Path]] = None,
    model: Optional[str] = None,
    system_prompt: Optional[str] = None,
    max_turns: Optional[int] = None,
    allowed_tools: Optional[List[str]] = None,
    permission_mode: str = DEFAULT_PERMISSION_MODE,
    env: Optional[Dict[str, str]] = None,
) -> Any:
    """Create ClaudeCodeOptions for an agent query.

    Args:
        cwd: Working directory for the SDK session.
        model: Concrete model string.
        system_prompt: Optional system prompt.
        max_turns: Max conversation turns (default: DEFAULT_MAX_TURNS).
        allowed_tools: Optional explicit tool allow-list.
        permission_mode: SDK permission mode ("acceptEdits" by default).
        env: Extra environment for the SDK's child process.

    Returns:
        ClaudeCodeOptions instance.

    Raises:
        ProviderUnavailableError: If SDK is not available.
    """
    sdk = get_sdk_module()

    options_kwargs: Dict[str, Any] = {
        "permission_mode": permission_mode,
        "max_turns": max_turns or DEFAULT_MAX_TURNS,
    }
    if cwd:
        options_kwargs["cwd"] = str(cwd)
    if model:
        options_kwargs["model"] = model
    if system_prompt:
        options_kwargs["system_prompt"] = system_prompt
    if allowed_tools:
        options_kwargs["allowed_tools"] = list(allowed_tools)
    if env:
        options_kwargs["env"] = dict(env)

    return sdk.ClaudeCodeOptions(**options_kwargs)


async def query_with_options(prompt: str, options: Any) -> AsyncIterator[Any]:
    """Execute a query with the provided options.

    Args:
        prompt: The prompt to send to the SDK.
        options: ClaudeCodeOptions instance.

    Yields:
        SDK messages from the query response.

    Raises:
        ProviderUnavailableError: If SDK is not available.
    """
    sdk = get_sdk_module()

    async for message in sdk.query(prompt=prompt, options=options):
        yield message
