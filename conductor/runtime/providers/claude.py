"""
claude.py - Claude provider backed by the in-process Claude Code SDK.

SDK messages are matched by class name (AssistantMessage, UserMessage,
SystemMessage, ResultMessage) so the translation does not depend on
import-time access to the SDK's types.
"""

from __future__ import annotations

import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional

from conductor.runtime.claude_sdk import (
    SDK_AVAILABLE,
    create_agent_options,
    get_sdk_import_error,
    get_sdk_version,
    query_with_options,
)
from conductor.runtime.errors import ProviderUnavailableError
from conductor.runtime.events import (
    AssistantEvent,
    CanonicalEvent,
    CompleteEvent,
    ContentBlock,
    ErrorEvent,
    ResultEvent,
    SessionStartEvent,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from conductor.runtime.process.detection import InstallationStatus
from conductor.runtime.providers.base import Provider, ValidationResult

logger = logging.getLogger(__name__)

AUTH_ENV_KEYS = ("CLAUDE_CODE_OAUTH_TOKEN", "ANTHROPIC_API_KEY")


def _translate_block(block: Any) -> Optional[ContentBlock]:
    kind = type(block).__name__
    if kind == "TextBlock":
        return TextBlock(text=getattr(block, "text", ""))
    if kind == "ThinkingBlock":
        return ThinkingBlock(thinking=getattr(block, "thinking", ""))
    if kind == "ToolUseBlock":
        return ToolUseBlock(
            name=getattr(block, "name", "unknown"),
            input=getattr(block, "input", None) or {},
            tool_use_id=getattr(block, "id", None),
        )
    if kind == "ToolResultBlock":
        return ToolResultBlock(
            tool_use_id=getattr(block, "tool_use_id", None),
            content=getattr(block, "content", None),
            is_error=bool(getattr(block, "is_error", False)),
        )
    return None


def translate_sdk_message(message: Any) -> List[CanonicalEvent]:
    """Translate one Claude Code SDK message into canonical events.

    Returns an empty list for messages with no canonical counterpart.
    """
    kind = type(message).__name__

    if kind in ("AssistantMessage", "UserMessage"):
        content = getattr(message, "content", None)
        if isinstance(content, str):
            # User prompts echo back as plain strings
            return [] if kind == "UserMessage" else [AssistantEvent(blocks=[TextBlock(text=content)])]
        blocks = [b for b in (_translate_block(block) for block in content or []) if b is not None]
        if kind == "UserMessage":
            blocks = [b for b in blocks if isinstance(b, ToolResultBlock)]
        return [AssistantEvent(blocks=blocks)] if blocks else []

    if kind == "SystemMessage":
        data = getattr(message, "data", None) or {}
        if getattr(message, "subtype", None) == "init" and data.get("session_id"):
            return [SessionStartEvent(session_id=data["session_id"])]
        return []

    if kind == "ResultMessage":
        session_id = getattr(message, "session_id", None)
        result = getattr(message, "result", None)
        if getattr(message, "is_error", False):
            subtype = getattr(message, "subtype", "error")
            return [ErrorEvent(
                message=result or f"Claude query failed ({subtype})",
                session_id=session_id,
            )]
        return [ResultEvent(result=result, session_id=session_id), CompleteEvent(session_id=session_id)]

    logger.debug("Unhandled SDK message type: %s", kind)
    return []


class ClaudeProvider(Provider):
    """Claude models via the Claude Code SDK."""

    features = frozenset(["thinking", "tools", "streaming", "mcp"])

    def __init__(self, permission_mode: str = "acceptEdits"):
        self.permission_mode = permission_mode
        self._aborted = False

    @property
    def name(self) -> str:
        return "claude"

    async def execute_query(
        self,
        prompt: str,
        model: Optional[str] = None,
        cwd: Optional[str] = None,
        system_prompt: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        max_turns: Optional[int] = None,
        allowed_tools: Optional[List[str]] = None,
    ) -> AsyncIterator[CanonicalEvent]:
        self._aborted = False
        try:
            options = create_agent_options(
                cwd=cwd,
                model=self.get_model_string(model),
                system_prompt=system_prompt,
                max_turns=max_turns,
                allowed_tools=allowed_tools,
                permission_mode=self.permission_mode,
                env=env,
            )
        except ProviderUnavailableError as e:
            yield ErrorEvent(message=str(e), code="sdk_unavailable", suggestion="pip install claude-code-sdk")
            return

        stream = query_with_options(prompt, options)
        try:
            async for message in stream:
                if self._aborted:
                    break
                for event in translate_sdk_message(message):
                    yield event
        except Exception as e:
            logger.exception("Claude SDK query failed")
            yield ErrorEvent(message=f"Claude SDK query failed: {e}", code="sdk_error")
        finally:
            await stream.aclose()

    def abort(self) -> bool:
        self._aborted = True
        return True

    def detect_installation(self) -> InstallationStatus:
        has_api_key = any(os.environ.get(key) for key in AUTH_ENV_KEYS)
        if SDK_AVAILABLE:
            return InstallationStatus(
                installed=True,
                version=get_sdk_version(),
                method="sdk",
                has_api_key=has_api_key,
            )
        return InstallationStatus(
            installed=False,
            method="api-key-only" if has_api_key else "none",
            has_api_key=has_api_key,
            error=get_sdk_import_error(),
        )

    def validate_config(self) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        if not SDK_AVAILABLE:
            errors.append("Claude Code SDK is not installed. Install with: pip install claude-code-sdk")
        if not any(os.environ.get(key) for key in AUTH_ENV_KEYS):
            warnings.append(
                "No Claude authentication found. Set CLAUDE_CODE_OAUTH_TOKEN or ANTHROPIC_API_KEY."
            )
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
