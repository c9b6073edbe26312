"""
translation.py - Map raw backend records to canonical events.

Each translator takes one decoded JSON record from a CLI's structured output
stream and returns a CanonicalEvent, or None when the record has no
canonical counterpart. Translators are pure and total: they never raise, and
anything they do not recognise (including non-dict input) maps to None.

Supported streams:
- Codex:  ``codex exec --json`` (thread.*, turn.*, item.*, error)
- Gemini: ``gemini --output-format stream-json`` (init, message, tool_use,
  tool_result, result, error), plus the assistant/tool_call envelope some
  Gemini CLI builds emit.
- OpenCode: ``opencode run --format json`` (text, step_start, step_finish,
  tool_call, tool_result, tool_error)

``classify_stderr`` maps well-known failure text on a CLI's stderr to an
error code and a remediation hint for ErrorEvent.
"""

from __future__ import annotations

import itertools
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

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

logger = logging.getLogger(__name__)

Translator = Callable[[Any], Optional[CanonicalEvent]]

CODEX_UNKNOWN_ERROR = "Unknown error from Codex CLI"
GEMINI_UNKNOWN_ERROR = "Unknown error from Gemini CLI"
OPENCODE_STEP_ERROR = "Step execution failed"
OPENCODE_TOOL_ERROR = "Tool execution failed"

_opencode_tool_ids = itertools.count(1)


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first(*values: Any) -> Any:
    """Return the first truthy value, or None."""
    for value in values:
        if value:
            return value
    return None


def _single(block: ContentBlock, session_id: Optional[str] = None) -> AssistantEvent:
    return AssistantEvent(blocks=[block], session_id=session_id)


# =============================================================================
# Codex
# =============================================================================


def translate_codex_event(event: Any) -> Optional[CanonicalEvent]:
    """Translate one ``codex exec --json`` record.

    Args:
        event: Decoded JSON record.

    Returns:
        CanonicalEvent or None if the record is not mapped.
    """
    if not isinstance(event, dict):
        return None
    try:
        return _translate_codex(event)
    except Exception:
        logger.exception("Failed to translate Codex event of type %r", event.get("type"))
        return None


def _translate_codex(event: Dict[str, Any]) -> Optional[CanonicalEvent]:
    event_type = event.get("type")
    data = _as_dict(event.get("data"))
    item = _as_dict(event.get("item"))

    if event_type == "thread.started":
        return SessionStartEvent(session_id=_first(event.get("thread_id"), data.get("thread_id")))

    if event_type == "item.completed":
        return _codex_item_completed(item or data)

    if event_type == "item.started":
        started = item or data
        if started.get("type") == "command_execution" and started.get("command"):
            return _single(ToolUseBlock(name="bash", input={"command": started["command"]}))
        return None

    if event_type == "thread.completed":
        return CompleteEvent(session_id=_first(event.get("thread_id"), data.get("thread_id")))

    if event_type == "error":
        message = _first(
            data.get("message"),
            item.get("message"),
            event.get("message"),
        )
        return ErrorEvent(message=str(message) if message else CODEX_UNKNOWN_ERROR)

    # turn.started, turn.completed and anything new
    logger.debug("Unhandled Codex event type: %s", event_type)
    return None


def _codex_item_completed(item: Dict[str, Any]) -> Optional[CanonicalEvent]:
    if not item:
        return None

    item_type = item.get("type") or item.get("item_type")

    if item_type == "reasoning":
        return _single(ThinkingBlock(thinking=str(_first(item.get("text"), item.get("content")) or "")))

    if item_type in ("agent_message", "message"):
        return _single(TextBlock(text=str(_first(item.get("content"), item.get("text")) or "")))

    if item_type == "command_execution":
        command = item.get("command") or ""
        output = _first(item.get("aggregated_output"), item.get("output")) or ""
        return _single(TextBlock(text=f"```bash\n{command}\n```\n\n{output}"))

    if item_type == "tool_use":
        return _single(ToolUseBlock(
            name=str(_first(item.get("tool"), item.get("command")) or "unknown"),
            input=_first(item.get("input"), item.get("args")) or {},
        ))

    if item_type == "tool_result":
        return _single(ToolResultBlock(
            tool_use_id=item.get("tool_use_id"),
            content=_first(item.get("output"), item.get("result")),
        ))

    if item_type == "todo_list":
        todos = item.get("items") or []
        lines = []
        for i, todo in enumerate(todos, 1):
            text = todo.get("text", "") if isinstance(todo, dict) else todo
            lines.append(f"{i}. {text}")
        return _single(TextBlock(text="**Todo List:**\n" + "\n".join(lines)))

    text = _first(item.get("text"), item.get("content"), item.get("aggregated_output"))
    if text:
        return _single(TextBlock(text=str(text)))
    return None


# =============================================================================
# Gemini
# =============================================================================


def translate_gemini_event(event: Any) -> Optional[CanonicalEvent]:
    """Translate one ``gemini --output-format stream-json`` record.

    Args:
        event: Decoded JSON record.

    Returns:
        CanonicalEvent or None if the record is not mapped.
    """
    if not isinstance(event, dict):
        return None
    try:
        return _translate_gemini(event)
    except Exception:
        logger.exception("Failed to translate Gemini event of type %r", event.get("type"))
        return None


def _translate_gemini(event: Dict[str, Any]) -> Optional[CanonicalEvent]:
    event_type = event.get("type")
    session_id = event.get("session_id")

    if event_type in ("init", "system"):
        if session_id:
            return SessionStartEvent(session_id=session_id)
        return None

    if event_type == "message":
        if event.get("role", "assistant") != "assistant":
            return None
        content = event.get("content")
        if not content:
            return None
        return _single(TextBlock(text=str(content)), session_id)

    if event_type == "assistant":
        message = _as_dict(event.get("message"))
        blocks: List[ContentBlock] = []
        for part in message.get("content") or []:
            part = _as_dict(part)
            if part.get("type") == "text" and "text" in part:
                blocks.append(TextBlock(text=str(part["text"])))
            elif part.get("type") == "thinking" and "thinking" in part:
                blocks.append(ThinkingBlock(thinking=str(part["thinking"])))
        if not blocks:
            return None
        return AssistantEvent(blocks=blocks, session_id=session_id)

    if event_type == "tool_use":
        return _single(ToolUseBlock(
            name=str(_first(event.get("tool_name"), event.get("tool"), event.get("name")) or "unknown"),
            input=_first(event.get("parameters"), event.get("input"), event.get("args")) or {},
            tool_use_id=event.get("tool_id"),
        ), session_id)

    if event_type == "tool_result":
        return _single(ToolResultBlock(
            tool_use_id=event.get("tool_id"),
            content=_first(event.get("output"), event.get("result")),
            is_error=event.get("status") == "error" or event.get("success") is False,
        ), session_id)

    if event_type == "tool_call":
        return _gemini_tool_call(event)

    if event_type == "result":
        if event.get("is_error") or event.get("status") == "error":
            error = _as_dict(event.get("error"))
            message = _first(error.get("message"), event.get("error"), event.get("result"))
            return ErrorEvent(message=str(message or GEMINI_UNKNOWN_ERROR), session_id=session_id)
        return ResultEvent(result=event.get("result"), session_id=session_id)

    if event_type == "error":
        message = _first(event.get("error"), event.get("message"))
        return ErrorEvent(message=str(message or GEMINI_UNKNOWN_ERROR), session_id=session_id)

    logger.debug("Unhandled Gemini event type: %s", event_type)
    return None


def _gemini_tool_call(event: Dict[str, Any]) -> Optional[CanonicalEvent]:
    tool_call = _as_dict(event.get("tool_call"))
    function = _as_dict(tool_call.get("function"))
    if not function:
        return None

    arguments = function.get("arguments") or "{}"
    try:
        tool_input = json.loads(arguments) if isinstance(arguments, str) else arguments
    except json.JSONDecodeError:
        tool_input = {"raw": arguments}

    call_id = event.get("call_id")
    use = ToolUseBlock(name=str(function.get("name") or "unknown"), input=tool_input, tool_use_id=call_id)
    subtype = event.get("subtype")

    if subtype == "started":
        return AssistantEvent(blocks=[use], session_id=event.get("session_id"))
    if subtype == "completed":
        result = tool_call.get("result")
        content = result if isinstance(result, str) else json.dumps(result)
        return AssistantEvent(
            blocks=[use, ToolResultBlock(tool_use_id=call_id, content=content)],
            session_id=event.get("session_id"),
        )
    return None


# =============================================================================
# OpenCode
# =============================================================================


def translate_opencode_event(event: Any) -> Optional[CanonicalEvent]:
    """Translate one ``opencode run --format json`` record.

    OpenCode wraps the payload of each record in a ``part`` object and
    carries the session id as ``sessionID``. ``step_start`` is informational
    and maps to None.
    Tool calls without a ``call_id`` get a generated ``opencode-tool-<n>`` id.
    """
    if not isinstance(event, dict):
        return None
    try:
        return _translate_opencode(event)
    except Exception:
        logger.exception("Failed to translate OpenCode event of type %r", event.get("type"))
        return None


def reset_opencode_tool_ids() -> None:
    """Restart generated tool-use ids at 1 (for tests)."""
    global _opencode_tool_ids
    _opencode_tool_ids = itertools.count(1)


def _translate_opencode(event: Dict[str, Any]) -> Optional[CanonicalEvent]:
    event_type = event.get("type")
    session_id = event.get("sessionID")
    part = _as_dict(event.get("part"))

    if event_type == "text":
        text = part.get("text")
        if not text:
            return None
        return _single(TextBlock(text=str(text)), session_id)

    if event_type == "step_finish":
        if part.get("error") or part.get("reason") == "error":
            return ErrorEvent(message=str(part.get("error") or OPENCODE_STEP_ERROR), session_id=session_id)
        result = part.get("result")
        if result is not None and not isinstance(result, str):
            result = json.dumps(result)
        return ResultEvent(result=result, session_id=session_id)

    if event_type == "tool_call":
        if not part:
            return None
        tool_use_id = part.get("call_id") or f"opencode-tool-{next(_opencode_tool_ids)}"
        return _single(ToolUseBlock(
            name=str(part.get("name") or "unknown"),
            input=part.get("args"),
            tool_use_id=tool_use_id,
        ), session_id)

    if event_type == "tool_result":
        if not part:
            return None
        return _single(ToolResultBlock(tool_use_id=part.get("call_id"), content=part.get("output")), session_id)

    if event_type == "tool_error":
        return ErrorEvent(message=str(part.get("error") or OPENCODE_TOOL_ERROR), session_id=session_id)

    # step_start and anything new
    logger.debug("Unhandled OpenCode event type: %s", event_type)
    return None


# =============================================================================
# Stderr classification
# =============================================================================


@dataclass
class StderrClassification:
    """Known failure category recognised in a CLI's stderr."""
    code: str
    message: str
    suggestion: Optional[str] = None


_STDERR_PATTERNS = (
    (
        ("not authenticated", "please log in", "unauthorized", "login required",
         "invalid api key", "401"),
        "not_authenticated",
        "{cli} is not authenticated",
        "Log in with the {cli} or set {env_key}",
    ),
    (
        ("rate limit", "too many requests", "429", "quota exceeded"),
        "rate_limited",
        "{cli} API rate limit exceeded",
        "Wait a few minutes and try again",
    ),
    (
        ("model not available", "invalid model", "unknown model", "model_not_found"),
        "model_unavailable",
        "Requested model is not available",
        "Select a different model",
    ),
    (
        ("network", "connection", "econnrefused", "timeout", "timed out"),
        "network_error",
        "Network connection error",
        "Check your internet connection and try again",
    ),
)


def classify_stderr(
    stderr: str,
    exit_code: Optional[int],
    cli_name: str = "CLI",
    env_key: str = "the API key",
) -> Optional[StderrClassification]:
    """Recognise a failure category from stderr text and the exit code.

    Returns None when nothing matches.
    """
    lower = (stderr or "").lower()
    for needles, code, message, suggestion in _STDERR_PATTERNS:
        if any(n in lower for n in needles):
            return StderrClassification(
                code=code,
                message=message.format(cli=cli_name),
                suggestion=suggestion.format(cli=cli_name, env_key=env_key),
            )

    if exit_code in (137, -9) or "killed" in lower or "sigterm" in lower:
        return StderrClassification(
            code="process_killed",
            message=f"{cli_name} process was terminated",
            suggestion="The process may have run out of memory. Try a simpler task.",
        )
    return None
