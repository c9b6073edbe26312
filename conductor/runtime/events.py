"""
events.py - Canonical event schema shared by every provider.

Every backend (in-process SDK or external CLI) reduces its raw output to
zero or more of the events defined here before anything reaches the
orchestration layer:

- SessionStartEvent: backend session/thread began (carries the session id)
- AssistantEvent: ordered content blocks (text, thinking, tool_use, tool_result)
- ErrorEvent: terminal or diagnostic failure with a best-available message
- ResultEvent: final result text reported by the backend
- CompleteEvent: backend session finished cleanly

Blocks and events are plain dataclasses. ``to_dict()`` produces the JSON
shape consumers see; every event dict carries a ``type`` key.

Usage:
    from conductor.runtime.events import AssistantEvent, TextBlock, event_to_dict

    event = AssistantEvent(blocks=[TextBlock(text="done")])
    event_to_dict(event)
    # {"type": "assistant", "message": {"content": [{"type": "text", "text": "done"}]}}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union


class EventType(str, Enum):
    """Discriminator for canonical events."""

    SESSION_START = "session_start"
    ASSISTANT = "assistant"
    ERROR = "error"
    RESULT = "result"
    COMPLETE = "complete"


# =============================================================================
# Content Blocks
# =============================================================================


@dataclass
class TextBlock:
    """Plain assistant text."""

    text: str
    type: ClassVar[str] = "text"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class ThinkingBlock:
    """Reasoning output that is not part of the final answer."""

    thinking: str
    type: ClassVar[str] = "thinking"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "thinking": self.thinking}


@dataclass
class ToolUseBlock:
    """A tool invocation requested by the agent."""

    name: str
    input: Any = field(default_factory=dict)
    tool_use_id: Optional[str] = None
    type: ClassVar[str] = "tool_use"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "name": self.name, "input": self.input}
        if self.tool_use_id is not None:
            data["tool_use_id"] = self.tool_use_id
        return data


@dataclass
class ToolResultBlock:
    """Output of a tool invocation."""

    content: Any = None
    tool_use_id: Optional[str] = None
    is_error: bool = False
    type: ClassVar[str] = "tool_result"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }
        if self.is_error:
            data["is_error"] = True
        return data


ContentBlock = Union[TextBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock]


# =============================================================================
# Events
# =============================================================================


@dataclass
class SessionStartEvent:
    """Backend session started."""

    session_id: Optional[str] = None
    type: ClassVar[EventType] = EventType.SESSION_START

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "session_id": self.session_id}


@dataclass
class AssistantEvent:
    """Assistant message made of ordered content blocks."""

    blocks: List[ContentBlock] = field(default_factory=list)
    session_id: Optional[str] = None
    type: ClassVar[EventType] = EventType.ASSISTANT

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(b.text for b in self.blocks if isinstance(b, TextBlock))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type.value,
            "message": {"content": [b.to_dict() for b in self.blocks]},
        }
        if self.session_id is not None:
            data["session_id"] = self.session_id
        return data


@dataclass
class ErrorEvent:
    """A failure reported by the backend or detected by the executor.

    Attributes:
        message: Best-available human-readable error text.
        code: Optional machine-readable classification (e.g. "not_authenticated").
        suggestion: Optional remediation hint.
        session_id: Backend session the error belongs to, if known.
    """

    message: str
    code: Optional[str] = None
    suggestion: Optional[str] = None
    session_id: Optional[str] = None
    type: ClassVar[EventType] = EventType.ERROR

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value, "message": self.message}
        if self.code:
            data["code"] = self.code
        if self.suggestion:
            data["suggestion"] = self.suggestion
        if self.session_id is not None:
            data["session_id"] = self.session_id
        return data


@dataclass
class ResultEvent:
    """Final result text reported by the backend."""

    result: Optional[str] = None
    session_id: Optional[str] = None
    type: ClassVar[EventType] = EventType.RESULT

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "result": self.result, "session_id": self.session_id}


@dataclass
class CompleteEvent:
    """Backend session finished."""

    session_id: Optional[str] = None
    type: ClassVar[EventType] = EventType.COMPLETE

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "session_id": self.session_id}


CanonicalEvent = Union[SessionStartEvent, AssistantEvent, ErrorEvent, ResultEvent, CompleteEvent]


def text_event(text: str) -> AssistantEvent:
    """Build an assistant event holding a single text block."""
    return AssistantEvent(blocks=[TextBlock(text=text)])


def event_to_dict(event: CanonicalEvent) -> Dict[str, Any]:
    """Convert a canonical event to its JSON-serializable dict."""
    return event.to_dict()


def is_error(event: CanonicalEvent) -> bool:
    return event.type is EventType.ERROR
