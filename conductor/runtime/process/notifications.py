"""
notifications.py - Upstream shapes for managed process sessions.

Results returned by ProcessSessionRegistry operations and the notifications
pushed to subscribers are pydantic models; consumers serialize them with
``model_dump()``. Timestamps are ISO 8601 strings in UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionStatus(str, Enum):
    """Lifecycle state of a managed process session."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    [SessionStatus.PASSED, SessionStatus.FAILED, SessionStatus.CANCELLED, SessionStatus.ERROR]
)


# =============================================================================
# Operation Results
# =============================================================================


class StartInfo(BaseModel):
    """Details of a started session."""

    session_id: str
    scope: str
    command: str
    status: SessionStatus
    target_file: Optional[str] = None
    message: str


class StartResult(BaseModel):
    """Result of starting a session."""

    success: bool
    result: Optional[StartInfo] = None
    error: Optional[str] = None


class StopInfo(BaseModel):
    session_id: str
    message: str


class StopResult(BaseModel):
    """Result of stopping a session."""

    success: bool
    result: Optional[StopInfo] = None
    error: Optional[str] = None


class BufferedOutput(BaseModel):
    """Replayable history for late subscribers."""

    session_id: str
    scrollback: str
    status: SessionStatus
    started_at: str
    finished_at: Optional[str] = None


class SessionSummary(BaseModel):
    """Session entry for list_sessions."""

    session_id: str
    scope: str
    command: str
    status: SessionStatus
    target_file: Optional[str] = None
    started_at: str
    finished_at: Optional[str] = None
    exit_code: Optional[int] = None


class SessionList(BaseModel):
    sessions: List[SessionSummary] = Field(default_factory=list)


# =============================================================================
# Push Notifications
# =============================================================================


class StartedNotification(BaseModel):
    """Sent once the process is running."""

    session_id: str
    scope: str
    command: str
    target_file: Optional[str] = None
    timestamp: str = Field(default_factory=utc_now_iso)


class OutputNotification(BaseModel):
    """A throttled batch of process output."""

    session_id: str
    scope: str
    content: str
    timestamp: str = Field(default_factory=utc_now_iso)


class CompletedNotification(BaseModel):
    """Sent exactly once when a session reaches a terminal status."""

    session_id: str
    scope: str
    command: str
    status: SessionStatus
    exit_code: Optional[int] = None
    error: Optional[str] = None
    duration_ms: int
    timestamp: str = Field(default_factory=utc_now_iso)
