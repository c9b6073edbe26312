"""
session.py - Supervise long-running external commands.

A ManagedProcessSession wraps one shell command (a test run, a build, a dev
server) started in a scope directory. Its output is kept in a bounded
scrollback for replay and streamed to subscribers in throttled,
size-bounded batches.

ProcessSessionRegistry owns the live session map. It is created explicitly,
passed to whoever needs it, and torn down with ``shutdown()``:

    registry = ProcessSessionRegistry()
    registry.subscribe(lambda kind, note: print(kind, note.model_dump()))
    result = await registry.start("/path/to/project", "pytest -q")
    ...
    await registry.stop(result.result.session_id)
    await registry.shutdown()

Status lifecycle:
    pending -> running -> passed | failed | cancelled | error

Each session reaches a terminal status exactly once. Once ``stopping`` is set
no further output notifications are sent for that session.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import re
import signal
import sys
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from conductor.config.runtime_config import (
    get_max_scrollback_chars,
    get_output_batch_chars,
    get_output_throttle_ms,
    get_session_retention_minutes,
    get_startup_grace_ms,
)
from conductor.runtime.process.notifications import (
    BufferedOutput,
    CompletedNotification,
    OutputNotification,
    SessionList,
    SessionStatus,
    SessionSummary,
    StartedNotification,
    StartInfo,
    StartResult,
    StopInfo,
    StopResult,
)
from conductor.runtime.process.scrollback import ScrollbackBuffer
from conductor.runtime.process.termination import kill_process_tree

logger = logging.getLogger(__name__)

# Notification kinds passed to subscribers
STARTED = "started"
OUTPUT = "output"
COMPLETED = "completed"

Subscriber = Callable[[str, BaseModel], None]

_UNSAFE_TARGET_CHARS = re.compile(r"[^a-zA-Z0-9.\\/_\-:]")

CHILD_ENV = {
    "FORCE_COLOR": "1",
    "COLORTERM": "truecolor",
    "TERM": "xterm-256color",
    "CI": "true",
}

SHUTDOWN_WAIT_SECONDS = 5.0
FORCE_KILL_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)


def sanitize_target_file(target_file: str) -> str:
    """Strip everything but path-safe characters from a target file argument."""
    return _UNSAFE_TARGET_CHARS.sub("", target_file)


def build_command(command: str, target_file: Optional[str] = None) -> str:
    """Append a sanitized target file as ``<command> -- <file>``."""
    if target_file:
        sanitized = sanitize_target_file(target_file)
        if sanitized:
            return f"{command} -- {sanitized}"
    return command


def generate_session_id() -> str:
    return f"proc-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


class ManagedProcessSession:
    """State of one supervised process."""

    def __init__(
        self,
        session_id: str,
        scope: str,
        command: str,
        target_file: Optional[str] = None,
        max_scrollback: int = 50000,
    ):
        self.id = session_id
        self.scope = scope
        self.command = command
        self.target_file = target_file
        self.started_at = datetime.now(timezone.utc)
        self.finished_at: Optional[datetime] = None
        self.status = SessionStatus.PENDING
        self.exit_code: Optional[int] = None
        self.error: Optional[str] = None
        self.scrollback = ScrollbackBuffer(max_scrollback)
        self.pending = ""
        self.stopping = False
        self.process: Optional[asyncio.subprocess.Process] = None
        self.flush_task: Optional[asyncio.Task] = None
        self.supervisor_task: Optional[asyncio.Task] = None

    @property
    def duration_ms(self) -> int:
        end = self.finished_at or datetime.now(timezone.utc)
        return int((end - self.started_at).total_seconds() * 1000)

    def cancel_flush(self) -> None:
        if self.flush_task is not None and not self.flush_task.done():
            self.flush_task.cancel()
        self.flush_task = None

    def to_summary(self) -> SessionSummary:
        return SessionSummary(
            session_id=self.id,
            scope=self.scope,
            command=self.command,
            status=self.status,
            target_file=self.target_file,
            started_at=self.started_at.isoformat(),
            finished_at=_iso(self.finished_at),
            exit_code=self.exit_code,
        )

    def __repr__(self) -> str:
        return f"ManagedProcessSession(id={self.id!r}, scope={self.scope!r}, status={self.status.value})"


class ProcessSessionRegistry:
    """Owns all managed process sessions, at most one pending or running per scope."""

    def __init__(
        self,
        max_scrollback: Optional[int] = None,
        throttle_ms: Optional[int] = None,
        batch_chars: Optional[int] = None,
        startup_grace_ms: Optional[int] = None,
        retention_minutes: Optional[float] = None,
    ):
        self.max_scrollback = max_scrollback if max_scrollback is not None else get_max_scrollback_chars()
        self.throttle_seconds = (throttle_ms if throttle_ms is not None else get_output_throttle_ms()) / 1000.0
        self.batch_chars = batch_chars if batch_chars is not None else get_output_batch_chars()
        self.startup_grace_seconds = (
            startup_grace_ms if startup_grace_ms is not None else get_startup_grace_ms()
        ) / 1000.0
        self.retention_minutes = (
            retention_minutes if retention_minutes is not None else get_session_retention_minutes()
        )
        if self.max_scrollback <= 0:
            raise ValueError(f"max_scrollback must be positive, got {self.max_scrollback}")
        if self.batch_chars <= 0:
            raise ValueError(f"batch_chars must be positive, got {self.batch_chars}")
        self._sessions: Dict[str, ManagedProcessSession] = {}
        self._subscribers: List[Subscriber] = []

    async def __aenter__(self) -> "ProcessSessionRegistry":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    # -------------------------------------------------------------------------
    # Subscribers
    # -------------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback receiving (kind, notification).

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self, kind: str, notification: BaseModel) -> None:
        for callback in list(self._subscribers):
            try:
                callback(kind, notification)
            except Exception:
                logger.exception("Subscriber failed handling %s notification", kind)

    # -------------------------------------------------------------------------
    # Start / Stop
    # -------------------------------------------------------------------------

    async def start(self, scope: str, command: str, target_file: Optional[str] = None) -> StartResult:
        """Start ``command`` in ``scope`` unless one is already running there.

        Args:
            scope: Directory the command runs in; also the exclusivity key.
            command: Shell command line.
            target_file: Optional file appended as ``-- <file>`` after sanitizing.

        Returns:
            StartResult with session details, or an error message.
        """
        existing = self.get_active_session(scope)
        if existing is not None:
            return StartResult(
                success=False,
                error=f"A process is already running for this scope (session: {existing.id})",
            )

        if not os.path.isdir(scope):
            return StartResult(success=False, error=f"Scope path does not exist: {scope}")

        if not command or not command.strip():
            return StartResult(success=False, error="No command provided")

        final_command = build_command(command, target_file)
        session = ManagedProcessSession(
            generate_session_id(), scope, final_command, target_file, self.max_scrollback
        )
        self._sessions[session.id] = session
        logger.info("Starting process in %s: %s", scope, final_command)

        env = dict(os.environ)
        env.update(CHILD_ENV)
        try:
            session.process = await asyncio.create_subprocess_shell(
                final_command,
                cwd=scope,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=sys.platform != "win32",
            )
        except OSError as e:
            logger.error("Process error for %s: %s", session.id, e)
            self._finish(session, None, SessionStatus.ERROR, str(e))
            return StartResult(success=False, error=f"Failed to start process: {e}")

        if session.stopping:
            # Stopped while the child was being spawned
            kill_process_tree(session.process.pid)
            session.supervisor_task = asyncio.ensure_future(self._supervise(session))
            return StartResult(success=False, error=f"Process was cancelled before it started (session: {session.id})")

        session.status = SessionStatus.RUNNING
        self._emit(STARTED, StartedNotification(
            session_id=session.id,
            scope=scope,
            command=final_command,
            target_file=target_file,
        ))
        session.supervisor_task = asyncio.ensure_future(self._supervise(session))

        # Give an immediately failing process a chance to report
        await asyncio.sleep(self.startup_grace_seconds)
        if session.status is SessionStatus.ERROR:
            return StartResult(
                success=False,
                error=f"Process exited immediately: {session.error or 'check output for details'}",
            )

        return StartResult(
            success=True,
            result=StartInfo(
                session_id=session.id,
                scope=scope,
                command=final_command,
                status=SessionStatus.RUNNING,
                target_file=target_file,
                message=f"Process started: {final_command}",
            ),
        )

    async def stop(self, session_id: str) -> StopResult:
        """Cancel a pending or running session.

        The session is marked cancelled immediately; the child's eventual exit
        code does not change that.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return StopResult(success=False, error=f"Session not found: {session_id}")

        if session.status.is_terminal:
            return StopResult(
                success=True,
                result=StopInfo(
                    session_id=session_id,
                    message=f"Process already finished (status: {session.status.value})",
                ),
            )

        logger.info("Cancelling session %s", session_id)
        session.stopping = True
        session.cancel_flush()

        if session.process is not None and session.process.returncode is None:
            kill_process_tree(session.process.pid)

        session.status = SessionStatus.CANCELLED
        session.finished_at = datetime.now(timezone.utc)
        session.pending = ""
        self._emit(COMPLETED, CompletedNotification(
            session_id=session.id,
            scope=session.scope,
            command=session.command,
            status=SessionStatus.CANCELLED,
            exit_code=None,
            duration_ms=session.duration_ms,
        ))

        return StopResult(success=True, result=StopInfo(session_id=session_id, message="Process cancelled"))

    # -------------------------------------------------------------------------
    # Supervision
    # -------------------------------------------------------------------------

    async def _supervise(self, session: ManagedProcessSession) -> None:
        process = session.process
        try:
            await asyncio.gather(
                self._pump(session, process.stdout),
                self._pump(session, process.stderr),
            )
            exit_code = await process.wait()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Supervision failed for session %s", session.id)
            self._finish(session, process.returncode, SessionStatus.ERROR, str(e))
            return

        logger.info("Process for %s exited with code %s", session.scope, exit_code)
        if session.stopping:
            status = SessionStatus.CANCELLED
        elif exit_code == 0:
            status = SessionStatus.PASSED
        else:
            status = SessionStatus.FAILED
        self._finish(session, exit_code, status)

    async def _pump(self, session: ManagedProcessSession, stream: Optional[asyncio.StreamReader]) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                tail = decoder.decode(b"", final=True)
                if tail:
                    self._handle_output(session, tail)
                return
            self._handle_output(session, decoder.decode(chunk))

    def _handle_output(self, session: ManagedProcessSession, text: str) -> None:
        if session.stopping or not text:
            return
        session.scrollback.append(text)
        session.pending += text
        if session.flush_task is None or session.flush_task.done():
            session.flush_task = asyncio.ensure_future(self._flush_loop(session))

    async def _flush_loop(self, session: ManagedProcessSession) -> None:
        while session.pending and not session.stopping:
            await asyncio.sleep(self.throttle_seconds)
            if session.stopping:
                return
            self._flush_batch(session)

    def _flush_batch(self, session: ManagedProcessSession) -> None:
        if not session.pending:
            return
        content = session.pending[: self.batch_chars]
        session.pending = session.pending[self.batch_chars:]
        self._emit(OUTPUT, OutputNotification(session_id=session.id, scope=session.scope, content=content))

    def _finish(
        self,
        session: ManagedProcessSession,
        exit_code: Optional[int],
        status: SessionStatus,
        error: Optional[str] = None,
    ) -> None:
        if session.status.is_terminal:
            return

        session.finished_at = datetime.now(timezone.utc)
        session.exit_code = exit_code
        session.status = status
        session.error = error
        session.cancel_flush()

        if session.stopping:
            session.pending = ""
            return

        while session.pending:
            self._flush_batch(session)

        self._emit(COMPLETED, CompletedNotification(
            session_id=session.id,
            scope=session.scope,
            command=session.command,
            status=status,
            exit_code=exit_code,
            error=error,
            duration_ms=session.duration_ms,
        ))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_session(self, session_id: str) -> Optional[ManagedProcessSession]:
        return self._sessions.get(session_id)

    def get_active_session(self, scope: str) -> Optional[ManagedProcessSession]:
        """Return the pending or running session for a scope, if any."""
        for session in self._sessions.values():
            if session.scope == scope and not session.status.is_terminal:
                return session
        return None

    def is_running(self, scope: str) -> bool:
        return self.get_active_session(scope) is not None

    def get_buffered_output(self, session_id: str) -> Optional[BufferedOutput]:
        """Scrollback and timing for a session, or None if unknown."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return BufferedOutput(
            session_id=session.id,
            scrollback=session.scrollback.text,
            status=session.status,
            started_at=session.started_at.isoformat(),
            finished_at=_iso(session.finished_at),
        )

    def list_sessions(self, scope: Optional[str] = None) -> SessionList:
        sessions = self._sessions.values()
        if scope:
            sessions = [s for s in sessions if s.scope == scope]
        return SessionList(sessions=[s.to_summary() for s in sessions])

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    def cleanup_old_sessions(self, max_age_minutes: Optional[float] = None) -> int:
        """Evict sessions that finished longer ago than the retention window.

        Returns:
            Number of sessions removed.
        """
        max_age = max_age_minutes if max_age_minutes is not None else self.retention_minutes
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=max_age)
        stale = [
            session_id
            for session_id, session in self._sessions.items()
            if session.finished_at is not None and session.finished_at < cutoff
        ]
        for session_id in stale:
            del self._sessions[session_id]
            logger.debug("Cleaned up old session %s", session_id)
        return len(stale)

    async def cancel_all(self) -> int:
        """Stop every pending or running session. Returns how many were stopped."""
        running = [s.id for s in self._sessions.values() if not s.status.is_terminal]
        for session_id in running:
            await self.stop(session_id)
        return len(running)

    async def shutdown(self) -> None:
        """Force-stop everything and clear the registry."""
        stopped = await self.cancel_all()
        tasks = [
            s.supervisor_task
            for s in self._sessions.values()
            if s.supervisor_task is not None and not s.supervisor_task.done()
        ]
        if tasks:
            _, still_running = await asyncio.wait(tasks, timeout=SHUTDOWN_WAIT_SECONDS)
            for task in still_running:
                task.cancel()
        for session in self._sessions.values():
            session.cancel_flush()
            if session.process is not None and session.process.returncode is None:
                kill_process_tree(session.process.pid, FORCE_KILL_SIGNAL)
        self._sessions.clear()
        logger.info("Process session registry shut down (%d stopped)", stopped)
