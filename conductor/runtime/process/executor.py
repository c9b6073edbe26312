"""
executor.py - Run coding-agent CLIs and stream canonical events.

AgentProcessExecutor spawns one agent CLI process per ``execute`` call and
turns its newline-delimited JSON stdout into CanonicalEvents as the consumer
pulls them. The stdout pipe is the only buffer between the child and the
consumer; the reader advances only when the caller asks for the next event.

The backend-specific parts (executable name, argument vector, translator,
credential variable, prompt delivery) are described by a CliBackend, so
every CLI provider shares this executor.

Usage:
    from conductor.runtime.process.executor import AgentProcessExecutor
    from conductor.runtime.providers.codex import CODEX_BACKEND

    executor = AgentProcessExecutor(CODEX_BACKEND)
    async for event in executor.execute("Fix the failing test", model="gpt-5.1-codex"):
        print(event.to_dict())

Guarantees:
- Failures never raise out of ``execute``; they become ErrorEvents.
- Non-JSON stdout lines are passed through as plain assistant text.
- At most one live child per executor instance.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict, List, Optional

from conductor.config.runtime_config import (
    get_liveness_check_interval_seconds,
    get_liveness_timeout_seconds,
)
from conductor.runtime.events import CanonicalEvent, ErrorEvent, text_event
from conductor.runtime.process.detection import find_executable
from conductor.runtime.process.termination import kill_process_tree
from conductor.runtime.translation import Translator, classify_stderr

logger = logging.getLogger(__name__)

# Agent CLIs can emit very long JSON lines (aggregated command output)
MAX_LINE_BYTES = 32 * 1024 * 1024

SYSTEM_PROMPT_SEPARATOR = "\n\n---\n\n"

ArgBuilder = Callable[[str, Optional[str], Optional[str]], List[str]]


@dataclass
class CliBackend:
    """Describes how to drive one agent CLI.

    Attributes:
        name: Provider identifier, used for configured-path lookup.
        display_name: Human-readable name used in error messages.
        executable: Executable looked up on PATH.
        build_args: (prompt, model, system_prompt) -> argument vector. The
            system prompt is only passed when ``native_system_prompt`` is set.
        translate: Maps one decoded JSON record to a CanonicalEvent or None.
        env_key: Credential environment variable forwarded to the child.
        install_hint: Shown when the executable cannot be found.
        native_system_prompt: Whether the CLI accepts a system prompt argument.
        stdin_prompt: Whether the prompt is written to the child's stdin instead
            of being part of the argument vector.
    """
    name: str
    display_name: str
    executable: str
    build_args: ArgBuilder
    translate: Translator
    env_key: Optional[str] = None
    install_hint: str = ""
    native_system_prompt: bool = False
    stdin_prompt: bool = False

    def combine_prompt(self, prompt: str, system_prompt: Optional[str]) -> str:
        if system_prompt and not self.native_system_prompt:
            return f"{system_prompt}{SYSTEM_PROMPT_SEPARATOR}{prompt}"
        return prompt


@dataclass
class _RunState:
    """Per-run bookkeeping shared by the reader, stderr drain and liveness tasks."""
    process: asyncio.subprocess.Process
    started: float = field(default_factory=time.monotonic)
    last_output: float = field(default_factory=time.monotonic)
    has_output: bool = False
    aborted: bool = False
    lines: int = 0
    stderr_chunks: List[str] = field(default_factory=list)

    def mark_activity(self) -> None:
        self.last_output = time.monotonic()

    def mark_output(self) -> None:
        self.has_output = True
        self.mark_activity()

    @property
    def stderr(self) -> str:
        return "".join(self.stderr_chunks)


class AgentProcessExecutor:
    """Runs an agent CLI to completion or cancellation, one child at a time."""

    def __init__(
        self,
        backend: CliBackend,
        cli_path: Optional[str] = None,
        liveness_timeout: Optional[float] = None,
        liveness_interval: Optional[float] = None,
    ):
        self.backend = backend
        self._cli_path = cli_path
        self._liveness_timeout = liveness_timeout
        self._liveness_interval = liveness_interval
        self._state: Optional[_RunState] = None

    def find_cli_path(self) -> Optional[str]:
        """Resolve and cache the backend executable path."""
        if self._cli_path:
            return self._cli_path
        path = find_executable(self.backend.name, self.backend.executable)
        if path:
            self._cli_path = path
        return path

    @property
    def is_running(self) -> bool:
        state = self._state
        return state is not None and state.process.returncode is None

    def build_env(self, overrides: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Ambient environment, then explicit overrides, then the credential key."""
        overrides = overrides or {}
        env = dict(os.environ)
        env.update({k: str(v) for k, v in overrides.items() if v is not None})

        key = self.backend.env_key
        if key:
            value = overrides.get(key) or os.environ.get(key)
            if value:
                env[key] = value
            else:
                logger.warning("%s is not set; %s may fail to authenticate", key, self.backend.display_name)
        return env

    async def execute(
        self,
        prompt: str,
        model: Optional[str] = None,
        cwd: Optional[str] = None,
        system_prompt: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator[CanonicalEvent]:
        """Run the CLI and yield CanonicalEvents as they are produced.

        Args:
            prompt: User prompt.
            model: Model string passed to the CLI.
            cwd: Working directory for the child (defaults to the current one).
            system_prompt: Optional system prompt; prepended to the prompt with
                a visible separator when the CLI has no native argument for it.
            env: Environment overrides for the child.

        Yields:
            CanonicalEvent instances. Ends after at most one terminal error.
        """
        if self._state is not None:
            yield ErrorEvent(
                message=f"{self.backend.display_name} is already running a query in this executor",
                code="already_running",
            )
            return

        cli_path = self.find_cli_path()
        if not cli_path:
            hint = f" Please install it with: {self.backend.install_hint}" if self.backend.install_hint else ""
            yield ErrorEvent(
                message=f"{self.backend.display_name} not found.{hint}",
                code="not_installed",
                suggestion=self.backend.install_hint or None,
            )
            return

        native_system = system_prompt if self.backend.native_system_prompt else None
        full_prompt = self.backend.combine_prompt(prompt, system_prompt)
        args = self.backend.build_args(full_prompt, model, native_system)
        logged_args = args if self.backend.stdin_prompt else args[:-1]
        logger.debug("Executing %s %s (cwd=%s)", cli_path, " ".join(logged_args), cwd or os.getcwd())

        try:
            process = await asyncio.create_subprocess_exec(
                cli_path,
                *args,
                cwd=cwd,
                env=self.build_env(env),
                stdin=asyncio.subprocess.PIPE if self.backend.stdin_prompt else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=MAX_LINE_BYTES,
                start_new_session=sys.platform != "win32",
            )
        except OSError as e:
            logger.error("Failed to spawn %s: %s", self.backend.display_name, e)
            yield ErrorEvent(message=f"Failed to start {self.backend.display_name}: {e}", code="spawn_failed")
            return

        state = _RunState(process=process)
        self._state = state
        logger.debug("%s spawned with pid %s", self.backend.display_name, process.pid)

        stdin_task = None
        if self.backend.stdin_prompt:
            stdin_task = asyncio.ensure_future(self._feed_stdin(state, full_prompt))
        stderr_task = asyncio.ensure_future(self._drain_stderr(state))
        liveness_task = asyncio.ensure_future(self._watch_liveness(state))
        exit_code: Optional[int] = None
        try:
            async for event in self._read_stdout(state):
                yield event
            await stderr_task
            exit_code = await process.wait()
        finally:
            liveness_task.cancel()
            if stdin_task is not None and not stdin_task.done():
                stdin_task.cancel()
            if not stderr_task.done():
                stderr_task.cancel()
            if process.returncode is None:
                # Consumer stopped iterating before the child exited
                kill_process_tree(process.pid)
            if self._state is state:
                self._state = None

        if state.aborted:
            logger.info("%s run aborted after %d lines", self.backend.display_name, state.lines)
            return

        final = self._exit_event(state, exit_code)
        if final is not None:
            yield final
        else:
            logger.debug(
                "%s completed (exit %s, %d lines, %.1fs)",
                self.backend.display_name,
                exit_code,
                state.lines,
                time.monotonic() - state.started,
            )

    async def _read_stdout(self, state: _RunState) -> AsyncIterator[CanonicalEvent]:
        stdout = state.process.stdout
        while True:
            try:
                raw = await stdout.readline()
            except ValueError:
                # readline discards a line longer than the stream limit
                logger.warning("%s emitted a line longer than %d bytes; skipped", self.backend.display_name, MAX_LINE_BYTES)
                state.mark_output()
                continue
            if not raw:
                return
            state.mark_output()
            if state.aborted:
                continue

            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line.strip():
                continue
            state.lines += 1

            event = self._parse_line(line)
            if event is not None:
                yield event

    def _parse_line(self, line: str) -> Optional[CanonicalEvent]:
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Non-JSON line from %s: %s", self.backend.display_name, line[:200])
            return text_event(line + "\n")
        return self.backend.translate(record)

    async def _feed_stdin(self, state: _RunState, prompt: str) -> None:
        stdin = state.process.stdin
        try:
            stdin.write(prompt.encode("utf-8"))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("%s closed stdin before the prompt was written", self.backend.display_name)
        finally:
            stdin.close()

    async def _drain_stderr(self, state: _RunState) -> None:
        stderr = state.process.stderr
        while True:
            chunk = await stderr.read(4096)
            if not chunk:
                return
            # stderr keeps the liveness watchdog quiet but is not a response
            state.mark_activity()
            text = chunk.decode("utf-8", errors="replace")
            state.stderr_chunks.append(text)
            logger.debug("%s stderr: %s", self.backend.display_name, text[:200])

    async def _watch_liveness(self, state: _RunState) -> None:
        timeout = self._liveness_timeout or get_liveness_timeout_seconds()
        interval = self._liveness_interval or get_liveness_check_interval_seconds()
        while state.process.returncode is None:
            await asyncio.sleep(interval)
            quiet = time.monotonic() - state.last_output
            if quiet > timeout and state.process.returncode is None:
                logger.warning(
                    "No output from %s for %.0fs (pid %s still alive)",
                    self.backend.display_name,
                    quiet,
                    state.process.pid,
                )

    def _exit_event(self, state: _RunState, exit_code: Optional[int]) -> Optional[ErrorEvent]:
        name = self.backend.display_name
        stderr = state.stderr

        if exit_code != 0:
            if stderr.strip():
                message = f"{name} exited with code {exit_code}.\n\nError output:\n{stderr}"
            else:
                message = f"{name} exited with code {exit_code}. No error output captured."
            logger.error("%s failed with exit code %s", name, exit_code)
            classification = classify_stderr(stderr, exit_code, name, self.backend.env_key or "the API key")
            return ErrorEvent(
                message=message,
                code=classification.code if classification else "exit_code",
                suggestion=classification.suggestion if classification else None,
            )

        if not state.has_output:
            key = self.backend.env_key or "API credentials"
            message = (
                f"{name} completed but produced no output. This might indicate:\n"
                f"- Missing or invalid {key}\n"
                f"- {name} configuration issue\n"
                "- The process completed without generating any response\n\n"
                f"Debug info: Exit code {exit_code}, lines read: {state.lines}"
            )
            if stderr.strip():
                message += f"\n\nError output:\n{stderr}"
            logger.warning("%s exited cleanly without output", name)
            return ErrorEvent(message=message, code="no_output")

        return None

    def abort(self) -> bool:
        """Terminate the live child, if any.

        Events already yielded remain valid; the running ``execute`` call
        stops without emitting anything further.

        Returns:
            True if a live child was signalled.
        """
        state = self._state
        if state is None:
            return False
        state.aborted = True
        self._state = None
        if state.process.returncode is not None:
            return False
        logger.info("Aborting %s (pid %s)", self.backend.display_name, state.process.pid)
        return kill_process_tree(state.process.pid)
