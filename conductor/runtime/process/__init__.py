"""
process/ - Supervision of external child processes.

Executor:
- AgentProcessExecutor: Runs an agent CLI, streams canonical events
- CliBackend: Per-CLI arguments, translator and credential key

Sessions:
- ProcessSessionRegistry: Owns managed sessions (start, stop, replay, cleanup)
- ManagedProcessSession: One supervised shell command

Support:
- ScrollbackBuffer: Bounded output history
- kill_process_tree(): Cross-platform tree termination
- detect_cli_installation(): Locate a CLI and report its version

Usage:
    >>> from conductor.runtime.process import ProcessSessionRegistry
    >>> registry = ProcessSessionRegistry()
    >>> result = await registry.start("/repo", "npm test")
"""

from .detection import InstallationStatus, detect_cli_installation, find_executable
from .executor import AgentProcessExecutor, CliBackend
from .notifications import (
    BufferedOutput,
    CompletedNotification,
    OutputNotification,
    SessionStatus,
    StartedNotification,
    StartResult,
    StopResult,
)
from .scrollback import ScrollbackBuffer, truncate_to_suffix
from .session import ManagedProcessSession, ProcessSessionRegistry
from .termination import kill_process_tree

__all__ = [
    "AgentProcessExecutor",
    "BufferedOutput",
    "CliBackend",
    "CompletedNotification",
    "InstallationStatus",
    "ManagedProcessSession",
    "OutputNotification",
    "ProcessSessionRegistry",
    "ScrollbackBuffer",
    "SessionStatus",
    "StartResult",
    "StartedNotification",
    "StopResult",
    "detect_cli_installation",
    "find_executable",
    "kill_process_tree",
    "truncate_to_suffix",
]
