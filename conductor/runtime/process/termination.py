"""
termination.py - Cross-platform process tree termination.

Children are started in their own process group on POSIX (start_new_session),
so signalling the group reaches everything the shell spawned. On Windows the
tree is killed with ``taskkill /F /T``.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys

logger = logging.getLogger(__name__)


def kill_process_tree(pid: int, sig: int = signal.SIGTERM) -> bool:
    """Terminate a process and its descendants.

    Args:
        pid: Process id of the tree root.
        sig: Signal sent on POSIX (default SIGTERM).

    Returns:
        True if a termination request was delivered, False otherwise.
        Errors are logged, never raised.
    """
    if pid is None or pid <= 0:
        return False

    if sys.platform == "win32":
        try:
            subprocess.run(
                ["taskkill", "/F", "/T", "/PID", str(pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
            return True
        except OSError as e:
            logger.debug("taskkill failed for pid %s: %s", pid, e)
            return False

    try:
        os.killpg(pid, sig)
        return True
    except (ProcessLookupError, PermissionError, OSError) as e:
        logger.debug("Process group kill failed for pid %s (%s), falling back to single process", pid, e)

    try:
        os.kill(pid, sig)
        return True
    except (ProcessLookupError, PermissionError, OSError) as e:
        logger.debug("Error killing process %s: %s", pid, e)
        return False
