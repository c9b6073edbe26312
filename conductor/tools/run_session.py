#!/usr/bin/env python3
"""
Run Session

Runs a shell command under a managed process session: output is streamed as
it is flushed, and the completion record is printed as JSON at the end.

Usage:
    conductor-session "npm test" --scope ./repo
    conductor-session "pytest -q" --scope ./repo --target-file tests/test_api.py
    conductor-session "npm run dev" --scope ./repo --timeout 60
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel

# Add repo root to path for imports
_REPO_ROOT = Path(__file__).resolve().parents[2]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from conductor.runtime.process.notifications import (
    CompletedNotification,
    OutputNotification,
    SessionStatus,
)
from conductor.runtime.process.session import COMPLETED, OUTPUT, ProcessSessionRegistry

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


async def run_session(
    command: str,
    scope: str,
    target_file: Optional[str] = None,
    timeout: Optional[float] = None,
    registry: Optional[ProcessSessionRegistry] = None,
) -> Optional[CompletedNotification]:
    """Run ``command`` to completion (or until ``timeout``) and return its completion record.

    Returns None if the session could not be started.
    """
    registry = registry or ProcessSessionRegistry()
    completions: Dict[str, CompletedNotification] = {}
    done = asyncio.Event()

    def on_notification(kind: str, note: BaseModel) -> None:
        if kind == OUTPUT and isinstance(note, OutputNotification):
            sys.stdout.write(note.content)
            sys.stdout.flush()
        elif kind == COMPLETED and isinstance(note, CompletedNotification):
            completions[note.session_id] = note
            done.set()

    registry.subscribe(on_notification)
    try:
        result = await registry.start(scope, command, target_file)
        if not result.success:
            print(f"Error: {result.error}", file=sys.stderr)
            return None

        session_id = result.result.session_id
        while session_id not in completions:
            try:
                await asyncio.wait_for(done.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.info("Timeout reached; stopping session %s", session_id)
                await registry.stop(session_id)
            done.clear()
        return completions[session_id]
    finally:
        await registry.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint for running a managed process session."""
    parser = argparse.ArgumentParser(
        description="Run a command under a managed process session"
    )
    parser.add_argument("command", help="Shell command to run")
    parser.add_argument(
        "--scope",
        default=os.getcwd(),
        help="Directory to run in (default: current directory)",
    )
    parser.add_argument("--target-file", help="Optional file appended as '-- <file>'")
    parser.add_argument(
        "--timeout",
        type=float,
        help="Stop the process after this many seconds",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging on stderr")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.timeout is not None and args.timeout <= 0:
        print("Error: --timeout must be positive", file=sys.stderr)
        return EXIT_USAGE

    completion = asyncio.run(
        run_session(args.command, os.path.abspath(args.scope), args.target_file, args.timeout)
    )
    if completion is None:
        return EXIT_FAILED

    print(json.dumps(completion.model_dump(mode="json")), file=sys.stderr)
    return EXIT_SUCCESS if completion.status is SessionStatus.PASSED else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
