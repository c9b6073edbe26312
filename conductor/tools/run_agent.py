#!/usr/bin/env python3
"""
Run Agent

Sends one prompt to the provider that handles ``--model`` and prints every
canonical event as a JSON line.

Usage:
    conductor-agent "Add input validation to api/users.py" --model gpt-5.1-codex --cwd ./repo
    echo "Explain this repo" | conductor-agent - --model opus
    conductor-agent --list-models
    conductor-agent --check

Exit codes:
    0  - query finished without an error event
    1  - an error event was emitted
    2  - invalid arguments
    130 - interrupted
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Add repo root to path for imports
_REPO_ROOT = Path(__file__).resolve().parents[2]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from conductor.runtime.events import EventType
from conductor.runtime.providers.base import Provider
from conductor.runtime.providers.registry import (
    check_all_providers,
    get_all_models,
    get_provider_for_model,
)

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_AGENT_ERROR = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130

DEFAULT_MODEL = "opus"


async def stream_events(
    provider: Provider,
    prompt: str,
    model: Optional[str],
    cwd: Optional[str],
    system_prompt: Optional[str],
) -> int:
    """Print each event as JSON; return the process exit code."""
    exit_code = EXIT_SUCCESS
    async for event in provider.execute_query(
        prompt,
        model=model,
        cwd=cwd,
        system_prompt=system_prompt,
    ):
        print(json.dumps(event.to_dict()), flush=True)
        if event.type is EventType.ERROR:
            exit_code = EXIT_AGENT_ERROR
    return exit_code


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint for running a single agent query."""
    parser = argparse.ArgumentParser(
        description="Run a prompt through an agent provider and print canonical events as JSON lines"
    )
    parser.add_argument(
        "prompt",
        nargs="?",
        help="Prompt text, or '-' to read it from stdin",
    )
    parser.add_argument(
        "--model",
        "-m",
        default=DEFAULT_MODEL,
        help=f"Model id; selects the provider (default: {DEFAULT_MODEL})",
    )
    parser.add_argument("--cwd", help="Working directory for the agent (default: current directory)")
    parser.add_argument("--system-prompt", help="Optional system prompt")
    parser.add_argument("--list-models", action="store_true", help="List known models and exit")
    parser.add_argument("--check", action="store_true", help="Report provider installation status and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging on stderr")

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.list_models:
        for model in get_all_models():
            print(json.dumps(model.to_dict()))
        return EXIT_SUCCESS

    if args.check:
        status = {name: s.to_dict() for name, s in check_all_providers().items()}
        print(json.dumps(status, indent=2))
        return EXIT_SUCCESS

    if not args.prompt:
        parser.print_usage(sys.stderr)
        print("Error: a prompt is required", file=sys.stderr)
        return EXIT_USAGE

    prompt = sys.stdin.read() if args.prompt == "-" else args.prompt
    if args.cwd and not Path(args.cwd).is_dir():
        print(f"Error: working directory does not exist: {args.cwd}", file=sys.stderr)
        return EXIT_USAGE

    provider = get_provider_for_model(args.model)
    logger.debug("Using provider %s for model %s", provider.name, args.model)

    try:
        return asyncio.run(stream_events(provider, prompt, args.model, args.cwd, args.system_prompt))
    except KeyboardInterrupt:
        provider.abort()
        print("Interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
