"""
opencode.py - OpenCode CLI provider.

Runs ``opencode run --format json [--model <m>]`` and writes the prompt to
stdin. OpenCode fronts several upstream model providers and addresses models
as ``<upstream>/<model>``; an ``opencode-`` routing prefix is stripped before
the id reaches the CLI.

OpenCode keeps its credentials in its own auth file, so there is no
credential environment variable to forward.
"""

from __future__ import annotations

from typing import List, Optional

from conductor.runtime.process.executor import CliBackend
from conductor.runtime.providers.cli import CliProvider
from conductor.runtime.translation import translate_opencode_event

OPENCODE_INSTALL_HINT = "npm install -g opencode-ai@latest"


def build_opencode_args(prompt: str, model: Optional[str], system_prompt: Optional[str] = None) -> List[str]:
    args = ["run", "--format", "json"]
    if model:
        args.extend(["--model", model])
    return args


OPENCODE_BACKEND = CliBackend(
    name="opencode",
    display_name="OpenCode CLI",
    executable="opencode",
    build_args=build_opencode_args,
    translate=translate_opencode_event,
    env_key=None,
    install_hint=OPENCODE_INSTALL_HINT,
    native_system_prompt=False,
    stdin_prompt=True,
)


class OpenCodeProvider(CliProvider):
    """Models from several upstream providers via the OpenCode CLI."""

    backend = OPENCODE_BACKEND
    features = frozenset(["tools", "text", "vision", "streaming"])
