"""
codex.py - OpenAI Codex CLI provider.

Runs ``codex exec --model <m> --json --full-auto <prompt>``. The Codex CLI
has no system-prompt argument, so a system prompt is prepended to the prompt
with a ``---`` separator.
"""

from __future__ import annotations

from typing import List, Optional

from conductor.runtime.process.executor import CliBackend
from conductor.runtime.providers.cli import CliProvider
from conductor.runtime.translation import translate_codex_event

CODEX_INSTALL_HINT = "npm install -g @openai/codex@latest"


def build_codex_args(prompt: str, model: Optional[str], system_prompt: Optional[str] = None) -> List[str]:
    args = ["exec"]
    if model:
        args.extend(["--model", model])
    args.append("--json")
    args.append("--full-auto")
    args.append(prompt)
    return args


CODEX_BACKEND = CliBackend(
    name="codex",
    display_name="Codex CLI",
    executable="codex",
    build_args=build_codex_args,
    translate=translate_codex_event,
    env_key="OPENAI_API_KEY",
    install_hint=CODEX_INSTALL_HINT,
    native_system_prompt=False,
)


class CodexProvider(CliProvider):
    """Codex/OpenAI models via the Codex CLI."""

    backend = CODEX_BACKEND
    features = frozenset(["tools", "streaming"])
