"""
gemini.py - Google Gemini CLI provider.

Runs ``gemini --output-format stream-json [--model <m>] --yolo --prompt <prompt>``
and translates its JSONL stream. ``--yolo`` auto-approves tool calls so the
run is non-interactive.
"""

from __future__ import annotations

from typing import List, Optional

from conductor.runtime.process.executor import CliBackend
from conductor.runtime.providers.cli import CliProvider
from conductor.runtime.translation import translate_gemini_event

GEMINI_INSTALL_HINT = "npm install -g @google/gemini-cli"


def build_gemini_args(prompt: str, model: Optional[str], system_prompt: Optional[str] = None) -> List[str]:
    args = ["--output-format", "stream-json"]
    if model:
        args.extend(["--model", model])
    args.append("--yolo")
    args.extend(["--prompt", prompt])
    return args


GEMINI_BACKEND = CliBackend(
    name="gemini",
    display_name="Gemini CLI",
    executable="gemini",
    build_args=build_gemini_args,
    translate=translate_gemini_event,
    env_key="GEMINI_API_KEY",
    install_hint=GEMINI_INSTALL_HINT,
    native_system_prompt=False,
)


class GeminiProvider(CliProvider):
    """Gemini models via the Gemini CLI."""

    backend = GEMINI_BACKEND
    features = frozenset(["thinking", "tools", "streaming"])
