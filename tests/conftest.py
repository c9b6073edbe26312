"""
Test fixtures shared across the conductor test suite.

Provides a fresh runtime config per test, an isolated environment for the
CONDUCTOR_* overrides, and a helper for building fake agent CLIs out of the
current Python interpreter.
"""

import sys
import textwrap
from pathlib import Path
from typing import List, Optional

import pytest

# Make the repo root importable without installing the package
_repo_root = Path(__file__).parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

from conductor.config.runtime_config import reset_config
from conductor.runtime.process.executor import CliBackend
from conductor.runtime.translation import translate_codex_event


_CONDUCTOR_ENV_VARS = [
    "CONDUCTOR_CODEX_CLI",
    "CONDUCTOR_GEMINI_CLI",
    "CONDUCTOR_OPENCODE_CLI",
    "CONDUCTOR_LIVENESS_TIMEOUT_SECONDS",
    "CONDUCTOR_SESSION_RETENTION_MINUTES",
]


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Drop cached runtime.yaml and CONDUCTOR_* overrides around every test."""
    for var in _CONDUCTOR_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield
    reset_config()


def python_backend(
    script: str,
    translate=translate_codex_event,
    env_key: Optional[str] = None,
    native_system_prompt: bool = False,
    stdin_prompt: bool = False,
) -> CliBackend:
    """Build a CliBackend that runs ``script`` with the current interpreter.

    The combined prompt is passed as the script's first argument, so scripts
    can echo it back through ``sys.argv[1]``. With ``stdin_prompt`` it is
    written to the script's stdin instead.
    """
    source = textwrap.dedent(script)

    def build_args(prompt: str, model: Optional[str], system_prompt: Optional[str] = None) -> List[str]:
        if stdin_prompt:
            return ["-c", source]
        return ["-c", source, prompt]

    return CliBackend(
        name="fake",
        display_name="Fake CLI",
        executable="fake-agent-cli",
        build_args=build_args,
        translate=translate,
        env_key=env_key,
        install_hint="pip install fake-agent-cli",
        native_system_prompt=native_system_prompt,
        stdin_prompt=stdin_prompt,
    )


@pytest.fixture
def make_backend():
    """Factory fixture for python_backend."""
    return python_backend
