"""
cli.py - Shared base for providers that drive an agent CLI subprocess.

Subclasses only supply a CliBackend; spawning, stream parsing, exit-code
mapping and abort all live in AgentProcessExecutor.
"""

from __future__ import annotations

import logging
import os
from typing import AsyncIterator, Dict, List, Optional

from conductor.config.runtime_config import get_provider_default_model
from conductor.runtime.events import CanonicalEvent
from conductor.runtime.process.detection import InstallationStatus, detect_cli_installation
from conductor.runtime.process.executor import AgentProcessExecutor, CliBackend
from conductor.runtime.providers.base import Provider, ValidationResult

logger = logging.getLogger(__name__)


class CliProvider(Provider):
    """Provider whose backend is an external CLI."""

    backend: CliBackend

    def __init__(self, cli_path: Optional[str] = None):
        self.executor = AgentProcessExecutor(self.backend, cli_path=cli_path)

    @property
    def name(self) -> str:
        return self.backend.name

    async def execute_query(
        self,
        prompt: str,
        model: Optional[str] = None,
        cwd: Optional[str] = None,
        system_prompt: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        max_turns: Optional[int] = None,
        allowed_tools: Optional[List[str]] = None,
    ) -> AsyncIterator[CanonicalEvent]:
        if max_turns is not None or allowed_tools:
            logger.debug("%s ignores max_turns/allowed_tools", self.backend.display_name)

        async for event in self.executor.execute(
            prompt,
            model=self.get_model_string(model or get_provider_default_model(self.name)),
            cwd=cwd,
            system_prompt=system_prompt,
            env=env,
        ):
            yield event

    def abort(self) -> bool:
        return self.executor.abort()

    def detect_installation(self) -> InstallationStatus:
        return detect_cli_installation(self.backend.name, self.backend.executable, self.backend.env_key)

    def validate_config(self) -> ValidationResult:
        status = self.detect_installation()
        errors: List[str] = []
        warnings: List[str] = []
        if not status.installed:
            if status.has_api_key or not self.backend.env_key:
                errors.append(
                    f"{self.backend.display_name} not installed. Install with: {self.backend.install_hint}"
                )
            else:
                errors.append(
                    f"{self.backend.display_name} not installed and no {self.backend.env_key} found."
                )
        elif self.backend.env_key and not os.environ.get(self.backend.env_key):
            warnings.append(
                f"{self.backend.env_key} is not set; {self.backend.display_name} must be logged in separately."
            )
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
