"""
errors.py - Exception types raised outside the streaming boundary.

Streaming APIs (Provider.execute_query, AgentProcessExecutor.execute) never
raise; failures there become CanonicalEvents. The exceptions below are for
configuration and lookup errors that callers handle synchronously.
"""

from __future__ import annotations


class ConductorError(Exception):
    """Base class for conductor errors."""

    pass


class ProviderNotFoundError(ConductorError, ValueError):
    """Raised when a provider name is not registered."""

    def __init__(self, name: str, available: list):
        self.name = name
        self.available = list(available)
        super().__init__(
            f"Unknown provider: {name}. Valid options: {', '.join(self.available)}"
        )


class ProviderUnavailableError(ConductorError):
    """Raised when a provider's backing SDK or CLI cannot be used."""

    pass


class PipelineStepNotFoundError(ConductorError, KeyError):
    """Raised when a pipeline step id does not exist in the config."""

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(step_id)

    def __str__(self) -> str:
        return f"Pipeline step not found: {self.step_id}"
