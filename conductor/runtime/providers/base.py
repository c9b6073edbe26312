"""
base.py - Abstract base class for agent providers.

A Provider turns a prompt into a stream of CanonicalEvents, regardless of
whether the backend is an in-process SDK or an external CLI:

- ClaudeProvider: Claude Code SDK, in process
- CodexProvider / GeminiProvider: CLI subprocess via AgentProcessExecutor

Providers do NOT own:
- Retry or backoff (that's the orchestration layer's job)
- Accumulating assistant text across events (that's the caller's job)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, AsyncIterator, Dict, FrozenSet, List, Optional

from conductor.config.model_registry import (
    ModelDefinition,
    get_models_for_provider,
    resolve_model_string,
)
from conductor.runtime.events import CanonicalEvent
from conductor.runtime.process.detection import InstallationStatus


@dataclass
class ValidationResult:
    """Outcome of a provider configuration check."""
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Provider(ABC):
    """Abstract base class for agent providers."""

    # Features advertised through supports_feature()
    features: FrozenSet[str] = frozenset()

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g., 'claude', 'codex')."""
        ...

    @abstractmethod
    def execute_query(
        self,
        prompt: str,
        model: Optional[str] = None,
        cwd: Optional[str] = None,
        system_prompt: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        max_turns: Optional[int] = None,
        allowed_tools: Optional[List[str]] = None,
    ) -> AsyncIterator[CanonicalEvent]:
        """Stream CanonicalEvents for one query.

        Implementations are async generators and never raise; failures are
        yielded as ErrorEvents.
        """
        ...

    @abstractmethod
    def detect_installation(self) -> InstallationStatus:
        """Check whether the backend can be used on this machine."""
        ...

    @abstractmethod
    def validate_config(self) -> ValidationResult:
        ...

    def abort(self) -> bool:
        """Stop the query in flight, if the backend supports it."""
        return False

    def get_available_models(self) -> List[ModelDefinition]:
        return get_models_for_provider(self.name)

    def get_model_string(self, model_id: Optional[str]) -> Optional[str]:
        """Resolve a model id or alias to what the backend expects."""
        if not model_id:
            return None
        return resolve_model_string(model_id)

    def supports_feature(self, feature: str) -> bool:
        return feature in self.features

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
