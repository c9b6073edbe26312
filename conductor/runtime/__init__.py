# conductor/runtime package
# Drives coding-agent backends and supervised external processes.
#
# Core components:
#   - events: Canonical event schema every provider reduces its output to
#   - translation: Pure translators from CLI JSONL records to canonical events
#   - process: CLI executor, managed process sessions, detection, termination
#   - providers: Provider ABC, Claude SDK / Codex, Gemini and OpenCode CLIs, registry
#   - pipeline: Feature status state machine and pipeline step storage
#
# Usage:
#     from conductor.runtime import get_provider_for_model
#     provider = get_provider_for_model("gpt-5.1-codex")
#     async for event in provider.execute_query("Add a health check endpoint", cwd=repo):
#         print(event.to_dict())

from .errors import (
    ConductorError,
    PipelineStepNotFoundError,
    ProviderNotFoundError,
    ProviderUnavailableError,
)
from .events import (
    AssistantEvent,
    CanonicalEvent,
    CompleteEvent,
    ErrorEvent,
    EventType,
    ResultEvent,
    SessionStartEvent,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    event_to_dict,
)
from .pipeline import (
    FeatureStatus,
    PipelineConfig,
    PipelineService,
    PipelineStep,
    get_next_status,
    is_pipeline_status,
)
from .providers import (
    Provider,
    get_all_models,
    get_provider,
    get_provider_for_model,
    list_providers,
)

__all__ = [
    "AssistantEvent",
    "CanonicalEvent",
    "CompleteEvent",
    "ConductorError",
    "ErrorEvent",
    "EventType",
    "FeatureStatus",
    "PipelineConfig",
    "PipelineService",
    "PipelineStep",
    "PipelineStepNotFoundError",
    "Provider",
    "ProviderNotFoundError",
    "ProviderUnavailableError",
    "ResultEvent",
    "SessionStartEvent",
    "TextBlock",
    "ThinkingBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "event_to_dict",
    "get_all_models",
    "get_next_status",
    "get_provider",
    "get_provider_for_model",
    "is_pipeline_status",
    "list_providers",
]
