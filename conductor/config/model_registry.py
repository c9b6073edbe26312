"""Model registry for provider selection.

Provides:
1. Built-in model definitions across providers (Claude via SDK, Codex/OpenAI,
   Gemini and OpenCode via their CLIs)
2. Tier aliases (haiku, sonnet, opus) resolved to concrete Claude model strings
3. Lookup helpers used by the provider registry and the CLI tools

Model ids are what callers pass around; ``model_string`` is what the backend
receives on its command line or in its SDK options.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Literal, Optional

ModelTier = Literal["basic", "standard", "premium"]

CLAUDE_TIERS = frozenset(["haiku", "sonnet", "opus"])

CODEX_MODEL_IDS = (
    "gpt-5.1-codex-max",
    "gpt-5.1-codex",
    "gpt-5.1-codex-mini",
    "gpt-5.1",
    "o3",
    "o3-mini",
    "o4-mini",
    "gpt-4o",
    "gpt-4o-mini",
)

GEMINI_MODEL_PREFIX = "gemini-"

# OpenCode addresses models as <upstream-provider>/<model>; "opencode-" is an
# optional routing prefix stripped before the id reaches the CLI
OPENCODE_MODEL_PREFIX = "opencode-"


@dataclass
class ModelDefinition:
    """A selectable model and the string its backend expects."""
    id: str
    name: str
    model_string: str
    provider: str
    tier: ModelTier = "standard"
    description: str = ""
    supports_thinking: bool = False
    requires_auth: Optional[str] = None
    default: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _claude(id: str, name: str, model_string: str, tier: ModelTier, description: str,
            default: bool = False) -> ModelDefinition:
    return ModelDefinition(id, name, model_string, "claude", tier, description,
                           supports_thinking=True, requires_auth="ANTHROPIC_API_KEY",
                           default=default)


def _codex(id: str, name: str, tier: ModelTier, description: str,
           default: bool = False) -> ModelDefinition:
    return ModelDefinition(id, name, id, "codex", tier, description,
                           requires_auth="OPENAI_API_KEY", default=default)


def _gemini(id: str, name: str, tier: ModelTier, description: str,
            default: bool = False) -> ModelDefinition:
    return ModelDefinition(id, name, id, "gemini", tier, description,
                           supports_thinking=True, requires_auth="GEMINI_API_KEY",
                           default=default)


def _opencode(id: str, name: str, tier: ModelTier, description: str,
              default: bool = False) -> ModelDefinition:
    return ModelDefinition(id, name, id, "opencode", tier, description, default=default)


# Built-in model definitions, in display order
BUILTIN_MODELS: Dict[str, ModelDefinition] = {m.id: m for m in [
    _claude("haiku", "Claude Haiku", "claude-haiku-4-5", "basic",
            "Fast and efficient for simple tasks"),
    _claude("sonnet", "Claude Sonnet", "claude-sonnet-4-20250514", "standard",
            "Balanced performance and capabilities"),
    _claude("opus", "Claude Opus 4.5", "claude-opus-4-5-20251101", "premium",
            "Most capable model for complex tasks", default=True),
    _codex("gpt-5.1-codex-max", "GPT-5.1 Codex Max", "premium",
           "Deep and fast reasoning for coding", default=True),
    _codex("gpt-5.1-codex", "GPT-5.1 Codex", "standard", "Optimized for code generation"),
    _codex("gpt-5.1-codex-mini", "GPT-5.1 Codex Mini", "basic", "Faster and cheaper option"),
    _codex("gpt-5.1", "GPT-5.1", "standard", "Broad world knowledge with strong reasoning"),
    _codex("o3", "O3", "premium", "Advanced reasoning model"),
    _codex("o3-mini", "O3 Mini", "standard", "Efficient reasoning model"),
    _codex("o4-mini", "O4 Mini", "basic", "Fast reasoning with lower cost"),
    _codex("gpt-4o", "GPT-4o", "standard", "General purpose multimodal model"),
    _codex("gpt-4o-mini", "GPT-4o Mini", "basic", "Small and fast general model"),
    _gemini("gemini-2.5-pro", "Gemini 2.5 Pro", "premium", "Most capable Gemini model"),
    _gemini("gemini-2.5-flash", "Gemini 2.5 Flash", "standard",
            "Fast Gemini model for everyday tasks", default=True),
    _opencode("opencode/big-pickle", "Big Pickle (Free)", "basic",
              "OpenCode free tier model for general coding"),
    _opencode("opencode/gpt-5-nano", "GPT-5 Nano (Free)", "basic",
              "Fast and lightweight free tier model"),
    _opencode("opencode/grok-code", "Grok Code (Free)", "basic",
              "OpenCode free tier Grok model for coding"),
    _opencode("amazon-bedrock/anthropic.claude-sonnet-4-5-20250929-v1:0", "Claude Sonnet 4.5 (Bedrock)",
              "premium", "Claude Sonnet through AWS Bedrock", default=True),
    _opencode("amazon-bedrock/anthropic.claude-opus-4-5-20251101-v1:0", "Claude Opus 4.5 (Bedrock)",
              "premium", "Most capable Claude model through AWS Bedrock"),
    _opencode("amazon-bedrock/anthropic.claude-haiku-4-5-20251001-v1:0", "Claude Haiku 4.5 (Bedrock)",
              "standard", "Fastest Claude model through AWS Bedrock"),
    _opencode("amazon-bedrock/deepseek.r1-v1:0", "DeepSeek R1 (Bedrock)", "premium",
              "DeepSeek R1 reasoning model"),
    _opencode("amazon-bedrock/qwen.qwen3-coder-480b-a35b-v1:0", "Qwen3 Coder 480B (Bedrock)", "premium",
              "Qwen3 Coder through AWS Bedrock"),
]}


def get_model(model_id: str) -> Optional[ModelDefinition]:
    """Get model definition by ID."""
    return BUILTIN_MODELS.get(model_id)


def get_models_for_provider(provider: str) -> List[ModelDefinition]:
    return [m for m in BUILTIN_MODELS.values() if m.provider == provider]


def get_default_model(provider: str) -> Optional[ModelDefinition]:
    """Get the default model for a provider, or its first model."""
    models = get_models_for_provider(provider)
    for model in models:
        if model.default:
            return model
    return models[0] if models else None


def resolve_model_string(model_id: str) -> str:
    """Map a model id (or tier alias) to the string the backend expects.

    Unknown ids pass through unchanged so callers can use full model strings.
    """
    model = get_model(model_id)
    if model:
        return model.model_string
    if model_id.startswith(OPENCODE_MODEL_PREFIX):
        return model_id[len(OPENCODE_MODEL_PREFIX):]
    return model_id


def is_claude_model(model_id: str) -> bool:
    lowered = model_id.lower()
    return lowered in CLAUDE_TIERS or lowered.startswith("claude-")


def is_codex_model(model_id: str) -> bool:
    return model_id in CODEX_MODEL_IDS


def is_gemini_model(model_id: str) -> bool:
    return model_id.lower().startswith(GEMINI_MODEL_PREFIX)


def is_opencode_model(model_id: str) -> bool:
    return model_id.startswith(OPENCODE_MODEL_PREFIX) or "/" in model_id
