"""Static catalog of model descriptors and cost estimation."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    """Backend family a model is served by."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    LOCAL = "local"


@dataclass(frozen=True)
class ModelDescriptor:
    """Immutable description of a model the gateway can route to.

    Attributes:
        id: Public identifier, ``<provider>:<name>``.
        provider: Backend family.
        wire_name: Model name sent to the provider API.
        display_name: Human-readable name.
        max_output_tokens: Upper bound on completion length.
        context_window: Maximum prompt plus completion tokens.
        cost_weight: Relative cost, higher is more expensive.
        latency_weight: Relative speed, higher is faster.
    """

    id: str
    provider: ProviderKind
    wire_name: str
    display_name: str
    max_output_tokens: int
    context_window: int
    cost_weight: int
    latency_weight: int
    supports_vision: bool = False
    supports_tools: bool = True

    @property
    def is_local(self) -> bool:
        return self.provider == ProviderKind.LOCAL


MODEL_REGISTRY: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id="openai:gpt-4o-mini",
        provider=ProviderKind.OPENAI,
        wire_name="gpt-4o-mini",
        display_name="GPT-4o Mini",
        max_output_tokens=16384,
        context_window=128000,
        cost_weight=1,
        latency_weight=9,
        supports_vision=True,
    ),
    ModelDescriptor(
        id="openai:gpt-4.1",
        provider=ProviderKind.OPENAI,
        wire_name="gpt-4.1",
        display_name="GPT-4.1",
        max_output_tokens=32768,
        context_window=1047576,
        cost_weight=5,
        latency_weight=6,
        supports_vision=True,
    ),
    ModelDescriptor(
        id="anthropic:claude-sonnet-4-6",
        provider=ProviderKind.ANTHROPIC,
        wire_name="claude-sonnet-4-6",
        display_name="Claude Sonnet 4.6",
        max_output_tokens=16000,
        context_window=200000,
        cost_weight=4,
        latency_weight=7,
        supports_vision=True,
    ),
    ModelDescriptor(
        id="anthropic:claude-haiku-4-5",
        provider=ProviderKind.ANTHROPIC,
        wire_name="claude-haiku-4-5-20251001",
        display_name="Claude Haiku 4.5",
        max_output_tokens=16000,
        context_window=200000,
        cost_weight=1,
        latency_weight=10,
        supports_vision=True,
    ),
    ModelDescriptor(
        id="local:llama-3.1-70b",
        provider=ProviderKind.LOCAL,
        wire_name="llama-3.1-70b",
        display_name="Llama 3.1 70B (Local)",
        max_output_tokens=8192,
        context_window=131072,
        cost_weight=0,
        latency_weight=5,
        supports_vision=False,
    ),
)

DEFAULT_MODEL_ID = "openai:gpt-4o-mini"

_BY_ID: dict[str, ModelDescriptor] = {m.id: m for m in MODEL_REGISTRY}

# Cost per million tokens (input, output) in USD, keyed by wire name
MODEL_COSTS: dict[str, tuple[float, float]] = {
    "gpt-4o-mini": (0.15, 0.6),
    "gpt-4.1": (2.0, 8.0),
    "claude-sonnet-4-6": (3.0, 15.0),
    "claude-haiku-4-5-20251001": (0.8, 4.0),
    "llama-3.1-70b": (0.0, 0.0),
}


def default_model() -> ModelDescriptor:
    """Return the low-cost default descriptor."""
    return _BY_ID[DEFAULT_MODEL_ID]


def resolve_model(
    model_id: Optional[str], default: Optional[ModelDescriptor] = None
) -> ModelDescriptor:
    """Resolve a model id to its descriptor.

    Unknown or missing ids resolve to ``default`` (the deployment's
    configured default model), or to the built-in default when none is
    given. This is a routing policy, not an error.
    """
    if model_id and model_id in _BY_ID:
        return _BY_ID[model_id]
    substitute = default or default_model()
    if model_id:
        logger.debug(f"Unknown model id {model_id!r}, using {substitute.id}")
    return substitute


def available_models(local_enabled: bool = True) -> list[ModelDescriptor]:
    """List descriptors a caller may select.

    Local models are hidden when no local endpoint is configured.
    """
    return [m for m in MODEL_REGISTRY if local_enabled or not m.is_local]


def estimate_cost(
    descriptor: ModelDescriptor, prompt_tokens: int, completion_tokens: int
) -> float:
    """Estimate USD cost of a pass from token counts."""
    if descriptor.wire_name not in MODEL_COSTS:
        return 0.0

    input_cost, output_cost = MODEL_COSTS[descriptor.wire_name]
    cost = (prompt_tokens / 1_000_000 * input_cost) + (
        completion_tokens / 1_000_000 * output_cost
    )
    return round(cost, 6)
