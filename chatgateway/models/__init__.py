"""Provider adapters, model registry and routing."""

import logging
from typing import Optional

import anthropic
import openai

from chatgateway.config import Settings, get_settings
from chatgateway.errors import MissingAPIKeyError

from .anthropic_messages import AnthropicMessagesAdapter
from .base import ProviderAdapter, StreamOptions, ToolCallAccumulator
from .local import LocalChatAdapter
from .openai_chat import OpenAIChatAdapter
from .registry import (
    DEFAULT_MODEL_ID,
    MODEL_REGISTRY,
    ModelDescriptor,
    ProviderKind,
    available_models,
    default_model,
    estimate_cost,
    resolve_model,
)
from .router import HealthCache, ModelRouter
from .tools import ToolDefinition, ToolParameter, tools_to_anthropic, tools_to_openai
from .types import (
    ChatMessage,
    Citation,
    FinishReason,
    ImageBlock,
    MessageRole,
    StreamChunk,
    TextBlock,
    ToolCallFragment,
    ToolCallRequest,
    ToolCallResult,
    Usage,
)

logger = logging.getLogger(__name__)


class ProviderFactory:
    """Holds one adapter per provider kind, built once at startup.

    Adapters are only created for providers whose credentials are
    configured; asking for a missing one raises ``MissingAPIKeyError``.
    """

    def __init__(self, adapters: dict[ProviderKind, ProviderAdapter]):
        self._adapters = dict(adapters)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ProviderFactory":
        """Create SDK clients and adapters from settings."""
        if settings is None:
            settings = get_settings()

        adapters: dict[ProviderKind, ProviderAdapter] = {}

        if settings.openai_api_key:
            adapters[ProviderKind.OPENAI] = OpenAIChatAdapter(
                openai.AsyncOpenAI(api_key=settings.openai_api_key)
            )
        else:
            logger.info("OpenAI API key not configured, provider disabled")

        if settings.anthropic_api_key:
            adapters[ProviderKind.ANTHROPIC] = AnthropicMessagesAdapter(
                anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
            )
        else:
            logger.info("Anthropic API key not configured, provider disabled")

        if settings.local_enabled:
            adapters[ProviderKind.LOCAL] = LocalChatAdapter(
                openai.AsyncOpenAI(
                    api_key=settings.local_model_api_key or "local",
                    base_url=settings.local.endpoint,
                    timeout=settings.local.request_timeout,
                )
            )

        return cls(adapters)

    def get(self, kind: ProviderKind) -> ProviderAdapter:
        """Get the adapter for a provider kind."""
        adapter = self._adapters.get(kind)
        if adapter is None:
            raise MissingAPIKeyError(kind.value)
        return adapter

    def has(self, kind: ProviderKind) -> bool:
        return kind in self._adapters

    def for_model(self, descriptor: ModelDescriptor) -> ProviderAdapter:
        """Get the adapter that serves a descriptor."""
        return self.get(descriptor.provider)

    def build_router(
        self, ttl: float = 30.0, fallback: Optional[ModelDescriptor] = None
    ) -> ModelRouter:
        """Create a router probing the local adapter, if one is configured."""
        local = self._adapters.get(ProviderKind.LOCAL)
        return ModelRouter(
            probe=local.check_health if local else None, ttl=ttl, fallback=fallback
        )

    async def health(self) -> dict[str, bool]:
        """Probe every configured provider."""
        return {
            kind.value: await adapter.check_health()
            for kind, adapter in self._adapters.items()
        }


__all__ = [
    # Factory
    "ProviderFactory",
    # Adapters
    "ProviderAdapter",
    "OpenAIChatAdapter",
    "AnthropicMessagesAdapter",
    "LocalChatAdapter",
    "StreamOptions",
    "ToolCallAccumulator",
    # Registry and routing
    "DEFAULT_MODEL_ID",
    "MODEL_REGISTRY",
    "ModelDescriptor",
    "ProviderKind",
    "available_models",
    "default_model",
    "estimate_cost",
    "resolve_model",
    "HealthCache",
    "ModelRouter",
    # Tools
    "ToolDefinition",
    "ToolParameter",
    "tools_to_anthropic",
    "tools_to_openai",
    # Types
    "ChatMessage",
    "Citation",
    "FinishReason",
    "ImageBlock",
    "MessageRole",
    "StreamChunk",
    "TextBlock",
    "ToolCallFragment",
    "ToolCallRequest",
    "ToolCallResult",
    "Usage",
]
