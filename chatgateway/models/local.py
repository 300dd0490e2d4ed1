"""Adapter for a self-hosted OpenAI-compatible server (vLLM and similar)."""

from .openai_chat import OpenAIChatAdapter
from .registry import ProviderKind


class LocalChatAdapter(OpenAIChatAdapter):
    """Same wire shape as the OpenAI adapter, pointed at a local endpoint.

    The client is an ``openai.AsyncOpenAI`` built with the local base URL
    and credential.
    """

    kind = ProviderKind.LOCAL
