"""Configuration settings models using Pydantic."""

from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LocalModelConfig(BaseModel):
    """Configuration for the self-hosted OpenAI-compatible server."""

    endpoint: Optional[str] = "http://localhost:8000/v1"
    request_timeout: float = Field(default=60.0, gt=0)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v.strip().rstrip("/") if v else v


class RouterConfig(BaseModel):
    """Configuration for model resolution and failover."""

    default_model_id: str = "openai:gpt-4o-mini"
    health_ttl_seconds: float = Field(default=30.0, gt=0)


class RagConfig(BaseModel):
    """Configuration for retrieval augmentation."""

    top_k: int = Field(default=5, ge=1, le=50)
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = Field(default=1536, ge=1)


class ToolsConfig(BaseModel):
    """Configuration for the tool execution gate."""

    timeout_seconds: float = Field(default=10.0, gt=0)
    enabled: list[str] = Field(
        default_factory=lambda: [
            "calculator",
            "retrieve_docs",
            "web_search",
            "summarize_attachment",
        ]
    )
    web_search_timeout_seconds: float = Field(default=8.0, gt=0)


class StreamConfig(BaseModel):
    """Configuration for streaming turns."""

    keepalive_seconds: float = Field(default=15.0, gt=0)
    history_limit: int = Field(default=50, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    queue_size: int = Field(default=64, ge=1)


class RateLimitConfig(BaseModel):
    """Configuration for the per-user chat rate limit."""

    chat_max: int = Field(default=20, ge=1)
    window_seconds: float = Field(default=60.0, gt=0)


class StorageConfig(BaseModel):
    """Configuration for data storage."""

    database_path: str = "~/.chatgateway/conversations.db"

    @property
    def resolved_database_path(self) -> Path:
        """Get the resolved database path with ~ expanded."""
        return Path(self.database_path).expanduser()


class ServerConfig(BaseModel):
    """Configuration for the HTTP server."""

    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=1, le=65535)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHATGATEWAY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # API Keys - AliasChoices allows reading from either the field name or PROVIDER_API_KEY
    openai_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("openai_api_key", "OPENAI_API_KEY"),
    )
    anthropic_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("anthropic_api_key", "ANTHROPIC_API_KEY"),
    )
    local_model_api_key: Optional[str] = Field(
        default="local-key",
        validation_alias=AliasChoices("local_model_api_key", "LOCAL_MODEL_API_KEY"),
    )
    brave_search_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("brave_search_api_key", "BRAVE_SEARCH_API_KEY"),
    )

    # Nested configurations
    local: LocalModelConfig = Field(default_factory=LocalModelConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)
    rag: RagConfig = Field(default_factory=RagConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @field_validator(
        "openai_api_key",
        "anthropic_api_key",
        "local_model_api_key",
        "brave_search_api_key",
    )
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate API keys are not empty strings."""
        if v is not None and not v.strip():
            return None
        return v

    def has_api_key(self, provider: str) -> bool:
        """Check if an API key exists for the given provider kind."""
        key_map = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "local": self.local_model_api_key,
        }
        return key_map.get(provider) is not None

    @property
    def local_enabled(self) -> bool:
        """Whether a local model endpoint is configured."""
        return bool(self.local.endpoint)
