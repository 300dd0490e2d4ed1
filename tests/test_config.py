"""Tests for configuration loading."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from chatgateway.config import (
    Settings,
    _deep_merge,
    _expand_env_vars,
    _transform_config_to_settings,
    get_settings,
    load_settings,
    reset_settings,
)
from chatgateway.config.settings import LocalModelConfig, RagConfig


class TestExpandEnvVars:
    """Tests for environment variable expansion."""

    def test_expand_simple_var(self) -> None:
        """Test expanding a simple environment variable."""
        os.environ["GW_TEST_VAR"] = "test_value"
        try:
            assert _expand_env_vars("${GW_TEST_VAR}") == "test_value"
        finally:
            del os.environ["GW_TEST_VAR"]

    def test_expand_missing_var(self) -> None:
        """Test expanding a missing environment variable returns None."""
        assert _expand_env_vars("${GW_NONEXISTENT_VAR}") is None

    def test_expand_nested(self) -> None:
        """Test expanding variables in nested dicts and lists."""
        os.environ["GW_NESTED"] = "v"
        try:
            result = _expand_env_vars({"a": {"b": "${GW_NESTED}"}, "c": ["${GW_NESTED}", "x"]})
        finally:
            del os.environ["GW_NESTED"]
        assert result == {"a": {"b": "v"}, "c": ["v", "x"]}

    def test_non_string_untouched(self) -> None:
        """Test numbers and booleans pass through."""
        assert _expand_env_vars(5) == 5
        assert _expand_env_vars(True) is True


class TestDeepMerge:
    """Tests for dictionary deep merge."""

    def test_override_wins(self) -> None:
        """Test override values take precedence."""
        assert _deep_merge({"a": 1, "b": 2}, {"b": 3}) == {"a": 1, "b": 3}

    def test_nested_merge(self) -> None:
        """Test nested dictionaries are merged key by key."""
        base = {"rag": {"top_k": 5, "similarity_threshold": 0.7}}
        override = {"rag": {"top_k": 3}}
        assert _deep_merge(base, override) == {"rag": {"top_k": 3, "similarity_threshold": 0.7}}


class TestTransformConfig:
    """Tests for mapping YAML structure onto Settings fields."""

    def test_api_keys_mapped(self) -> None:
        """Test api_keys entries become top-level key fields."""
        result = _transform_config_to_settings(
            {"api_keys": {"openai": "sk-1", "brave_search": "brave", "anthropic": None}}
        )
        assert result["openai_api_key"] == "sk-1"
        assert result["brave_search_api_key"] == "brave"
        assert "anthropic_api_key" not in result

    def test_sections_drop_none(self) -> None:
        """Test unset values in sections fall back to field defaults."""
        result = _transform_config_to_settings({"rag": {"top_k": 3, "embedding_model": None}})
        assert result["rag"] == {"top_k": 3}


class TestSettings:
    """Tests for the Settings model."""

    def test_defaults(self, clean_env: None) -> None:
        """Test default values match the documented behavior."""
        settings = Settings()
        assert settings.rag.top_k == 5
        assert settings.rag.similarity_threshold == 0.7
        assert settings.tools.timeout_seconds == 10.0
        assert settings.stream.keepalive_seconds == 15.0
        assert settings.stream.history_limit == 50
        assert settings.rate_limit.chat_max == 20
        assert settings.rate_limit.window_seconds == 60.0
        assert settings.router.health_ttl_seconds == 30.0
        assert settings.router.default_model_id == "openai:gpt-4o-mini"

    def test_empty_key_becomes_none(self, clean_env: None) -> None:
        """Test empty API keys are treated as missing."""
        settings = Settings(openai_api_key="  ")
        assert settings.openai_api_key is None
        assert settings.has_api_key("openai") is False

    def test_plain_env_key(self, clean_env: None) -> None:
        """Test keys are read from the unprefixed provider variable."""
        os.environ["OPENAI_API_KEY"] = "env-key"
        settings = Settings()
        assert settings.openai_api_key == "env-key"

    def test_nested_env_override(self, clean_env: None) -> None:
        """Test nested values are read with the double-underscore delimiter."""
        os.environ["CHATGATEWAY_RAG__TOP_K"] = "7"
        settings = Settings()
        assert settings.rag.top_k == 7

    def test_rag_threshold_bounds(self) -> None:
        """Test similarity threshold must lie in [0, 1]."""
        with pytest.raises(ValidationError):
            RagConfig(similarity_threshold=1.5)

    def test_local_endpoint_normalized(self) -> None:
        """Test trailing slashes are stripped and blank endpoints disable local."""
        assert LocalModelConfig(endpoint="http://gpu:8000/v1/").endpoint == "http://gpu:8000/v1"
        assert LocalModelConfig(endpoint="   ").endpoint is None

    def test_local_enabled(self, clean_env: None) -> None:
        """Test local models are enabled only with an endpoint."""
        assert Settings(local={"endpoint": "http://x/v1"}).local_enabled is True
        assert Settings(local={"endpoint": ""}).local_enabled is False

    def test_resolved_database_path(self, temp_dir: Path) -> None:
        """Test ~ is expanded in the database path."""
        settings = Settings(storage={"database_path": "~/gw/test.db"})
        assert "~" not in str(settings.storage.resolved_database_path)


class TestLoadSettings:
    """Tests for loading settings from files."""

    def test_load_from_file(self, clean_env: None, temp_config_file: Path) -> None:
        """Test values from a user config file override defaults."""
        settings = load_settings(config_path=temp_config_file, force_reload=True)
        assert settings.openai_api_key == "test-openai-key"
        assert settings.rag.top_k == 3
        assert settings.rag.similarity_threshold == 0.5
        assert settings.tools.timeout_seconds == 5.0
        assert settings.rate_limit.chat_max == 2
        # Untouched sections keep packaged defaults
        assert settings.stream.history_limit == 50

    def test_missing_file_uses_defaults(self, clean_env: None, temp_dir: Path) -> None:
        """Test a missing config file falls back to packaged defaults."""
        settings = load_settings(config_path=temp_dir / "absent.yaml", force_reload=True)
        assert settings.tools.enabled == [
            "calculator",
            "retrieve_docs",
            "web_search",
            "summarize_attachment",
        ]

    def test_singleton_cached(self, clean_env: None, temp_config_file: Path) -> None:
        """Test get_settings returns the cached instance until reset."""
        first = load_settings(config_path=temp_config_file, force_reload=True)
        assert get_settings() is first
        reset_settings()
        os.environ["OPENAI_API_KEY"] = "other"
        # Reset forces a fresh load on next access
        assert load_settings(config_path=temp_config_file) is not first
