"""Configuration management for the routing decision layer."""

from enum import Enum
from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ModelName(str, Enum):
    """Models usable for intent classification fallback."""
    HAIKU = "claude-haiku-4-5"
    SONNET = "claude-sonnet-4-5"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Hosted completion service (intent fallback)
    anthropic_api_key: Optional[SecretStr] = Field(None, description="Anthropic API key")
    intent_llm_enabled: bool = Field(True, description="Escalate low-confidence intents to the LLM")
    intent_llm_model: ModelName = Field(ModelName.HAIKU, description="Model used for intent classification")
    intent_llm_max_tokens: int = Field(300, description="Max tokens for the classification reply")
    intent_llm_timeout_seconds: float = Field(5.0, description="Timeout for the classification call")
    intent_llm_cache_ttl_seconds: int = Field(300, description="TTL of cached LLM classifications")
    intent_llm_cache_max_entries: int = Field(1000, description="Max cached LLM classifications")
    intent_confidence_threshold: float = Field(
        0.7, description="Pattern confidence at or above which the LLM is skipped"
    )

    # Ambiguity
    ambiguity_threshold: float = Field(0.6, description="Score at or above which a request is ambiguous")

    # Route cache
    route_cache_ttl_seconds: int = Field(300, description="TTL for shared-tier route entries")
    route_cache_max_memory_entries: int = Field(500, description="Capacity of the process-local tier")
    route_cache_min_confidence: float = Field(0.6, description="Minimum confidence to cache a route")
    route_cache_use_shared: bool = Field(True, description="Use the shared key-value cache as L2")
    route_cache_key_prefix: str = Field("route_cache:", description="Namespace for shared-tier keys")

    # Shared key-value cache backends
    valkey_url: Optional[str] = Field(None, description="Redis-compatible URL (redis://...)")
    upstash_redis_rest_url: Optional[str] = Field(None, description="Upstash REST URL")
    upstash_redis_rest_token: Optional[SecretStr] = Field(None, description="Upstash REST token")

    # A/B testing
    ab_min_samples: int = Field(30, description="Minimum samples per arm for significance testing")
    ab_significance_level: float = Field(0.05, description="p-value below which a winner is declared")

    # Logging
    log_level: str = Field("INFO", description="Log level")
    log_json: bool = Field(False, description="Emit logs as JSON")


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
