"""
Configuration management for Agent Orchestra.

Uses pydantic-settings for environment-based configuration with validation.
All settings can be overridden via environment variables with ORCHESTRA_ prefix.
"""

import json
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class LLMProvider(str, Enum):
    """Supported completion providers."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OPENROUTER = "openrouter"


class EmbeddingProviderType(str, Enum):
    """Supported embedding providers."""

    OPENAI = "openai"
    HASHING = "hashing"


class MemoryType(str, Enum):
    """Which memory tiers an agent keeps."""

    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"
    HYBRID = "hybrid"


class RemovalStrategy(str, Enum):
    """How the short-term window is compacted once it exceeds its limit."""

    TRUNCATE = "truncate"
    SUMMARIZE = "summarize"


class ProcessMode(str, Enum):
    """Execution discipline used to walk a workflow's dependency graph."""

    SEQUENTIAL = "sequential"
    HIERARCHICAL = "hierarchical"


class LLMSettings(BaseSettings):
    """Settings for completion providers.

    Users can provide their API key via:
    1. Environment variable: ORCHESTRA_LLM_API_KEY or a provider-specific key
    2. Runtime: by passing an LLMSettings instance to create_client()
    """

    model_config = SettingsConfigDict(env_prefix="ORCHESTRA_LLM_")

    # Provider configuration
    provider: LLMProvider = Field(default=LLMProvider.ANTHROPIC)
    api_key: Optional[str] = Field(
        default=None,
        description="Primary API key (used if provider-specific key not set)"
    )
    anthropic_api_key: Optional[str] = Field(default=None)
    openai_api_key: Optional[str] = Field(default=None)
    openrouter_api_key: Optional[str] = Field(default=None)

    # Model selection
    anthropic_model: str = Field(default="claude-sonnet-4-20250514")
    openai_model: str = Field(default="gpt-4o")
    openrouter_model: str = Field(default="anthropic/claude-3-opus")
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1")

    # Request parameters
    max_tokens: int = Field(default=4096, ge=100, le=32000)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    timeout_seconds: int = Field(default=60, ge=10, le=300)

    def get_active_api_key(self) -> Optional[str]:
        """Get the API key for the configured provider."""
        if self.provider == LLMProvider.ANTHROPIC:
            return self.anthropic_api_key or self.api_key
        elif self.provider == LLMProvider.OPENAI:
            return self.openai_api_key or self.api_key
        elif self.provider == LLMProvider.OPENROUTER:
            return self.openrouter_api_key or self.api_key
        return self.api_key

    def get_model_name(self) -> str:
        """Get the default model for the configured provider."""
        if self.provider == LLMProvider.OPENAI:
            return self.openai_model
        if self.provider == LLMProvider.OPENROUTER:
            return self.openrouter_model
        return self.anthropic_model


class EmbeddingSettings(BaseSettings):
    """Settings for text embedding generation."""

    model_config = SettingsConfigDict(env_prefix="ORCHESTRA_EMBEDDING_")

    provider: EmbeddingProviderType = Field(default=EmbeddingProviderType.OPENAI)
    model: str = Field(default="text-embedding-3-small")
    dimensions: int = Field(default=1536, ge=8, le=8192)
    api_key: Optional[str] = Field(default=None)
    base_url: Optional[str] = Field(default=None)


class MemorySettings(BaseSettings):
    """Settings for per-agent hybrid memory."""

    model_config = SettingsConfigDict(env_prefix="ORCHESTRA_MEMORY_")

    memory_type: MemoryType = Field(default=MemoryType.HYBRID)

    # Short-term retention
    message_limit: int = Field(default=15, ge=1, le=1000)
    removal_strategy: RemovalStrategy = Field(default=RemovalStrategy.TRUNCATE)
    summary_max_chars: int = Field(default=2000, ge=100, le=20000)

    # Long-term recall
    relevance_threshold: Optional[float] = Field(default=None, ge=-1.0, le=1.0)
    max_recall_items: int = Field(default=5, ge=1, le=100)
    namespace: str = Field(default="default", min_length=1)
    auto_index: bool = Field(default=False)

    # Persistence
    persist_to_disk: bool = Field(default=False)
    storage_dir: Optional[Path] = Field(default=None)


class OrchestrationSettings(BaseSettings):
    """Settings for the workflow engine."""

    model_config = SettingsConfigDict(env_prefix="ORCHESTRA_ORCHESTRATION_")

    process_mode: ProcessMode = Field(default=ProcessMode.SEQUENTIAL)

    # Timeouts
    default_task_timeout_seconds: float = Field(default=60.0, gt=0.0, le=3600.0)
    research_task_timeout_seconds: float = Field(default=90.0, gt=0.0, le=3600.0)

    # Concurrency
    max_concurrent_tasks: int = Field(default=4, ge=1, le=64)

    # Failure handling
    max_retries: int = Field(default=0, ge=0, le=10)
    continue_on_failure: bool = Field(default=False)
    retry_on_timeout: bool = Field(default=False)

    # Memory integration
    use_memory_context: bool = Field(default=True)
    record_exchanges: bool = Field(default=True)

    # Simulated agent output is only ever produced when this is set
    demo_mode: bool = Field(default=False)


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings."""

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application info
    app_name: str = Field(default="Agent Orchestra")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=True)

    # Data directories
    data_dir: Path = Field(default=Path.home() / ".agent_orchestra")

    # Subsettings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    orchestration: OrchestrationSettings = Field(default_factory=OrchestrationSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and check the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    def get_memory_storage_dir(self) -> Path:
        """Directory used for persisted long-term memory."""
        return self.memory.storage_dir or self.data_dir / "memories"

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if self.memory.persist_to_disk:
            self.get_memory_storage_dir().mkdir(parents=True, exist_ok=True)


# Keys never written by a ConfigStore
_SECRET_FIELDS = {
    "llm": {"api_key", "anthropic_api_key", "openai_api_key", "openrouter_api_key"},
    "embedding": {"api_key"},
}


class ConfigStore(ABC):
    """Persistence boundary for settings and model preferences."""

    @abstractmethod
    def load(self) -> Optional[Settings]:
        """Load stored settings, or None if nothing has been stored."""

    @abstractmethod
    def save(self, settings: Settings) -> None:
        """Persist settings. API keys are never written."""


class JSONConfigStore(ConfigStore):
    """ConfigStore backed by a single JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[Settings]:
        if not self.path.exists():
            return None
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        return Settings(**data)

    def save(self, settings: Settings) -> None:
        data = settings.model_dump(mode="json", exclude=_SECRET_FIELDS)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        temp_path.replace(self.path)


# Global settings instance - lazy loaded
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure(
    settings: Optional[Settings] = None,
    store: Optional[ConfigStore] = None,
    **kwargs,
) -> Settings:
    """
    Configure the global settings.

    Args:
        settings: Optional Settings instance to use directly
        store: Optional ConfigStore to load persisted settings from
        **kwargs: Settings overrides

    Returns:
        The configured Settings instance
    """
    global _settings
    stored = store.load() if store is not None else None
    if settings is not None:
        _settings = settings
    elif stored is not None:
        _settings = Settings(**{**stored.model_dump(), **kwargs}) if kwargs else stored
    elif kwargs:
        _settings = Settings(**kwargs)
    else:
        _settings = Settings()
    return _settings
