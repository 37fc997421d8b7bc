"""
Configuration management for faithqa.
Loads from config/faithqa.yaml and environment variables.
"""

from pathlib import Path
from typing import Optional, Dict, Any, List
import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class LLMConfig(BaseSettings):
    """LLM provider configuration."""
    provider: str = Field(default="openai")  # openai, anthropic
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    chat_model_candidates: List[str] = Field(
        default_factory=lambda: ["gpt-4o", "gpt-4o-mini", "gpt-3.5-turbo"]
    )
    temperature: float = Field(default=0.4)
    strict_temperature: float = Field(default=0.2)
    max_tokens: int = Field(default=1200)
    strict_max_tokens: int = Field(default=800)

    model_config = SettingsConfigDict(env_prefix="LLM_", extra="ignore", populate_by_name=True)


class EmbeddingConfig(BaseSettings):
    """Embedding model configuration."""
    provider: str = Field(default="openai")
    model: str = Field(default="text-embedding-3-small", alias="EMBEDDING_MODEL")
    batch_size: int = Field(default=100)

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_", extra="ignore", populate_by_name=True)


class PipelineConfig(BaseSettings):
    """Request admission, deadline and retry configuration."""
    max_response_time_ms: int = Field(default=3000)
    max_retries: int = Field(default=2)
    retry_base_ms: int = Field(default=100)
    concurrent_requests: int = Field(default=5)
    queue_capacity: int = Field(default=20)
    history_exchanges: int = Field(default=3)
    max_question_bytes: int = Field(default=8192)

    model_config = SettingsConfigDict(env_prefix="PIPELINE_", extra="ignore")


class CacheConfig(BaseSettings):
    """Response cache configuration."""
    enabled: bool = Field(default=True)
    ttl_ms: int = Field(default=300_000)
    capacity: int = Field(default=100)

    model_config = SettingsConfigDict(env_prefix="CACHE_", extra="ignore")


class AlignmentConfig(BaseSettings):
    """Faith alignment thresholds."""
    accuracy_threshold: float = Field(default=0.90)
    regenerate_threshold: float = Field(default=0.70)
    escalate_threshold: float = Field(default=0.60)
    ok_threshold: float = Field(default=0.85)

    model_config = SettingsConfigDict(env_prefix="ALIGNMENT_", extra="ignore")


class RetrievalConfig(BaseSettings):
    """Knowledge base retrieval configuration."""
    top_k: int = Field(default=3)
    min_score: float = Field(default=0.60)

    model_config = SettingsConfigDict(env_prefix="RETRIEVAL_", extra="ignore")


class PrivacyConfig(BaseSettings):
    """Privacy and retention configuration."""
    retain_conversation_data: bool = Field(default=False, alias="RETAIN_CONVERSATION_DATA")
    conversation_retention_days: int = Field(default=30, alias="CONVERSATION_RETENTION_DAYS")
    anonymize_user_data: bool = Field(default=True, alias="ANONYMIZE_USER_DATA")

    model_config = SettingsConfigDict(env_prefix="PRIVACY_", extra="ignore", populate_by_name=True)


# Flat option names accepted in YAML, mapped onto their section
FLAT_KEYS: Dict[str, tuple[str, str]] = {
    "max_response_time_ms": ("pipeline", "max_response_time_ms"),
    "max_retries": ("pipeline", "max_retries"),
    "concurrent_requests": ("pipeline", "concurrent_requests"),
    "cache_ttl_ms": ("cache", "ttl_ms"),
    "cache_capacity": ("cache", "capacity"),
    "cache_enabled": ("cache", "enabled"),
    "accuracy_threshold": ("alignment", "accuracy_threshold"),
    "alignment_regenerate_threshold": ("alignment", "regenerate_threshold"),
    "alignment_escalate_threshold": ("alignment", "escalate_threshold"),
    "alignment_ok_threshold": ("alignment", "ok_threshold"),
    "retain_conversation_data": ("privacy", "retain_conversation_data"),
    "conversation_retention_days": ("privacy", "conversation_retention_days"),
    "anonymize_user_data": ("privacy", "anonymize_user_data"),
    "chat_model_candidates": ("llm", "chat_model_candidates"),
    "embedding_model": ("embedding", "model"),
}


class FaithQASettings(BaseSettings):
    """Main faithqa configuration."""
    env: str = Field(default="dev", alias="FAITHQA_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(default=None, alias="LOG_FILE")
    db_path: Path = Field(default=Path("data/faithqa.sqlite"), alias="FAITHQA_DB_PATH")
    supported_languages: List[str] = Field(default_factory=lambda: ["en", "am", "ti", "om"])

    # Sub-configurations
    llm: LLMConfig = Field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    alignment: AlignmentConfig = Field(default_factory=AlignmentConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    privacy: PrivacyConfig = Field(default_factory=PrivacyConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        populate_by_name=True
    )

    @classmethod
    def load_from_yaml(cls, config_path: Optional[Path] = None) -> "FaithQASettings":
        """Load settings from YAML file and merge with environment variables."""
        if config_path is None:
            config_path = Path("config/faithqa.yaml")

        config_dict: Dict[str, Any] = {}

        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f) or {}
                config_dict = yaml_data.get("faithqa", {})

        return cls(**_nest_flat_keys(config_dict))


def _nest_flat_keys(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Move flat option names (cache_ttl_ms, ...) into their sections."""
    nested = dict(config_dict)
    for flat_key, (section, field_name) in FLAT_KEYS.items():
        if flat_key not in nested:
            continue
        value = nested.pop(flat_key)
        section_cfg = dict(nested.get(section) or {})
        section_cfg.setdefault(field_name, value)
        nested[section] = section_cfg
    return nested


# Global settings instance
_settings: Optional[FaithQASettings] = None


def get_settings() -> FaithQASettings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = FaithQASettings.load_from_yaml()
    return _settings


# Alias for convenience
settings = get_settings()
