"""
Configuration for SeeReal Core
==============================

Environment variables:
- GEMINI_API_KEY: API key for Gemini (bias analysis degrades to neutral without it)
- GEMINI_BASE_URL: REST base URL (default: https://generativelanguage.googleapis.com/v1beta)
- BIAS_MODELS: Comma-separated fallback chain for bias analysis
- DEBATE_MODELS / AUTHOR_MODELS: Fallback chains for debate cards and author lookup
- RELATED_MODEL: Single model used for related-article lookup
- VIDEO_MODEL: Long-running video model (default: veo-3.1-generate-preview)
- DATABASE_URL: SQLAlchemy URL for the analysis store (default: sqlite:///./seereal.db)
- CACHE_TTL_HOURS: Freshness window for cached analyses (default: 24)
- MAX_AGE_DAYS: Retention before eviction (default: 30)
- DEBATE_HISTORY_LIMIT: Debate records kept (default: 50)
- COALESCE_INFLIGHT: Share one computation between concurrent requests for a URL (default: true)
"""

from typing import Optional, List
from pydantic_settings import BaseSettings
from functools import lru_cache


def split_models(value: str) -> List[str]:
    """Parse a comma-separated model list, dropping blanks and duplicates."""
    models: List[str] = []
    for name in (value or "").split(","):
        name = name.strip()
        if name and name not in models:
            models.append(name)
    return models


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Gemini
    gemini_api_key: Optional[str] = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # Fallback chains (ordered by preference)
    bias_models: str = "gemini-2.5-flash,gemini-2.0-flash,gemini-2.5-flash-lite"
    debate_models: str = "gemini-2.0-flash,gemini-1.5-flash"
    author_models: str = "gemini-2.0-flash,gemini-1.5-flash"
    prompt_models: str = "gemini-2.5-flash,gemini-2.0-flash,gemini-2.5-flash-lite"
    related_model: str = "gemini-2.0-flash"

    # Video (long-running operation)
    video_model: str = "veo-3.1-generate-preview"
    video_poll_interval_seconds: float = 8.0
    video_max_poll_attempts: int = 30

    # Storage
    database_url: str = "sqlite:///./seereal.db"
    sql_echo: bool = False

    # Cache policy
    cache_ttl_hours: float = 24
    max_age_days: float = 30
    debate_history_limit: int = 50
    coalesce_inflight: bool = True

    # Prompt bounds
    max_prompt_chars: int = 15000

    # Timeouts (seconds)
    llm_timeout: int = 60
    shutdown_drain_timeout: float = 10.0

    # API
    cors_origins: str = "*"

    # Service info
    service_version: str = "1.0.0"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def has_gemini_key(self) -> bool:
        return bool(self.gemini_api_key and self.gemini_api_key.strip())

    def model_order(self, purpose: str) -> List[str]:
        """Fallback chain for a purpose: bias, debate, author, prompt or related."""
        if purpose == "related":
            return split_models(self.related_model)
        value = getattr(self, f"{purpose}_models", None)
        if value is None:
            raise ValueError(f"Unknown model purpose: {purpose}")
        return split_models(value)

    def validate_llm_config(self) -> List[str]:
        """Validate LLM configuration, return list of warnings"""
        warnings = []

        if not self.has_gemini_key:
            warnings.append("GEMINI_API_KEY not set; bias analysis will return neutral scores")

        for purpose in ("bias", "debate", "author", "prompt", "related"):
            if not self.model_order(purpose):
                warnings.append(f"No models configured for {purpose}")

        if self.video_max_poll_attempts < 1:
            warnings.append("VIDEO_MAX_POLL_ATTEMPTS < 1; video generation will always time out")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
