"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env file.
"""

from functools import lru_cache
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -----------------
    # LLM API Keys
    # -----------------
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key for judge, generation and rewriting calls",
    )

    # -----------------
    # Application
    # -----------------
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )

    # -----------------
    # Models
    # -----------------
    llm_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Answer generation model",
    )
    llm_model_fast: str = Field(
        default="claude-3-haiku-20240307",
        description="Judge model, also used for query rewriting",
    )

    # -----------------
    # Search service
    # -----------------
    search_api_url: str = Field(
        default="http://localhost:3000/api/rag",
        description="Base URL of the hybrid search service",
    )
    search_api_key: SecretStr | None = Field(
        default=None,
        description="Bearer token for the search service (empty for local access)",
    )
    search_timeout_seconds: float = Field(
        default=30.0,
        description="HTTP timeout for search requests",
    )

    # -----------------
    # Evaluation
    # -----------------
    eval_max_chunks: int = Field(
        default=5,
        description="Chunks retrieved per evaluation item",
    )
    eval_temperature: float = Field(
        default=0.3,
        description="Generation temperature during evaluation",
    )
    eval_history_turns: int = Field(
        default=4,
        description="Conversation turns passed to the query rewriter",
    )
    eval_concurrency: int = Field(
        default=3,
        description="Maximum concurrent judge calls within one item",
    )
    judge_temperature: float = Field(
        default=0.1,
        description="Judge model temperature",
    )
    judge_max_tokens: int = Field(
        default=500,
        description="Judge response token limit",
    )

    # Scores used when the judge output cannot be used
    fallback_faithfulness: float = Field(
        default=0.0,
        description="Faithfulness score when claim extraction fails",
    )
    fallback_answer_relevancy: float = Field(
        default=0.5,
        description="Answer relevancy score when the judge output is unusable",
    )
    fallback_context_recall: float = Field(
        default=0.5,
        description="Heuristic context recall score when the judge output is unusable",
    )

    # -----------------
    # Reporting
    # -----------------
    report_low_score_threshold: float = Field(
        default=0.7,
        description="Items below this faithfulness or relevancy need improvement",
    )
    report_max_items: int = Field(
        default=10,
        description="Maximum items listed in the markdown improvement section",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience access
settings = get_settings()
