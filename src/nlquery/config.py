"""
NLQuery Configuration

Configuration settings using pydantic-settings for environment variable support.
"""

from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class NLQueryConfig(BaseSettings):
    """
    Configuration for the query interpretation engine.

    Reads from environment variables with NLQUERY_ prefix. The OpenAI and
    Pinecone keys also accept their conventional unprefixed names.
    """

    model_config = SettingsConfigDict(
        env_prefix="NLQUERY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # LLM Settings
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("NLQUERY_OPENAI_API_KEY", "OPENAI_API_KEY"),
        description="Primary OpenAI API key",
    )
    openai_api_key_backup: str | None = Field(
        default=None,
        validation_alias=AliasChoices("NLQUERY_OPENAI_API_KEY_BACKUP", "OPENAI_API_KEY_BACKUP"),
        description="Backup OpenAI API key used when the primary is rate limited",
    )
    llm_model: str = Field(
        default="gpt-4o",
        description="Chat completion model used for classification",
    )
    classify_max_tokens: int = Field(
        default=2500,
        description="Completion token budget for classification",
    )
    classify_max_attempts: int = Field(
        default=5,
        description="Maximum attempts per classification call",
    )
    chat_max_tokens: int = Field(
        default=1000,
        description="Default completion token budget for free-form chat",
    )
    reclassify_max_tokens: int = Field(
        default=1500,
        description="Completion token budget for self-correction",
    )
    reclassify_max_attempts: int = Field(
        default=2,
        description="Maximum attempts per self-correction call",
    )

    # Concurrency Gate Settings
    gate_max_concurrent: int = Field(
        default=3,
        description="Maximum in-flight LLM calls",
    )
    gate_min_spacing_ms: int = Field(
        default=300,
        description="Minimum spacing between LLM call dispatches in milliseconds",
    )

    # Embedding Settings
    embedding_model: str = Field(
        default="text-embedding-3-large",
        description="OpenAI embedding model",
    )
    embedding_dimension: int = Field(
        default=3072,
        description="Output dimensionality requested from the embedding model",
    )
    embedding_max_concurrent: int = Field(
        default=5,
        description="Maximum concurrent embedding requests",
    )

    # Vector Index Settings
    pinecone_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("NLQUERY_PINECONE_API_KEY", "PINECONE_API_KEY"),
        description="Pinecone API key",
    )
    pinecone_index_name: str = Field(
        default="query-functions",
        description="Pinecone index holding the function/schema documents",
    )
    pinecone_namespace: str = Field(
        default="default",
        description="Pinecone namespace",
    )
    pinecone_cloud: str = Field(
        default="aws",
        description="Serverless cloud for index creation",
    )
    pinecone_region: str = Field(
        default="us-east-1",
        description="Serverless region for index creation",
    )
    rag_top_k: int = Field(
        default=5,
        description="Number of context blocks to retrieve",
    )

    # Data Settings
    fee_table_name: str = Field(
        default="POR",
        description="Table holding project fees for percentile computation",
    )
    percentile_ttl_hours: float = Field(
        default=24.0,
        description="How long computed fee percentiles stay valid",
    )
    column_cache_refresh_seconds: float = Field(
        default=3600.0,
        description="Refresh interval for cached distinct column values",
    )
    max_corrections: int = Field(
        default=1,
        description="Self-correction passes allowed per interpreted question",
    )

    # Observability
    telemetry_enabled: bool = Field(
        default=True,
        description="Emit OpenTelemetry spans",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level for the CLI",
    )


def load_config() -> NLQueryConfig:
    """Load configuration from environment."""
    return NLQueryConfig()
