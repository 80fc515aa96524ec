"""Tracker configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars;
secrets are kept as :class:`SecretStr` so they never end up in logs.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class LLMConfig(BaseSettings):
    """Chat-completions endpoint used for classification and extraction."""

    model_config = {"env_prefix": "LLM_"}

    api_key: SecretStr | None = Field(default=None, description="OpenAI API key")
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible API",
    )
    model: str = Field(default="gpt-4o-mini", description="Chat model name")
    temperature: float = Field(default=0.1, description="Low for precise extraction")
    max_tokens: int = Field(default=2000, description="Maximum completion tokens")
    timeout_seconds: float = Field(default=60.0, description="HTTP request timeout")
    model_version: str = Field(
        default="gpt-4o-mini-v1",
        description="Tag stored with cached analyses; any change invalidates them",
    )
    min_confidence: float = Field(
        default=0.7,
        description="Classifications below this confidence are downgraded to 'autre'",
    )


class GeocodingConfig(BaseSettings):
    """Active geocoding provider and its credentials."""

    model_config = {"env_prefix": "GEOCODING_"}

    provider: Literal["nominatim", "google", "mapbox"] = Field(
        default="nominatim",
        description="Name of the active provider adapter",
    )
    google_api_key: SecretStr | None = Field(default=None, description="Google Geocoding key")
    mapbox_api_key: SecretStr | None = Field(default=None, description="Mapbox access token")
    nominatim_url: str = Field(
        default="https://nominatim.openstreetmap.org/search",
        description="Nominatim search endpoint",
    )
    user_agent: str = Field(
        default="FormationTracker/1.0",
        description="User-Agent sent to Nominatim (required by its usage policy)",
    )
    min_interval_seconds: float = Field(
        default=1.0,
        description="Minimum spacing between Nominatim requests",
    )
    timeout_seconds: float = Field(default=15.0, description="HTTP request timeout")


class StoreConfig(BaseSettings):
    """Backing store for the raw-message, formation and cache tables."""

    model_config = {"env_prefix": "STORE_"}

    backend: Literal["memory", "s3"] = Field(default="memory", description="Table backend")
    bucket: str = Field(default="formation-tracker", description="S3 bucket name")
    prefix: str = Field(default="tracker", description="S3 key prefix for all tables")
    region: str = Field(default="eu-west-3", description="AWS region")
    endpoint_url: str | None = Field(
        default=None,
        description="Custom S3 endpoint URL (e.g. for MinIO)",
    )


class ImapConfig(BaseSettings):
    """IMAP mailbox holding the training-session emails."""

    model_config = {"env_prefix": "IMAP_"}

    host: str = Field(default="", description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    use_ssl: bool = Field(default=True, description="Use SSL/TLS connection")
    username: str = Field(default="", description="IMAP login username")
    password: SecretStr = Field(default=SecretStr(""), description="IMAP login password")
    mailbox: str = Field(default="INBOX", description="IMAP mailbox/folder to read")


class RetryConfig(BaseSettings):
    """Retry / backoff settings driven by Tenacity."""

    model_config = {"env_prefix": "RETRY_"}

    max_attempts: int = Field(default=3, description="Maximum attempts per LLM call")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=30.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class TrackerConfig(BaseSettings):
    """Root configuration.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "TRACKER_"}

    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")
    geocode: bool = Field(default=True, description="Geocode new locations after fusion")

    llm: LLMConfig = Field(default_factory=LLMConfig)
    geocoding: GeocodingConfig = Field(default_factory=GeocodingConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    imap: ImapConfig = Field(default_factory=ImapConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
