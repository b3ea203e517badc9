"""Application configuration."""

import os
import socket

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    api_tokens: str
    admin_identities: str | None = None
    allowed_identities: str | None = None
    host_identity: str = Field(default_factory=socket.gethostname)
    max_concurrent_sessions: int = Field(default=4, ge=1)
    max_concurrent_per_requester: int = Field(default=2, ge=1)
    max_duration_seconds: float = Field(default=600, gt=0)
    min_interval_between_starts_seconds: float = Field(default=5, ge=0)
    sweep_interval_seconds: float = Field(default=5, gt=0)
    retention_seconds: float = Field(default=3600, ge=0)
    artifact_dir: str = "artifacts"
    artifact_suffix: str = ".folded"
    allowed_presets: str = "default,high-resolution,low-overhead"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    supabase_bucket: str = "profiling-artifacts"
    supabase_sessions_table: str = "profiling_sessions"
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_api_tokens(raw: str | None) -> dict[str, str]:
    """Parse `token=identity` pairs separated by commas."""
    tokens: dict[str, str] = {}
    if raw is None:
        return tokens
    for chunk in raw.split(","):
        token, sep, identity = chunk.strip().partition("=")
        if not sep:
            continue
        token = token.strip()
        identity = identity.strip()
        if token and identity:
            tokens[token] = identity
    return tokens


def parse_identities(raw: str | None) -> frozenset[str] | None:
    """Parse a comma-separated identity list; None means unrestricted."""
    if raw is None:
        return None
    cleaned = raw.strip()
    if cleaned in {"", "*"}:
        return None
    identities = {chunk.strip() for chunk in cleaned.split(",") if chunk.strip()}
    return frozenset(identities) or None
