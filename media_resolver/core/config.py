# media_resolver/core/config.py
from __future__ import annotations

"""
# Media Resolver — Centralized Configuration (Pydantic v2)

Single `settings` object with strongly-typed, environment-driven config.

## Goals
- Safe defaults for local/dev; nothing is required so imports never crash.
- Robust URL normalization and CSV → list helpers.
- Optional external systems (AWS / CDN / processor / transcoder).
- Explicit timeouts for every external call the resolvers make.

## Usage
    from media_resolver.core.config import settings
"""

import logging
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)
load_dotenv()  # harmless in prod; convenient in dev


# ─────────────────────────────────────────────────────────────
# Small helpers
# ─────────────────────────────────────────────────────────────
def _split_csv(v: str | None) -> list[str]:
    """Split a comma-separated string into a trimmed list (empty-safe)."""
    if not v:
        return []
    return [s.strip() for s in str(v).split(",") if s and s.strip()]


def _normalize_url_like(v: str | None, *, require_scheme: bool = True) -> str:
    """Normalize to a string URL without trailing slash."""
    s = (v or "").strip()
    if not s:
        return ""
    if require_scheme and not (s.startswith("http://") or s.startswith("https://")):
        s = "https://" + s
    return s.rstrip("/")


# Hard ceiling for the registration circuit breaker.
MAX_REGISTRATION_ATTEMPTS = 3


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────
class Settings(BaseSettings):
    """
    Global settings sourced from environment.

    Storage:
        - Object store (S3) + CDN (CloudFront) are optional in dev.
        - The origin relay is the always-derivable pass-through endpoint.

    External services:
        - Media processor (Mux-compatible REST API).
        - Secondary transcoder (AWS MediaConvert).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # don't crash on unknown keys
    )

    # ── App meta ──────────────────────────────────────────────
    PROJECT_NAME: str = "Media Resolver"
    VERSION: str = "1.0.0"
    ENV: Literal["development", "staging", "production"] = "development"

    # ── Database (PostgreSQL) ─────────────────────────────────
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: SecretStr = SecretStr("postgres")
    POSTGRES_DB: str = "media_resolver"

    # ── Object store / CDN (optional in dev) ──────────────────
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[SecretStr] = None
    AWS_SESSION_TOKEN: Optional[SecretStr] = None
    AWS_REGION: str = "us-east-1"
    AWS_BUCKET_NAME: Optional[str] = None
    AWS_S3_ENDPOINT_URL: Optional[str] = None
    CLOUDFRONT_DOMAIN: Optional[str] = None  # e.g., cdn.example.com or https://cdn.example.com
    PRESIGNED_GET_TTL_SECONDS: int = Field(3600, ge=60, le=7 * 24 * 60 * 60)

    # ── Origin relay (direct pass-through endpoint) ───────────
    ORIGIN_RELAY_BASE_URL: str = "http://localhost:8000/api/videos/stream"

    # ── External media processor (Mux-compatible) ─────────────
    MUX_API_BASE_URL: str = "https://api.mux.com"
    MUX_TOKEN_ID: Optional[str] = None
    MUX_TOKEN_SECRET: Optional[SecretStr] = None
    MUX_STREAM_BASE_URL: str = "https://stream.mux.com"
    MUX_IMAGE_BASE_URL: str = "https://image.mux.com"
    MUX_THUMBNAIL_TIME_SECONDS: int = Field(10, ge=0)
    PROCESSOR_TIMEOUT_SECONDS: float = Field(5.0, gt=0, le=30)

    # ── Secondary transcoder (AWS MediaConvert) ───────────────
    MEDIACONVERT_ENDPOINT: Optional[str] = None
    MEDIACONVERT_ROLE_ARN: Optional[str] = None
    MEDIACONVERT_OUTPUT_PREFIX: str = "thumbnails/"
    SECONDARY_THUMBNAIL_TIMEOUT_SECONDS: float = Field(120.0, gt=0, le=15 * 60)
    SECONDARY_POLL_INTERVAL_SECONDS: float = Field(5.0, gt=0, le=60)

    # ── Probing / discovery ───────────────────────────────────
    PROBE_TIMEOUT_SECONDS: float = Field(5.0, gt=0, le=30)
    THUMBNAIL_PROBE_TIMEOUT_SECONDS: float = Field(3.0, gt=0, le=30)
    VERIFIED_TTL_SECONDS: int = Field(15 * 60, ge=0, le=24 * 60 * 60)

    # ── Registration ──────────────────────────────────────────
    REGISTRATION_MAX_ATTEMPTS: int = Field(MAX_REGISTRATION_ATTEMPTS, ge=1, le=MAX_REGISTRATION_ATTEMPTS)

    # ── Playback ──────────────────────────────────────────────
    PLAYBACK_ORDER: str = "PROCESSOR_STREAM,CDN,ORIGIN_RELAY"  # CSV of BackendType names

    # ── Repository selection ──────────────────────────────────
    VIDEO_ASSET_REPOSITORY_IMPL: Optional[str] = None  # "module.sub:ClassName"

    # ── Validators / normalizers ──────────────────────────────
    @field_validator("CLOUDFRONT_DOMAIN", mode="before")
    @classmethod
    def _normalize_cdn_domain(cls, v: str | None) -> str | None:
        """
        Accepts either 'cdn.example.com' or 'https://cdn.example.com' and
        normalizes to 'https://cdn.example.com' (no trailing slash).
        """
        s = (v or "").strip()
        if not s:
            return None
        return _normalize_url_like(s, require_scheme=not (s.startswith("http://") or s.startswith("https://")))

    @field_validator("ORIGIN_RELAY_BASE_URL", "MUX_API_BASE_URL", "MUX_STREAM_BASE_URL", "MUX_IMAGE_BASE_URL", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, v: str | None) -> str:
        return _normalize_url_like(v)

    # ── Derived / convenience properties ─────────────────────
    @property
    def DATABASE_URL(self) -> str:
        """Sync DSN."""
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD.get_secret_value()}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def ASYNC_DATABASE_URL(self) -> str:
        """Async SQLAlchemy DSN."""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

    @property
    def TEST_DATABASE_URL(self) -> str:
        """Async test DSN (suffix `_test`)."""
        return (
            self.DATABASE_URL
            .replace(self.POSTGRES_DB, f"{self.POSTGRES_DB}_test")
            .replace("postgresql://", "postgresql+asyncpg://")
        )

    @property
    def cdn_base_url(self) -> str:
        """
        CloudFront base URL normalized to a full https URL without trailing slash.
        """
        d = (self.CLOUDFRONT_DOMAIN or "").strip().rstrip("/")
        if not d:
            return ""
        return d if d.startswith(("http://", "https://")) else f"https://{d}"

    @property
    def playback_order_list(self) -> List[str]:
        """Upper-cased `PLAYBACK_ORDER` entries, in configured order."""
        return [s.upper() for s in _split_csv(self.PLAYBACK_ORDER)]


# Singleton instance
settings = Settings()
