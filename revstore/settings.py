"""Configuration loaded from REVSTORE_* environment variables."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class RevstoreSettings(BaseSettings):
    """revstore settings.

    All fields are read from environment variables with the ``REVSTORE_``
    prefix.  For example, ``REVSTORE_LOG_LEVEL=DEBUG`` maps to ``log_level``.
    """

    model_config = SettingsConfigDict(
        env_prefix="REVSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False
    """Emit one JSON object per log record instead of the coloured format."""

    # -- Behaviour -------------------------------------------------------------
    backend: Literal["memory", "local", "s3", "github"] = "local"
    mode: Literal["document", "collection"] = "document"
    format: Literal["json", "jsonl", "csv", "yaml"] = "json"
    """Default encoding for new collections and for paths without a known suffix."""

    cache_enabled: bool = True
    cache_ttl: float = 300.0
    """Seconds a cached document stays valid."""

    hash_secret: SecretStr = SecretStr("default-secret-key-for-development")
    """Secret the field cipher derives its key from.  Override in production."""

    # -- Local backend ---------------------------------------------------------
    data_root: str = "./data"
    data_prefix: str | None = None
    """Optional namespace directory inserted under ``data_root``."""

    # -- GitHub backend --------------------------------------------------------
    github_token: SecretStr | None = None
    github_repo: str | None = None
    """``owner/name``; a bare name uses itself as owner."""

    github_branch: str = "main"
    github_api_url: str = "https://api.github.com"
    github_timeout: float = 30.0

    # -- S3 backend ------------------------------------------------------------
    s3_endpoint: str | None = None
    s3_bucket: str | None = None
    s3_region: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: SecretStr | None = None
    s3_path_style: bool = False
    """Use path-style addressing (required by MinIO and some S3-compatible services)."""


@lru_cache(maxsize=1)
def get_settings() -> RevstoreSettings:
    """Return a cached settings instance.

    Call ``get_settings.cache_clear()`` in tests to force a re-read after
    overriding env vars.
    """
    return RevstoreSettings()
