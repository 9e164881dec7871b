"""Content store implementations."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from revstore.errors import ConfigurationError
from revstore.store.base import NOT_FOUND, ContentStore, NotFound, ReadResult
from revstore.store.local import LocalContentStore
from revstore.store.memory import MemoryContentStore

if TYPE_CHECKING:
    from revstore.settings import RevstoreSettings

__all__ = [
    "NOT_FOUND",
    "ContentStore",
    "LocalContentStore",
    "MemoryContentStore",
    "NotFound",
    "ReadResult",
    "build_store",
]


def build_store(settings: RevstoreSettings) -> ContentStore:
    """Create the content store backend selected by ``settings.backend``."""
    if settings.backend == "memory":
        return MemoryContentStore()

    if settings.backend == "local":
        prefix_info = f", prefix={settings.data_prefix}" if settings.data_prefix else ""
        logger.info("Data root: {} (backend=local{})", settings.data_root, prefix_info)
        return LocalContentStore(settings.data_root, prefix=settings.data_prefix)

    if settings.backend == "s3":
        if not settings.s3_bucket:
            msg = "REVSTORE_S3_BUCKET is required for the s3 backend"
            raise ConfigurationError(msg)
        from revstore.store.s3 import S3ContentStore

        return S3ContentStore(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key.get_secret_value() if settings.s3_secret_key else None,
            prefix=settings.data_prefix,
            region=settings.s3_region,
            path_style=settings.s3_path_style,
        )

    if settings.backend == "github":
        if not settings.github_token:
            msg = "GitHub token is required (REVSTORE_GITHUB_TOKEN)"
            raise ConfigurationError(msg)
        if not settings.github_repo:
            msg = "Repository name is required (REVSTORE_GITHUB_REPO)"
            raise ConfigurationError(msg)
        from revstore.store.github import GitHubContentStore

        return GitHubContentStore(
            token=settings.github_token.get_secret_value(),
            repo=settings.github_repo,
            branch=settings.github_branch,
            api_url=settings.github_api_url,
            timeout=settings.github_timeout,
        )

    msg = f"Unknown backend: {settings.backend}"
    raise ConfigurationError(msg)
