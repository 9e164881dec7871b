"""RevisionDB -- the document/collection facade.

Validates configuration, normalises paths and dispatches to the storage
manager, transfer coordinator and cache.  One ``RevisionDB`` owns exactly
one write queue and one transfer lock table; running two instances (or two
processes) against the same paths is not coordinated and is the caller's
responsibility.

Errors from the layers below are raised unchanged so callers can switch on
the ``revstore.errors`` taxonomy.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel, SecretStr

from revstore.cache import TTLCache
from revstore.crypto import FieldCipher
from revstore.errors import ConfigurationError, PathNotFoundError
from revstore.formats.converter import FormatConverter, FormatRegistry
from revstore.models import Document, EntryType, OperationOptions, StorageMode, TransferResult
from revstore.query import filter_documents
from revstore.storage import StorageManager
from revstore.store.base import NOT_FOUND
from revstore.transfer import Predicate, Transform, TransferCoordinator

if TYPE_CHECKING:
    from revstore.formats.base import ConversionOptions
    from revstore.settings import RevstoreSettings
    from revstore.store.base import ContentStore

_NO_OPTIONS = OperationOptions()


class DBConfig(BaseModel):
    """Facade configuration.  Checked by ``RevisionDB`` at construction."""

    mode: str = StorageMode.DOCUMENT
    format: str = "json"
    cache_enabled: bool = True
    cache_ttl: float = 300.0
    hash_secret: SecretStr = SecretStr("default-secret-key-for-development")

    @classmethod
    def from_settings(cls, settings: RevstoreSettings) -> DBConfig:
        return cls(
            mode=settings.mode,
            format=settings.format,
            cache_enabled=settings.cache_enabled,
            cache_ttl=settings.cache_ttl,
            hash_secret=settings.hash_secret,
        )


class RevisionDB:
    """Document store facade over a revision-checked content store."""

    def __init__(self, store: ContentStore, config: DBConfig | None = None) -> None:
        self.config = config or DBConfig()
        self._registry = FormatRegistry()
        self._validate_config()

        self._store = store
        self.storage = StorageManager(
            store,
            FieldCipher(self.config.hash_secret.get_secret_value()),
            registry=self._registry,
            default_format=self.config.format,
        )
        self.transfers = TransferCoordinator(
            store,
            queue=self.storage.queue,
            converter=FormatConverter(self._registry),
        )
        self.cache = TTLCache(enabled=self.config.cache_enabled, ttl=self.config.cache_ttl)
        self._initialized = False

    @classmethod
    def from_settings(cls, settings: RevstoreSettings) -> RevisionDB:
        from revstore.store import build_store

        return cls(build_store(settings), DBConfig.from_settings(settings))

    def _validate_config(self) -> None:
        if self.config.mode not in set(StorageMode):
            msg = 'Mode must be either "document" or "collection"'
            raise ConfigurationError(msg)
        if self.config.format not in self._registry.supported():
            msg = f"Unsupported format: {self.config.format}"
            raise ConfigurationError(msg)
        if self.config.cache_ttl <= 0:
            msg = "cache_ttl must be positive"
            raise ConfigurationError(msg)

    # -- Lifecycle -------------------------------------------------------------

    async def initialize(self) -> None:
        """Check backend access once.  Called lazily by every operation."""
        if self._initialized:
            return

        validate_token = getattr(self._store, "validate_token", None)
        if validate_token is not None:
            await validate_token()
        repo_exists = getattr(self._store, "repo_exists", None)
        if repo_exists is not None and not await repo_exists():
            msg = "Repository does not exist or you don't have access"
            raise ConfigurationError(msg)

        self._initialized = True
        logger.info("RevisionDB initialised (store={}, mode={})", type(self._store).__name__, self.config.mode)

    async def aclose(self) -> None:
        await self.storage.flush()
        close = getattr(self._store, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> RevisionDB:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @staticmethod
    def _normalize(path: str) -> str:
        return path.lstrip("/")

    # -- Collections -----------------------------------------------------------

    async def create_collection(self, name: str, format: str | None = None) -> str:
        """Create ``{name}/`` with a ``.keep`` marker and an empty sample container."""
        await self.initialize()
        fmt = format or self.config.format
        codec = self._registry.get(fmt)
        name = self._normalize(name).rstrip("/")
        sample = f"{name}/sample.{codec.extension()}"

        await self.storage.queue.enqueue(f"{name}/.keep", "", f"Create directory: {name}")
        await self.storage.queue.enqueue(sample, codec.serialize([]), f"Create collection: {name}")
        return sample

    async def list_collections(self) -> list[str]:
        await self.initialize()
        children = await self._store.list_children("")
        return [c.name for c in children if c.type == EntryType.DIR and not c.name.startswith(".")]

    # -- Documents -------------------------------------------------------------

    async def set(self, path: str, data: Document, options: OperationOptions = _NO_OPTIONS) -> None:
        """Write ``data`` (document mode) or append it (collection mode)."""
        await self.initialize()
        path = self._normalize(path)
        if self.config.mode != StorageMode.DOCUMENT:
            await self.storage.append_to_collection(path, data, options)
            self.cache.delete(path)
            return

        # Cache what the codec gives back, not the caller's dict.
        stored = await self.storage.write_document(path, data, options)
        if stored is not None and not options.hash_fields and options.format is None:
            self.cache.set(path, stored)
        else:
            self.cache.delete(path)

    async def get(self, path: str, options: OperationOptions = _NO_OPTIONS) -> Document | None:
        await self.initialize()
        path = self._normalize(path)
        cacheable = not options.unhash_fields and options.format is None

        if cacheable:
            cached = self.cache.get(path)
            if cached is not None:
                return dict(cached)

        document = await self.storage.read_document(path, options)
        if document is not None and cacheable:
            self.cache.set(path, dict(document))
        return document

    async def delete(self, path: str) -> None:
        await self.initialize()
        path = self._normalize(path)
        await self.storage.delete(path)
        self.cache.delete(path)

    async def append(self, path: str, data: Document, options: OperationOptions = _NO_OPTIONS) -> None:
        await self.initialize()
        path = self._normalize(path)
        await self.storage.append_to_collection(path, data, options)
        self.cache.delete(path)

    async def get_collection(self, path: str, options: OperationOptions = _NO_OPTIONS) -> list[Document]:
        await self.initialize()
        return await self.storage.read_collection(self._normalize(path), options)

    async def query(self, path: str, predicate: Predicate) -> list[Document]:
        return filter_documents(await self.get_collection(path), predicate)

    async def remove(self, path: str, predicate: Predicate) -> int:
        """Remove the documents matching ``predicate``; return how many went."""
        await self.initialize()
        path = self._normalize(path)
        removed = await self.storage.queue.submit(partial(self._remove, path, predicate), path=path)
        self.cache.delete(path)
        return removed

    async def _remove(self, path: str, predicate: Predicate) -> int:
        stored = await self._store.read(path)
        if stored is NOT_FOUND:
            raise PathNotFoundError(path)
        codec = self._registry.for_path(path, self.config.format)
        documents = codec.parse(stored.content)
        kept = [doc for doc in documents if not predicate(doc)]
        if len(kept) == len(documents):
            return 0
        message = f"Remove documents matching predicate from {path}"
        await self._store.update(path, codec.serialize(kept), message, stored.revision)
        return len(documents) - len(kept)

    # -- Transfers -------------------------------------------------------------

    async def transfer(
        self,
        source_path: str,
        dest_path: str,
        predicate: Predicate,
        *,
        transform: Transform | None = None,
        conversion: ConversionOptions | None = None,
    ) -> TransferResult:
        await self.initialize()
        source_path, dest_path = self._normalize(source_path), self._normalize(dest_path)
        try:
            return await self.transfers.transfer(
                source_path, dest_path, predicate, transform=transform, conversion=conversion
            )
        finally:
            self.cache.delete(source_path)
            self.cache.delete(dest_path)

    async def convert_format(self, source_path: str, dest_path: str, options: ConversionOptions) -> None:
        await self.initialize()
        dest_path = self._normalize(dest_path)
        await self.transfers.convert_format(self._normalize(source_path), dest_path, options)
        self.cache.delete(dest_path)

    async def verify_consistency(self, source_path: str, dest_path: str, predicate: Predicate) -> bool:
        await self.initialize()
        return await self.transfers.verify_consistency(
            self._normalize(source_path), self._normalize(dest_path), predicate
        )

    # -- Maintenance -----------------------------------------------------------

    async def flush_pending_writes(self) -> None:
        await self.storage.flush()

    def rate_limit_status(self) -> dict[str, Any] | None:
        """Remaining API quota for backends that have one, else ``None``."""
        status = getattr(self._store, "rate_limit_status", None)
        return status() if status is not None else None
