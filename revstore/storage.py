"""Document and collection reads/writes on top of a content store.

The StorageManager owns the instance's ``WriteQueue``: every write it issues
(and every transfer commit, when the coordinator is given the same queue)
executes in one global FIFO order.

Named fields can be encrypted before a write (``hash_fields``) and
decrypted after a read (``unhash_fields``) with the configured
``FieldCipher``.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING

from revstore.errors import FormatError, PathNotFoundError
from revstore.formats.converter import DEFAULT_FORMAT, FormatRegistry
from revstore.models import Document, OperationOptions
from revstore.store.base import NOT_FOUND
from revstore.write_queue import WriteQueue

if TYPE_CHECKING:
    from revstore.crypto import FieldCipher
    from revstore.formats.base import Codec
    from revstore.store.base import ContentStore

_NO_OPTIONS = OperationOptions()


class StorageManager:
    """Reads and queued writes of documents and collections."""

    def __init__(
        self,
        store: ContentStore,
        cipher: FieldCipher,
        registry: FormatRegistry | None = None,
        default_format: str = DEFAULT_FORMAT,
    ) -> None:
        self._store = store
        self._cipher = cipher
        self._registry = registry or FormatRegistry()
        self._default_format = default_format
        self.queue = WriteQueue(store)

    def _codec(self, path: str, options: OperationOptions) -> Codec:
        return self._registry.get(options.format or self._registry.detect(path, self._default_format))

    # -- Field cipher ----------------------------------------------------------

    def _encrypt(self, document: Document, fields: list[str]) -> Document:
        processed = dict(document)
        for name in fields:
            if processed.get(name):
                processed[name] = self._cipher.hash(str(processed[name]))
        return processed

    def _decrypt(self, document: Document, fields: list[str]) -> Document:
        if not fields:
            return document
        processed = dict(document)
        for name in fields:
            if processed.get(name):
                processed[name] = self._cipher.unhash(processed[name])
        return processed

    # -- Documents -------------------------------------------------------------

    async def write_document(
        self, path: str, document: Document, options: OperationOptions = _NO_OPTIONS
    ) -> Document | None:
        """Write a single-document container.

        Returns the document as a later read will see it: CSV turns every
        value into a string, for instance.  ``None`` if it encodes to nothing.
        """
        codec = self._codec(path, options)
        content = codec.serialize([self._encrypt(document, options.hash_fields)])
        await self.queue.enqueue(path, content, f"Write document: {path}")
        stored = codec.parse(content)
        return stored[0] if stored else None

    async def read_document(self, path: str, options: OperationOptions = _NO_OPTIONS) -> Document | None:
        """Read a single-document container.  Missing -> ``None``."""
        stored = await self._store.read(path)
        if stored is NOT_FOUND:
            return None
        documents = self._codec(path, options).parse(stored.content)
        if not documents:
            return None
        if len(documents) > 1:
            msg = f"{path} holds {len(documents)} documents; read it as a collection"
            raise FormatError(msg)
        return self._decrypt(documents[0], options.unhash_fields)

    async def delete(self, path: str, message: str | None = None) -> None:
        """Delete a path at its current revision.  Missing -> ``PathNotFoundError``."""
        await self.queue.submit(partial(self._delete, path, message or f"Delete document: {path}"), path=path)

    async def _delete(self, path: str, message: str) -> None:
        stored = await self._store.read(path)
        if stored is NOT_FOUND:
            raise PathNotFoundError(path)
        await self._store.delete(path, message, stored.revision)

    # -- Collections -----------------------------------------------------------

    async def read_collection(self, path: str, options: OperationOptions = _NO_OPTIONS) -> list[Document]:
        """Read every document of a container.  Missing -> ``[]``."""
        stored = await self._store.read(path)
        if stored is NOT_FOUND:
            return []
        documents = self._codec(path, options).parse(stored.content)
        return [self._decrypt(doc, options.unhash_fields) for doc in documents]

    async def write_collection(
        self, path: str, documents: list[Document], options: OperationOptions = _NO_OPTIONS
    ) -> None:
        content = self._codec(path, options).serialize(documents)
        await self.queue.enqueue(path, content, f"Write collection: {path}")

    async def append_to_collection(
        self, path: str, document: Document, options: OperationOptions = _NO_OPTIONS
    ) -> None:
        """Append one document, creating the collection if it does not exist.

        Line-delimited collections append a line.  Other encodings are
        rewritten whole, read and write happening inside one queued write.
        """
        processed = self._encrypt(document, options.hash_fields)
        codec = self._codec(path, options)
        if codec.name == "jsonl":
            await self.queue.enqueue(path, codec.serialize([processed]), f"Append to collection: {path}", is_append=True)
            return
        await self.queue.submit(partial(self._rewrite_append, path, codec, processed), path=path)

    async def _rewrite_append(self, path: str, codec: Codec, document: Document) -> None:
        stored = await self._store.read(path)
        if stored is NOT_FOUND:
            await self._store.create(path, codec.serialize([document]), f"Create collection: {path}")
            return
        documents = codec.parse(stored.content)
        documents.append(document)
        await self._store.update(path, codec.serialize(documents), f"Append to collection: {path}", stored.revision)

    async def flush(self) -> None:
        await self.queue.flush()
