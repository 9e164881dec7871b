"""In-process content store.

Keeps every path in a dict.  Useful for tests and for running the library
without any backend; contents vanish with the process.

Each successful write bumps a global generation counter that is folded into
the revision, so rewriting identical content still produces a new token.
"""

from __future__ import annotations

import hashlib
import itertools

from revstore.errors import PathExistsError, PathNotFoundError, RevisionConflictError
from revstore.models import ChildEntry, EntryType, StoredFile
from revstore.store.base import NOT_FOUND, ReadResult


class MemoryContentStore:
    """Dict-backed implementation of the ContentStore protocol."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._files: dict[str, StoredFile] = {}
        self._generation = itertools.count(1)
        self.history: list[tuple[str, str, str]] = []
        """(operation, path, message) for every successful write, in order."""

        for path, content in (initial or {}).items():
            self._put(path, content)

    def _put(self, path: str, content: str) -> str:
        path = path.strip("/")
        digest = hashlib.sha1(content.encode("utf-8"), usedforsecurity=False).hexdigest()
        revision = f"{next(self._generation)}-{digest[:12]}"
        self._files[path] = StoredFile(path=path, content=content, revision=revision)
        return revision

    def _check(self, path: str, revision: str) -> None:
        current = self._files.get(path)
        if current is None:
            raise PathNotFoundError(path)
        if current.revision != revision:
            raise RevisionConflictError(path, revision)

    # -- Read ------------------------------------------------------------------

    async def read(self, path: str) -> ReadResult:
        stored = self._files.get(path.strip("/"))
        if stored is None:
            return NOT_FOUND
        return stored.model_copy()

    async def list_children(self, path: str = "") -> list[ChildEntry]:
        prefix = path.strip("/")
        prefix = f"{prefix}/" if prefix else ""
        entries: dict[str, ChildEntry] = {}
        for key in sorted(self._files):
            if not key.startswith(prefix):
                continue
            name, _, rest = key[len(prefix) :].partition("/")
            entry_type = EntryType.DIR if rest else EntryType.FILE
            entries.setdefault(name, ChildEntry(name=name, path=f"{prefix}{name}", type=entry_type))
        return list(entries.values())

    # -- Write -----------------------------------------------------------------

    async def create(self, path: str, content: str, message: str) -> str:
        path = path.strip("/")
        if path in self._files:
            raise PathExistsError(path)
        revision = self._put(path, content)
        self.history.append(("create", path, message))
        return revision

    async def update(self, path: str, content: str, message: str, revision: str) -> str:
        path = path.strip("/")
        self._check(path, revision)
        new_revision = self._put(path, content)
        self.history.append(("update", path, message))
        return new_revision

    async def delete(self, path: str, message: str, revision: str) -> None:
        path = path.strip("/")
        self._check(path, revision)
        del self._files[path]
        self.history.append(("delete", path, message))
