"""Content store interface.

A content store is a path-addressed blob store that returns an opaque
revision token on every read and requires that token for updates and
deletes (ETag / compare-and-swap semantics).  A write holding a stale token
must fail with ``RevisionConflictError`` rather than overwrite.

``read`` distinguishes the two ways a read can come back empty-handed:

- the path does not exist -> the ``NOT_FOUND`` sentinel is *returned*
- the backend could not answer -> ``StoreError`` is *raised*

so callers switch on a closed set of outcomes instead of inspecting
error payloads.

Instances are safe to share between tasks of one event loop.  Nothing here
provides cross-process mutual exclusion; two processes writing the same
paths must coordinate themselves.
"""

from __future__ import annotations

from enum import Enum
from typing import Final, Literal, Protocol, TypeAlias, runtime_checkable

from revstore.models import ChildEntry, StoredFile


class NotFound(Enum):
    """Typed "path does not exist" outcome of ``ContentStore.read``."""

    NOT_FOUND = "not_found"

    def __bool__(self) -> bool:
        return False


NOT_FOUND: Final = NotFound.NOT_FOUND

ReadResult: TypeAlias = StoredFile | Literal[NotFound.NOT_FOUND]


@runtime_checkable
class ContentStore(Protocol):
    """Async protocol for revision-checked path storage."""

    async def read(self, path: str) -> ReadResult:
        """Return the content and current revision, or ``NOT_FOUND``."""
        ...

    async def create(self, path: str, content: str, message: str) -> str:
        """Create a new path and return its revision.

        Raises ``PathExistsError`` if the path already exists.
        """
        ...

    async def update(self, path: str, content: str, message: str, revision: str) -> str:
        """Replace the content of an existing path and return the new revision.

        Raises ``RevisionConflictError`` if ``revision`` is stale and
        ``PathNotFoundError`` if the path is missing.
        """
        ...

    async def delete(self, path: str, message: str, revision: str) -> None:
        """Delete a path.  Same failure modes as ``update``."""
        ...

    async def list_children(self, path: str = "") -> list[ChildEntry]:
        """List the immediate children of a directory.  Missing -> ``[]``."""
        ...
