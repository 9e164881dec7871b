"""Error taxonomy shared by every revstore layer.

Errors are never retried inside the library.  Store and codec failures
propagate to the immediate caller with the original cause chained; callers
own any retry or backoff policy.

"Not found" at the read layer is not an error -- ``ContentStore.read``
returns the ``NOT_FOUND`` sentinel instead (see ``revstore.store.base``).
"""

from __future__ import annotations


class RevstoreError(Exception):
    """Base class for all revstore errors."""


class ConfigurationError(RevstoreError, ValueError):
    """Invalid configuration or arguments.  Fatal, never retried."""


class FormatError(RevstoreError, ValueError):
    """Content is malformed for its declared encoding.

    ``index`` is the 1-based line (line-oriented encodings) or document
    (multi-document encodings) where parsing failed, when it is known.
    """

    def __init__(self, message: str, *, format_name: str | None = None, index: int | None = None) -> None:
        super().__init__(message)
        self.format_name = format_name
        self.index = index


class CipherError(RevstoreError, ValueError):
    """A field token could not be decrypted."""


# -- Store ---------------------------------------------------------------------


class StoreError(RevstoreError, RuntimeError):
    """Transport or backend failure talking to the content store."""


class PathNotFoundError(RevstoreError, LookupError):
    """An update or delete targeted a path that does not exist."""


class PathExistsError(StoreError):
    """A create targeted a path that already exists."""


class RevisionConflictError(StoreError):
    """The revision token held by the caller is no longer current.

    The remote content is left untouched.
    """

    def __init__(self, path: str, revision: str | None = None) -> None:
        super().__init__(f"Revision conflict on {path} (held revision {revision!r} is stale)")
        self.path = path
        self.revision = revision


class RateLimitError(StoreError):
    """The remote API quota is exhausted."""


# -- Transfer ------------------------------------------------------------------


class TransferInProgressError(RevstoreError, RuntimeError):
    """A transfer for the same (source, destination) pair is already running."""

    def __init__(self, source_path: str, dest_path: str) -> None:
        super().__init__(f"Transfer already in progress for {source_path} -> {dest_path}")
        self.source_path = source_path
        self.dest_path = dest_path


class SourceNotFoundError(RevstoreError, LookupError):
    """The transfer or conversion source does not exist."""


class PartialCommitInconsistencyError(RevstoreError, RuntimeError):
    """The second write of a two-write commit failed after the first landed.

    No compensating rollback is attempted.  ``committed_path`` already holds
    its new content; ``failed_path`` still holds the old one, so the moved
    documents may appear in both containers (or neither) until a later
    successful transfer reconciles them.
    """

    def __init__(self, committed_path: str, failed_path: str) -> None:
        super().__init__(
            f"Partial commit: {committed_path} was written but {failed_path} was not; "
            "containers may be inconsistent until the next successful transfer"
        )
        self.committed_path = committed_path
        self.failed_path = failed_path
