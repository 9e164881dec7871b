"""Transfer coordinator -- filtered moves of documents between containers.

A transfer moves the documents of a source container that match a predicate
into a destination container, optionally transforming and re-encoding them:

1. **Lock**: test-and-set the ``(source, dest)`` pair in the lock table;
   fail immediately with ``TransferInProgressError`` if it is held
2. **Fetch**: read both paths concurrently; either may be absent
3. **Compute**: parse both sides, partition the source into moved and
   remaining documents; stop without side effects if nothing matches
4. **Transform / convert**: run the transform, then the conversion
   pipeline, and append the moved documents after the destination's
5. **Commit**: two remote writes, shape chosen by which sides existed
6. **Release** the lock, whatever happened

The commit is two sequential revision-checked writes, not one atomic remote
operation.  If the second write fails after the first landed,
``PartialCommitInconsistencyError`` is raised and nothing is rolled back.

The lock table only excludes identical pairs within one coordinator.  Two
transfers over different pairs that share a path may interleave, and
nothing here protects against other processes.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING

from loguru import logger

from revstore.errors import (
    ConfigurationError,
    PartialCommitInconsistencyError,
    SourceNotFoundError,
    TransferInProgressError,
)
from revstore.formats.converter import FormatConverter
from revstore.models import CommitShape, Document, StoredFile, TransferResult
from revstore.store.base import NOT_FOUND
from revstore.write_queue import WriteQueue

if TYPE_CHECKING:
    from revstore.formats.base import ConversionOptions
    from revstore.store.base import ContentStore, ReadResult

Predicate = Callable[[Document], bool]
Transform = Callable[[Document], Document]


# ---------------------------------------------------------------------------
# Lock table
# ---------------------------------------------------------------------------


class TransferLockTable:
    """Held ``(source, dest)`` pairs.  Absence means free.

    Not reentrant.  Only meaningful on one event loop: ``try_acquire`` has no
    suspension point, so test-and-set is atomic between tasks.
    """

    def __init__(self) -> None:
        self._held: set[tuple[str, str]] = set()

    def try_acquire(self, source_path: str, dest_path: str) -> bool:
        pair = (source_path, dest_path)
        if pair in self._held:
            return False
        self._held.add(pair)
        return True

    def release(self, source_path: str, dest_path: str) -> None:
        self._held.discard((source_path, dest_path))

    def is_locked(self, source_path: str, dest_path: str) -> bool:
        return (source_path, dest_path) in self._held

    @contextmanager
    def hold(self, source_path: str, dest_path: str) -> Iterator[None]:
        if not self.try_acquire(source_path, dest_path):
            raise TransferInProgressError(source_path, dest_path)
        logger.debug("Transfer lock acquired: {} -> {}", source_path, dest_path)
        try:
            yield
        finally:
            self.release(source_path, dest_path)
            logger.debug("Transfer lock released: {} -> {}", source_path, dest_path)

    def __len__(self) -> int:
        return len(self._held)


# ---------------------------------------------------------------------------
# Commit plan
# ---------------------------------------------------------------------------


@dataclass
class CommitPlan:
    """New contents of both sides plus the revisions captured when fetching.

    A ``None`` revision means the side did not exist (or could not be read).
    """

    source_path: str
    dest_path: str
    source_content: str
    dest_content: str
    source_revision: str | None
    dest_revision: str | None
    moved: int

    @property
    def shape(self) -> CommitShape:
        if self.source_revision and self.dest_revision:
            return CommitShape.UPDATE_BOTH
        if self.source_revision:
            return CommitShape.CREATE_DEST
        if self.dest_revision:
            return CommitShape.RECREATE_SOURCE
        return CommitShape.NONE


def partition(documents: list[Document], predicate: Predicate) -> tuple[list[int], list[int]]:
    """Split document indexes into (matching, remaining), preserving order."""
    matching: list[int] = []
    remaining: list[int] = []
    for index, document in enumerate(documents):
        (matching if predicate(document) else remaining).append(index)
    return matching, remaining


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class TransferCoordinator:
    """Runs transfers, conversions and consistency checks against one store.

    Owns the lock table.  Writes go through ``queue`` so that they share the
    global FIFO order with every other write of the owning instance; pass the
    storage manager's queue to get that guarantee.
    """

    def __init__(
        self,
        store: ContentStore,
        queue: WriteQueue | None = None,
        converter: FormatConverter | None = None,
        locks: TransferLockTable | None = None,
    ) -> None:
        self._store = store
        self._queue = queue or WriteQueue(store)
        self.converter = converter or FormatConverter()
        self.locks = locks or TransferLockTable()

    # -- Transfer --------------------------------------------------------------

    async def transfer(
        self,
        source_path: str,
        dest_path: str,
        predicate: Predicate,
        *,
        transform: Transform | None = None,
        conversion: ConversionOptions | None = None,
    ) -> TransferResult:
        """Move the source documents matching ``predicate`` to the destination.

        ``predicate`` must be pure.  ``transform`` runs on each moved document,
        in order, before any conversion.  With ``conversion`` the moved
        documents also go through its pipeline, and its formats override the
        ones detected from the paths.  A document rejected by the conversion
        filter stays in the source.

        An unreadable destination is treated as empty, so the commit creates
        it (and fails with ``PathExistsError`` if it does exist).  An
        unreadable source is not: its error propagates and nothing is written.

        Raises ``ConfigurationError`` if both paths are the same and
        ``TransferInProgressError`` if the same pair is already being
        transferred.
        """
        if source_path == dest_path:
            msg = f"Cannot transfer {source_path} onto itself"
            raise ConfigurationError(msg)

        with self.locks.hold(source_path, dest_path):
            return await self._execute_transfer(source_path, dest_path, predicate, transform, conversion)

    async def _execute_transfer(
        self,
        source_path: str,
        dest_path: str,
        predicate: Predicate,
        transform: Transform | None,
        conversion: ConversionOptions | None,
    ) -> TransferResult:
        registry = self.converter.registry
        source_format = (conversion and conversion.source_format) or registry.detect(source_path)
        dest_format = (conversion and conversion.target_format) or registry.detect(dest_path)
        source_codec = registry.get(source_format)
        dest_codec = registry.get(dest_format)

        # -- Fetch -------------------------------------------------------------
        source_read, dest_read = await asyncio.gather(
            self._store.read(source_path),
            self._store.read(dest_path),
            return_exceptions=True,
        )
        source_file = _settle(source_read, source_path, fatal=True)
        dest_file = _settle(dest_read, dest_path, fatal=False)

        # -- Compute -----------------------------------------------------------
        source_docs = source_codec.parse(source_file.content) if source_file else []
        dest_docs = dest_codec.parse(dest_file.content) if dest_file else []

        matching, _ = partition(source_docs, predicate)
        transformed = {i: transform(source_docs[i]) if transform else source_docs[i] for i in matching}

        pipeline = conversion
        if conversion is not None and conversion.filter is not None:
            keep = conversion.filter
            matching = [i for i in matching if keep(transformed[i])]
            pipeline = dataclasses.replace(conversion, filter=None)

        moved_set = set(matching)
        remaining = [doc for i, doc in enumerate(source_docs) if i not in moved_set]

        result = TransferResult(source_path=source_path, dest_path=dest_path, remaining=len(remaining))
        if not matching:
            logger.debug("Transfer {} -> {}: no matching documents", source_path, dest_path)
            return result

        moved = [transformed[i] for i in matching]
        if pipeline is not None:
            moved = self.converter.apply_pipeline(moved, pipeline)

        plan = CommitPlan(
            source_path=source_path,
            dest_path=dest_path,
            source_content=source_codec.serialize(remaining),
            dest_content=dest_codec.serialize([*dest_docs, *moved]),
            source_revision=source_file.revision if source_file else None,
            dest_revision=dest_file.revision if dest_file else None,
            moved=len(moved),
        )

        # -- Commit ------------------------------------------------------------
        shape = await self._queue.submit(partial(commit_plan, self._store, plan), path=dest_path)

        logger.info(
            "Transfer {} -> {}: moved {} documents ({} remaining, shape={})",
            source_path,
            dest_path,
            plan.moved,
            len(remaining),
            shape,
        )
        result.moved = plan.moved
        result.shape = shape
        return result

    # -- Conversion ------------------------------------------------------------

    async def convert_format(self, source_path: str, dest_path: str, options: ConversionOptions) -> None:
        """Convert the source container into a new destination container.

        Not locked and not predicated.  Raises ``SourceNotFoundError`` if the
        source is missing and ``PathExistsError`` if the destination exists.
        """
        source = await self._store.read(source_path)
        if source is NOT_FOUND:
            msg = f"Source file {source_path} not found"
            raise SourceNotFoundError(msg)

        registry = self.converter.registry
        options = dataclasses.replace(
            options,
            source_format=options.source_format or registry.detect(source_path),
            target_format=options.target_format or registry.detect(dest_path),
        )
        content = self.converter.convert_content(source.content, options)
        message = f"Convert format: {source_path} -> {dest_path}"
        await self._queue.submit(partial(self._store.create, dest_path, content, message), path=dest_path)
        logger.info("Converted {} ({}) -> {} ({})", source_path, options.source_format, dest_path, options.target_format)

    # -- Consistency -----------------------------------------------------------

    async def verify_consistency(self, source_path: str, dest_path: str, predicate: Predicate) -> bool:
        """Return True if no source document still matches ``predicate``.

        Advisory only: nothing is repaired.
        """
        registry = self.converter.registry
        source_read, dest_read = await asyncio.gather(self._store.read(source_path), self._store.read(dest_path))
        source_docs = registry.for_path(source_path).parse(source_read.content) if source_read else []
        dest_docs = registry.for_path(dest_path).parse(dest_read.content) if dest_read else []

        left_behind = sum(1 for doc in source_docs if predicate(doc))
        logger.debug(
            "Consistency {} -> {}: {} matching left in source, {} matching in destination",
            source_path,
            dest_path,
            left_behind,
            sum(1 for doc in dest_docs if predicate(doc)),
        )
        return left_behind == 0

    async def flush_pending_writes(self) -> None:
        await self._queue.flush()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settle(outcome: ReadResult | BaseException, path: str, *, fatal: bool) -> StoredFile | None:
    """Turn a settled read into a file or None.

    ``NOT_FOUND`` is an empty side.  A failed read is re-raised when
    ``fatal``; otherwise it is logged and the side is treated as empty with
    no revision, so the commit will try to *create* it and fail if it exists.
    """
    if isinstance(outcome, BaseException):
        if fatal or not isinstance(outcome, Exception):
            raise outcome
        logger.warning("Could not read {} ({!r}); treating it as empty", path, outcome)
        return None
    if outcome is NOT_FOUND:
        return None
    return outcome


async def commit_plan(store: ContentStore, plan: CommitPlan) -> CommitShape:
    """Write both sides of a transfer according to the plan's shape.

    The first write failing propagates unchanged (nothing was written).  The
    second failing raises ``PartialCommitInconsistencyError``.
    """
    message = f"Transfer: Moved {plan.moved} documents from {plan.source_path} to {plan.dest_path}"
    shape = plan.shape

    if shape is CommitShape.UPDATE_BOTH:
        first_path, first = plan.dest_path, partial(
            store.update, plan.dest_path, plan.dest_content, message, plan.dest_revision
        )
        second_path, second = plan.source_path, partial(
            store.update, plan.source_path, plan.source_content, message, plan.source_revision
        )
    elif shape is CommitShape.CREATE_DEST:
        first_path, first = plan.dest_path, partial(store.create, plan.dest_path, plan.dest_content, message)
        second_path, second = plan.source_path, partial(
            store.update, plan.source_path, plan.source_content, message, plan.source_revision
        )
    elif shape is CommitShape.RECREATE_SOURCE:
        # The source vanished but the destination exists: the source path is
        # recreated with the post-removal content.
        logger.warning("Source {} does not exist; recreating it before updating {}", plan.source_path, plan.dest_path)
        first_path, first = plan.source_path, partial(
            store.create, plan.source_path, plan.source_content, f"Initialize {plan.source_path}"
        )
        second_path, second = plan.dest_path, partial(
            store.update, plan.dest_path, plan.dest_content, message, plan.dest_revision
        )
    else:
        msg = f"Source file {plan.source_path} does not exist"
        raise SourceNotFoundError(msg)

    await first()
    try:
        await second()
    except Exception as e:
        logger.error(
            "Partial commit: {} written but {} failed ({!r}); containers may be inconsistent",
            first_path,
            second_path,
            e,
        )
        raise PartialCommitInconsistencyError(first_path, second_path) from e
    return shape
