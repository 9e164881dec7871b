"""Process-local FIFO that serializes writes against a content store.

All writes submitted to one ``WriteQueue`` execute one at a time in strict
submission order, regardless of target path.  Writes to unrelated paths are
not reordered or run in parallel; the queue order *is* the global write
order of the owning instance.

A single drain task consumes the queue.  Producers start it with a
check-and-set that contains no ``await``, so on one event loop there is
never more than one drain loop.  The queue is per instance: two queues (or
two processes) writing the same paths are not coordinated with each other.

Failures are delivered to the caller that submitted the write; the drain
loop moves on to the next write.  Nothing is retried.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any, TypeVar

from loguru import logger

from revstore.store.base import NOT_FOUND

if TYPE_CHECKING:
    from revstore.store.base import ContentStore

T = TypeVar("T")


@dataclass
class _QueuedWrite:
    """A deferred write.  Lives in the queue until executed, then discarded."""

    path: str
    operation: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]


class WriteQueue:
    """Serialized write queue bound to one content store."""

    def __init__(self, store: ContentStore) -> None:
        self._store = store
        self._pending: deque[_QueuedWrite] = deque()
        self._drain_task: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()  # Starts idle (nothing queued).

    # -- Producers -------------------------------------------------------------

    async def enqueue(self, path: str, content: str, message: str, is_append: bool = False) -> None:
        """Queue a read-then-write of ``path`` and wait until it has executed.

        When executed, the current state of ``path`` is read and then:

        - ``is_append`` and the path exists: existing content + ``content`` is
          written with the revision just read
        - the path exists: ``content`` replaces it, with the revision just read
        - otherwise the path is created

        The read and the write are two remote calls.  A conflicting external
        write landing between them makes the update fail with
        ``RevisionConflictError``, which is raised here unchanged.
        """
        await self.submit(partial(self._read_then_write, path, content, message, is_append), path=path)

    async def submit(self, operation: Callable[[], Awaitable[T]], *, path: str = "") -> T:
        """Queue an arbitrary write operation and return its result.

        ``operation`` is a zero-argument callable producing an awaitable; it is
        not invoked until every previously submitted write has finished.
        """
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._pending.append(_QueuedWrite(path=path, operation=operation, future=future))
        self._idle.clear()
        self._ensure_draining()
        return await future

    # -- Draining --------------------------------------------------------------

    def _ensure_draining(self) -> None:
        # No await between the check and the assignment: at most one drain loop.
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._pending:
                await self._execute(self._pending.popleft())
        finally:
            # Only reached with writes left if the drain task was cancelled.
            while self._pending:
                self._pending.popleft().future.cancel()
            self._idle.set()

    async def _execute(self, item: _QueuedWrite) -> None:
        try:
            result = await item.operation()
        except asyncio.CancelledError:
            item.future.cancel()
            raise
        except Exception as e:
            logger.error("Write to {} failed: {!r}", item.path or "<operation>", e)
            if not item.future.done():
                item.future.set_exception(e)
        else:
            if not item.future.done():
                item.future.set_result(result)

    async def flush(self) -> None:
        """Wait until every queued write has executed.

        Returns immediately when the queue is empty.  Failures of individual
        writes are delivered to their submitters, not raised here.
        """
        if self._pending:
            self._ensure_draining()
        await self._idle.wait()

    @property
    def pending(self) -> int:
        """Number of writes queued but not yet started."""
        return len(self._pending)

    @property
    def is_draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    # -- Write step ------------------------------------------------------------

    async def _read_then_write(self, path: str, content: str, message: str, is_append: bool) -> None:
        existing = await self._store.read(path)
        if existing is NOT_FOUND:
            await self._store.create(path, content, message)
        elif is_append:
            await self._store.update(path, existing.content + content, message, existing.revision)
        else:
            await self._store.update(path, content, message, existing.revision)
