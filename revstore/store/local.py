"""Local filesystem content store.

Stores each path as a file under a data root with optional namespace
prefix::

    {data_root}/{prefix}/{path}

When prefix is None, the path collapses to::

    {data_root}/{path}

The revision token of a file is the sha256 of its bytes, so any change made
behind the store's back (another process, an editor) is detected as a
conflict on the next revision-checked write.

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.  The revision
check and the write run together in one worker-thread call while holding a
per-instance lock, so they are atomic with respect to other tasks using the
same store instance.  They are *not* atomic across processes.

Writes are atomic: data is written to a temporary file in the same
directory, then renamed to the target path.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import os
import tempfile
from functools import partial
from pathlib import Path, PurePosixPath

from anyio import to_thread

from revstore.errors import ConfigurationError, PathExistsError, PathNotFoundError, RevisionConflictError
from revstore.models import ChildEntry, EntryType, StoredFile
from revstore.store.base import NOT_FOUND, ReadResult


class LocalContentStore:
    """Local filesystem implementation of the ContentStore protocol."""

    def __init__(self, data_root: str | Path, prefix: str | None = None) -> None:
        base = Path(data_root)
        if prefix:
            base = base / prefix
        self._base = base
        self._lock = asyncio.Lock()

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path.strip("/"))
        if ".." in relative.parts:
            msg = f"Path escapes the data root: {path}"
            raise ConfigurationError(msg)
        return self._base.joinpath(*relative.parts)

    # -- Read ------------------------------------------------------------------

    async def read(self, path: str) -> ReadResult:
        target = self._resolve(path)
        data = await to_thread.run_sync(partial(_read_bytes, target))
        if data is None:
            return NOT_FOUND
        return StoredFile(path=path.strip("/"), content=data.decode("utf-8"), revision=_revision(data))

    async def list_children(self, path: str = "") -> list[ChildEntry]:
        target = self._resolve(path)
        return await to_thread.run_sync(partial(_list_dir, target, path.strip("/")))

    # -- Write -----------------------------------------------------------------

    async def create(self, path: str, content: str, message: str) -> str:
        target = self._resolve(path)
        async with self._lock:
            return await to_thread.run_sync(partial(_checked_write, target, content, None, path))

    async def update(self, path: str, content: str, message: str, revision: str) -> str:
        target = self._resolve(path)
        async with self._lock:
            return await to_thread.run_sync(partial(_checked_write, target, content, revision, path))

    async def delete(self, path: str, message: str, revision: str) -> None:
        target = self._resolve(path)
        async with self._lock:
            await to_thread.run_sync(partial(_checked_unlink, target, revision, path))


# -- Sync helpers (run in thread pool) -----------------------------------------


def _revision(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _read_bytes(path: Path) -> bytes | None:
    """Read file bytes, or None if the file does not exist."""
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def _verify(path: Path, revision: str, display: str) -> None:
    current = _read_bytes(path)
    if current is None:
        raise PathNotFoundError(display)
    if _revision(current) != revision:
        raise RevisionConflictError(display, revision)


def _checked_write(path: Path, content: str, revision: str | None, display: str) -> str:
    """Write ``content`` if the current file matches the expectation.

    ``revision=None`` means the file must not exist yet.
    """
    if revision is None:
        if path.exists():
            raise PathExistsError(display)
    else:
        _verify(path, revision, display)
    data = content.encode("utf-8")
    _atomic_write(path, data)
    return _revision(data)


def _checked_unlink(path: Path, revision: str, display: str) -> None:
    _verify(path, revision, display)
    path.unlink()


def _atomic_write(path: Path, data: bytes) -> None:
    """Write data atomically: temp file + rename.

    Ensures readers never see a partially-written file.  The temp file is
    created in the same directory so ``os.replace`` is atomic on POSIX.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up temp file on any failure.
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _list_dir(path: Path, display: str) -> list[ChildEntry]:
    if not path.is_dir():
        return []
    prefix = f"{display}/" if display else ""
    entries = []
    for child in sorted(path.iterdir()):
        if child.suffix == ".tmp":
            continue
        entry_type = EntryType.DIR if child.is_dir() else EntryType.FILE
        entries.append(ChildEntry(name=child.name, path=f"{prefix}{child.name}", type=entry_type))
    return entries
