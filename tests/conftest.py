"""Shared test fixtures.

Everything runs against in-process stores; no network or Docker required.
``ScriptedStore`` wraps ``MemoryContentStore`` so tests can record the
order of remote calls, hold a call until an event is set, or make a single
call fail.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Iterator

import pytest

from revstore.settings import get_settings
from revstore.store.base import ReadResult
from revstore.store.memory import MemoryContentStore


class ScriptedStore(MemoryContentStore):
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__(initial)
        self.events: list[tuple[str, str, str]] = []
        """(phase, operation, path) with phase ``start`` or ``end``."""

        self.failures: dict[tuple[str, str], Exception] = {}
        self.gates: dict[tuple[str, str], asyncio.Event] = {}

    def calls(self, operation: str | None = None) -> list[tuple[str, str]]:
        return [(op, path) for phase, op, path in self.events if phase == "start" and operation in (None, op)]

    async def _before(self, operation: str, path: str) -> None:
        self.events.append(("start", operation, path))
        gate = self.gates.get((operation, path))
        if gate is not None:
            await gate.wait()
        error = self.failures.pop((operation, path), None)
        if error is not None:
            self.events.append(("end", operation, path))
            raise error

    async def read(self, path: str) -> ReadResult:
        await self._before("read", path)
        result = await super().read(path)
        self.events.append(("end", "read", path))
        return result

    async def create(self, path: str, content: str, message: str) -> str:
        await self._before("create", path)
        try:
            return await super().create(path, content, message)
        finally:
            self.events.append(("end", "create", path))

    async def update(self, path: str, content: str, message: str, revision: str) -> str:
        await self._before("update", path)
        try:
            return await super().update(path, content, message, revision)
        finally:
            self.events.append(("end", "update", path))

    async def delete(self, path: str, message: str, revision: str) -> None:
        await self._before("delete", path)
        try:
            await super().delete(path, message, revision)
        finally:
            self.events.append(("end", "delete", path))

    def content(self, path: str) -> str | None:
        stored = self._files.get(path)
        return stored.content if stored else None

    def revision(self, path: str) -> str | None:
        stored = self._files.get(path)
        return stored.revision if stored else None


@pytest.fixture
def make_store() -> Callable[..., ScriptedStore]:
    return ScriptedStore


@pytest.fixture
def store() -> ScriptedStore:
    return ScriptedStore()


@pytest.fixture
def clean_env() -> Iterator[None]:
    """Drop REVSTORE_* variables for the duration of a test."""
    saved = {k: v for k, v in os.environ.items() if k.startswith("REVSTORE_")}
    for key in saved:
        del os.environ[key]
    get_settings.cache_clear()
    yield
    os.environ.update(saved)
    get_settings.cache_clear()
