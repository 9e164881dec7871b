"""Unit tests for WriteQueue."""

from __future__ import annotations

import asyncio

import pytest

from revstore.errors import PathExistsError, RevisionConflictError
from revstore.store.memory import MemoryContentStore
from revstore.write_queue import WriteQueue


async def _until(condition, attempts: int = 100) -> None:
    """Yield to the loop until ``condition()`` holds."""
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


# ---------------------------------------------------------------------------
# Write step
# ---------------------------------------------------------------------------


async def test_enqueue_creates_missing_path(store) -> None:
    queue = WriteQueue(store)
    await queue.enqueue("users/a.json", '{"id": 1}', "create a")

    assert store.content("users/a.json") == '{"id": 1}'
    assert store.calls() == [("read", "users/a.json"), ("create", "users/a.json")]


async def test_enqueue_updates_existing_path(make_store) -> None:
    store = make_store({"a.json": "old"})
    queue = WriteQueue(store)
    await queue.enqueue("a.json", "new", "replace")

    assert store.content("a.json") == "new"
    assert store.calls("update") == [("update", "a.json")]


async def test_enqueue_append_concatenates(make_store) -> None:
    store = make_store({"log.jsonl": '{"n":1}\n'})
    queue = WriteQueue(store)
    await queue.enqueue("log.jsonl", '{"n":2}\n', "append", is_append=True)

    assert store.content("log.jsonl") == '{"n":1}\n{"n":2}\n'


async def test_enqueue_append_to_missing_path_creates(store) -> None:
    queue = WriteQueue(store)
    await queue.enqueue("log.jsonl", '{"n":1}\n', "append", is_append=True)

    assert store.content("log.jsonl") == '{"n":1}\n'
    assert store.calls("create") == [("create", "log.jsonl")]


async def test_revision_conflict_between_read_and_write(make_store) -> None:
    """An external write landing in the read-then-write gap is surfaced, not retried."""
    store = make_store({"a.json": "v1"})
    gate = asyncio.Event()
    store.gates[("update", "a.json")] = gate
    queue = WriteQueue(store)

    task = asyncio.create_task(queue.enqueue("a.json", "mine", "update"))
    await _until(lambda: ("update", "a.json") in store.calls())

    # Someone else writes while our update is in flight with the old revision.
    await MemoryContentStore.update(store, "a.json", "theirs", "external", store.revision("a.json"))
    before = (store.content("a.json"), store.revision("a.json"))
    gate.set()

    with pytest.raises(RevisionConflictError):
        await task
    assert (store.content("a.json"), store.revision("a.json")) == before
    assert len(store.calls("update")) == 1


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


async def test_fifo_order_across_paths_while_a_write_is_in_flight(store) -> None:
    gate = asyncio.Event()
    store.gates[("read", "one.json")] = gate
    queue = WriteQueue(store)

    first = asyncio.create_task(queue.enqueue("one.json", "1", "m"))
    await _until(lambda: store.events)

    rest = [asyncio.create_task(queue.enqueue(f"{name}.json", name, "m")) for name in ("two", "three", "four")]
    await _until(lambda: queue.pending == 3)
    assert store.calls() == [("read", "one.json")]

    gate.set()
    await asyncio.gather(first, *rest)

    # Every write runs start-to-finish before the next one begins.
    paths = [path for _, _, path in store.events]
    assert paths == ["one.json"] * 4 + ["two.json"] * 4 + ["three.json"] * 4 + ["four.json"] * 4
    assert [op for _, op, _ in store.events if op == "create"] == ["create"] * 8


async def test_single_drain_loop(store) -> None:
    gate = asyncio.Event()
    store.gates[("read", "a.json")] = gate
    queue = WriteQueue(store)

    tasks = [asyncio.create_task(queue.enqueue("a.json", "1", "m"))]
    await _until(lambda: queue.is_draining)
    drain_task = queue._drain_task

    tasks += [asyncio.create_task(queue.enqueue(f"{i}.json", "x", "m")) for i in range(3)]
    await _until(lambda: queue.pending == 3)
    assert queue._drain_task is drain_task

    gate.set()
    await asyncio.gather(*tasks)
    assert not queue.is_draining
    assert queue.pending == 0


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


async def test_failure_reaches_only_its_caller(make_store) -> None:
    store = make_store({"a.json": "x"})
    store.failures[("update", "a.json")] = RevisionConflictError("a.json", "stale")
    queue = WriteQueue(store)

    failing = asyncio.create_task(queue.enqueue("a.json", "y", "m"))
    following = asyncio.create_task(queue.enqueue("b.json", "z", "m"))

    with pytest.raises(RevisionConflictError):
        await failing
    await following

    assert store.content("a.json") == "x"
    assert store.content("b.json") == "z"


async def test_submit_returns_operation_result(store) -> None:
    queue = WriteQueue(store)
    revision = await queue.submit(lambda: store.create("a.json", "1", "m"), path="a.json")
    assert revision == store.revision("a.json")

    with pytest.raises(PathExistsError):
        await queue.submit(lambda: store.create("a.json", "2", "m"), path="a.json")


# ---------------------------------------------------------------------------
# Flush
# ---------------------------------------------------------------------------


async def test_flush_empty_queue_is_idempotent(store) -> None:
    queue = WriteQueue(store)
    await queue.flush()
    await queue.flush()
    assert queue.pending == 0
    assert not queue.is_draining
    assert store.events == []


async def test_flush_waits_for_pending_writes(store) -> None:
    gate = asyncio.Event()
    store.gates[("read", "a.json")] = gate
    queue = WriteQueue(store)

    tasks = [asyncio.create_task(queue.enqueue(p, "x", "m")) for p in ("a.json", "b.json")]
    await _until(lambda: queue.is_draining)

    flushing = asyncio.create_task(queue.flush())
    await asyncio.sleep(0)
    assert not flushing.done()

    gate.set()
    await flushing
    assert store.content("a.json") == "x"
    assert store.content("b.json") == "x"
    await asyncio.gather(*tasks)


async def test_queue_restarts_after_draining(store) -> None:
    queue = WriteQueue(store)
    await queue.enqueue("a.json", "1", "m")
    assert not queue.is_draining

    await queue.enqueue("b.json", "2", "m")
    assert store.content("b.json") == "2"
