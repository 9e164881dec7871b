"""Unit tests for StorageManager."""

from __future__ import annotations

import json

import pytest

from revstore.crypto import FieldCipher
from revstore.errors import FormatError, PathNotFoundError
from revstore.models import OperationOptions
from revstore.storage import StorageManager


@pytest.fixture(scope="module")
def cipher() -> FieldCipher:
    return FieldCipher("test-secret")


@pytest.fixture
def storage(store, cipher) -> StorageManager:
    return StorageManager(store, cipher)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


async def test_write_and_read_document(storage, store) -> None:
    await storage.write_document("users/alice.json", {"name": "Alice", "age": 30})

    assert json.loads(store.content("users/alice.json")) == {"name": "Alice", "age": 30}
    assert store.history == [("create", "users/alice.json", "Write document: users/alice.json")]
    assert await storage.read_document("users/alice.json") == {"name": "Alice", "age": 30}


async def test_write_document_returns_document_as_read_back(storage) -> None:
    assert await storage.write_document("a.json", {"id": 1, "tags": ["x"]}) == {"id": 1, "tags": ["x"]}
    assert await storage.write_document("a.csv", {"id": 1, "note": None}) == {"id": "1", "note": ""}
    assert await storage.read_document("a.csv") == {"id": "1", "note": ""}


async def test_write_document_replaces_existing(storage, store) -> None:
    await storage.write_document("a.json", {"v": 1})
    await storage.write_document("a.json", {"v": 2})
    assert await storage.read_document("a.json") == {"v": 2}
    assert [op for op, _, _ in store.history] == ["create", "update"]


async def test_read_missing_document(storage) -> None:
    assert await storage.read_document("nope.json") is None


async def test_read_document_rejects_collections(make_store, cipher) -> None:
    storage = StorageManager(make_store({"many.json": '[{"id": 1}, {"id": 2}]'}), cipher)
    with pytest.raises(FormatError):
        await storage.read_document("many.json")


async def test_read_empty_container_as_document(make_store, cipher) -> None:
    storage = StorageManager(make_store({"empty.json": "[]"}), cipher)
    assert await storage.read_document("empty.json") is None


async def test_hash_and_unhash_fields(storage, store) -> None:
    await storage.write_document("u.json", {"name": "Alice", "ssn": "123-45-6789"}, OperationOptions(hash_fields=["ssn"]))

    raw = json.loads(store.content("u.json"))
    assert raw["name"] == "Alice"
    assert raw["ssn"] != "123-45-6789"
    assert ":" in raw["ssn"]

    plain = await storage.read_document("u.json", OperationOptions(unhash_fields=["ssn"]))
    assert plain == {"name": "Alice", "ssn": "123-45-6789"}
    assert await storage.read_document("u.json") == raw


async def test_hash_skips_empty_and_missing_fields(storage, store) -> None:
    await storage.write_document("u.json", {"ssn": ""}, OperationOptions(hash_fields=["ssn", "pin"]))
    assert json.loads(store.content("u.json")) == {"ssn": ""}


async def test_format_override(storage, store) -> None:
    await storage.write_document("notes.txt", {"id": 1}, OperationOptions(format="jsonl"))
    assert store.content("notes.txt") == '{"id":1}\n'
    assert await storage.read_document("notes.txt", OperationOptions(format="jsonl")) == {"id": 1}


async def test_default_format_for_unknown_suffix(store, cipher) -> None:
    storage = StorageManager(store, cipher, default_format="jsonl")
    await storage.write_collection("events", [{"n": 1}, {"n": 2}])
    assert store.content("events") == '{"n":1}\n{"n":2}\n'


async def test_delete_document(make_store, cipher) -> None:
    store = make_store({"a.json": "{}"})
    storage = StorageManager(store, cipher)

    await storage.delete("a.json")
    assert store.content("a.json") is None
    assert store.history == [("delete", "a.json", "Delete document: a.json")]

    with pytest.raises(PathNotFoundError):
        await storage.delete("a.json")


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


async def test_read_missing_collection(storage) -> None:
    assert await storage.read_collection("nope.jsonl") == []


async def test_write_collection_overwrites(storage) -> None:
    await storage.write_collection("c.json", [{"id": 1}, {"id": 2}])
    await storage.write_collection("c.json", [{"id": 3}])
    assert await storage.read_collection("c.json") == [{"id": 3}]


async def test_append_jsonl_appends_a_line(storage, store) -> None:
    await storage.append_to_collection("events.jsonl", {"n": 1})
    await storage.append_to_collection("events.jsonl", {"n": 2})

    assert store.content("events.jsonl") == '{"n":1}\n{"n":2}\n'
    assert [op for op, _ in store.calls() if op != "read"] == ["create", "update"]


@pytest.mark.parametrize("path", ["people.json", "people.csv", "people.yaml"])
async def test_append_rewrites_whole_container(storage, store, path) -> None:
    await storage.append_to_collection(path, {"name": "Alice"})
    await storage.append_to_collection(path, {"name": "Bob"})

    assert await storage.read_collection(path) == [{"name": "Alice"}, {"name": "Bob"}]
    assert [message for _, _, message in store.history] == [
        f"Create collection: {path}",
        f"Append to collection: {path}",
    ]


async def test_append_hashes_fields(storage) -> None:
    await storage.append_to_collection("u.jsonl", {"id": 1, "token": "s3cret"}, OperationOptions(hash_fields=["token"]))
    [raw] = await storage.read_collection("u.jsonl")
    assert raw["token"] != "s3cret"

    [plain] = await storage.read_collection("u.jsonl", OperationOptions(unhash_fields=["token"]))
    assert plain == {"id": 1, "token": "s3cret"}


async def test_flush_waits_for_queued_writes(storage, store) -> None:
    await storage.flush()
    await storage.write_collection("c.jsonl", [{"id": 1}])
    await storage.flush()
    assert store.content("c.jsonl") == '{"id":1}\n'
