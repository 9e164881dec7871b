"""Unit tests for the RevisionDB facade."""

from __future__ import annotations

import pytest

from revstore.db import DBConfig, RevisionDB
from revstore.errors import ConfigurationError, PathNotFoundError
from revstore.models import OperationOptions
from revstore.settings import RevstoreSettings
from revstore.store.memory import MemoryContentStore

USERS = '{"id":1,"age":30}\n{"id":2,"age":20}\n{"id":3,"age":45}\n'


@pytest.fixture
def db(store) -> RevisionDB:
    return RevisionDB(store)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "config",
    [
        DBConfig(mode="table"),
        DBConfig(format="xml"),
        DBConfig(cache_ttl=0),
    ],
    ids=["mode", "format", "ttl"],
)
def test_invalid_config(store, config) -> None:
    with pytest.raises(ConfigurationError):
        RevisionDB(store, config)


def test_from_settings_memory_backend(clean_env) -> None:
    db = RevisionDB.from_settings(RevstoreSettings(backend="memory", mode="collection", format="jsonl"))
    assert isinstance(db._store, MemoryContentStore)
    assert db.config.mode == "collection"
    assert db.config.format == "jsonl"


def test_from_settings_github_requires_token(clean_env) -> None:
    with pytest.raises(ConfigurationError):
        RevisionDB.from_settings(RevstoreSettings(backend="github", github_repo="octo/data"))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class _RemoteStore(MemoryContentStore):
    def __init__(self, exists: bool = True) -> None:
        super().__init__()
        self.exists = exists
        self.checks = 0
        self.closed = False

    async def validate_token(self) -> None:
        self.checks += 1

    async def repo_exists(self) -> bool:
        return self.exists

    async def aclose(self) -> None:
        self.closed = True


async def test_initialize_checks_backend_once() -> None:
    store = _RemoteStore()
    db = RevisionDB(store)
    await db.get("a.json")
    await db.get("b.json")
    assert store.checks == 1


async def test_initialize_missing_repository() -> None:
    with pytest.raises(ConfigurationError):
        await RevisionDB(_RemoteStore(exists=False)).initialize()


async def test_context_manager_flushes_and_closes() -> None:
    store = _RemoteStore()
    async with RevisionDB(store) as db:
        await db.set("a.json", {"id": 1})
    assert store.closed
    assert db.rate_limit_status() is None


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


async def test_set_and_get_document(db, store) -> None:
    await db.set("/users/alice.json", {"name": "Alice"})
    assert store.content("users/alice.json") is not None

    assert await db.get("users/alice.json") == {"name": "Alice"}
    # Served from the cache populated by ``set``.
    assert store.calls("read") == [("read", "users/alice.json")]


async def test_get_populates_cache(make_store) -> None:
    store = make_store({"a.json": '{"id": 1}'})
    db = RevisionDB(store)

    first = await db.get("a.json")
    first["id"] = 99
    assert await db.get("a.json") == {"id": 1}
    assert len(store.calls("read")) == 1


async def test_get_without_cache_always_reads(make_store) -> None:
    store = make_store({"a.json": '{"id": 1}'})
    db = RevisionDB(store, DBConfig(cache_enabled=False))
    await db.get("a.json")
    await db.get("a.json")
    assert len(store.calls("read")) == 2


async def test_get_missing_document(db) -> None:
    assert await db.get("missing.json") is None


async def test_cached_get_matches_stored_encoding(db, store) -> None:
    await db.set("people/ada.csv", {"name": "Ada", "age": 36, "email": None})

    expected = {"name": "Ada", "age": "36", "email": ""}
    assert await db.get("people/ada.csv") == expected
    assert store.calls("read") == [("read", "people/ada.csv")]

    db.cache.clear()
    assert await db.get("people/ada.csv") == expected


async def test_hashed_fields_bypass_cache(db) -> None:
    await db.set("u.json", {"ssn": "123"}, OperationOptions(hash_fields=["ssn"]))
    assert db.cache.get("u.json") is None

    assert await db.get("u.json", OperationOptions(unhash_fields=["ssn"])) == {"ssn": "123"}
    assert db.cache.get("u.json") is None


async def test_delete_document(db) -> None:
    await db.set("a.json", {"id": 1})
    await db.delete("a.json")
    assert await db.get("a.json") is None

    with pytest.raises(PathNotFoundError):
        await db.delete("a.json")


async def test_collection_mode_set_appends(store) -> None:
    db = RevisionDB(store, DBConfig(mode="collection"))
    await db.set("events.jsonl", {"n": 1})
    await db.set("events.jsonl", {"n": 2})

    assert await db.get_collection("events.jsonl") == [{"n": 1}, {"n": 2}]
    assert db.cache.get("events.jsonl") is None


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


async def test_create_and_list_collections(make_store) -> None:
    store = make_store({".github/workflow.yml": "", "readme.json": "{}"})
    db = RevisionDB(store)

    sample = await db.create_collection("users")
    await db.create_collection("/logs/", format="jsonl")

    assert sample == "users/sample.json"
    assert store.content("users/.keep") == ""
    assert store.content("users/sample.json") == "[]"
    assert store.content("logs/sample.jsonl") == ""
    assert await db.list_collections() == ["logs", "users"]


async def test_append_and_query(db) -> None:
    for doc in ({"id": 1, "role": "admin"}, {"id": 2, "role": "user"}, {"id": 3, "role": "admin"}):
        await db.append("team.json", doc)

    admins = await db.query("team.json", lambda d: d["role"] == "admin")
    assert [d["id"] for d in admins] == [1, 3]


async def test_remove_matching_documents(make_store) -> None:
    store = make_store({"users.jsonl": USERS})
    db = RevisionDB(store)

    assert await db.remove("users.jsonl", lambda d: d["age"] > 25) == 2
    assert store.content("users.jsonl") == '{"id":2,"age":20}\n'

    assert await db.remove("users.jsonl", lambda d: d["age"] > 25) == 0
    assert len(store.calls("update")) == 1


async def test_remove_missing_path(db) -> None:
    with pytest.raises(PathNotFoundError):
        await db.remove("nope.jsonl", lambda d: True)


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


async def test_transfer_and_verify(make_store) -> None:
    store = make_store({"users.jsonl": USERS})
    db = RevisionDB(store)
    db.cache.set("users.jsonl", {"stale": True})

    result = await db.transfer("/users.jsonl", "/seniors.jsonl", lambda d: d["age"] > 25)

    assert result.moved == 2
    assert db.cache.get("users.jsonl") is None
    assert await db.get_collection("seniors.jsonl") == [{"id": 1, "age": 30}, {"id": 3, "age": 45}]
    assert await db.verify_consistency("users.jsonl", "seniors.jsonl", lambda d: d["age"] > 25)


async def test_transfer_shares_write_queue_with_storage(db) -> None:
    assert db.transfers._queue is db.storage.queue


async def test_convert_format(make_store) -> None:
    from revstore.formats import ConversionOptions

    store = make_store({"users.jsonl": USERS})
    db = RevisionDB(store)
    await db.convert_format("users.jsonl", "users.csv", ConversionOptions())

    assert store.content("users.csv") == "id,age\n1,30\n2,20\n3,45\n"


async def test_flush_pending_writes(db, store) -> None:
    await db.set("a.json", {"id": 1})
    await db.flush_pending_writes()
    assert store.content("a.json") is not None
