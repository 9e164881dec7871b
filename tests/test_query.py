from __future__ import annotations

from revstore.query import filter_documents, find_one, limit, sort_documents, where

PEOPLE = [
    {"name": "Alice", "age": 30, "role": "admin"},
    {"name": "Bob", "age": 20, "role": "user"},
    {"name": "Carol", "role": "admin"},
    {"name": "Dan", "age": 45, "role": "user"},
]


def test_filter_and_find_one() -> None:
    admins = filter_documents(PEOPLE, where(role="admin"))
    assert [p["name"] for p in admins] == ["Alice", "Carol"]
    assert find_one(PEOPLE, lambda p: p.get("age", 0) > 40)["name"] == "Dan"
    assert find_one(PEOPLE, where(role="owner")) is None


def test_where_requires_field_presence() -> None:
    assert not where(age=None)({"name": "x"})
    assert where(age=None)({"age": None})


def test_sort_missing_keys_last() -> None:
    assert [p["name"] for p in sort_documents(PEOPLE, "age")] == ["Bob", "Alice", "Dan", "Carol"]
    assert [p["name"] for p in sort_documents(PEOPLE, "age", ascending=False)] == ["Dan", "Alice", "Bob", "Carol"]


def test_limit() -> None:
    assert limit(PEOPLE, 2) == PEOPLE[:2]
    assert limit(PEOPLE, 10) == PEOPLE
    assert limit([], 3) == []
