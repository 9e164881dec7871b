"""In-memory queries over document lists."""

from __future__ import annotations

from collections.abc import Callable, Sequence

from revstore.models import Document


def filter_documents(documents: Sequence[Document], predicate: Callable[[Document], bool]) -> list[Document]:
    return [doc for doc in documents if predicate(doc)]


def find_one(documents: Sequence[Document], predicate: Callable[[Document], bool]) -> Document | None:
    return next((doc for doc in documents if predicate(doc)), None)


def sort_documents(documents: Sequence[Document], key: str, ascending: bool = True) -> list[Document]:
    """Stable sort by ``key``.  Documents missing the key sort last either way."""
    present = [doc for doc in documents if doc.get(key) is not None]
    missing = [doc for doc in documents if doc.get(key) is None]
    return sorted(present, key=lambda doc: doc[key], reverse=not ascending) + missing


def limit(documents: Sequence[Document], count: int) -> list[Document]:
    return list(documents[:count])


def where(**fields: object) -> Callable[[Document], bool]:
    """Predicate matching documents whose fields equal the given values."""

    def predicate(doc: Document) -> bool:
        return all(field in doc and doc[field] == value for field, value in fields.items())

    return predicate
