"""Shared data models and enumerations."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

Document = dict[str, Any]
"""An open mapping of field names to values.  No fixed schema."""


# -- Enums ---------------------------------------------------------------------


class StorageMode(StrEnum):
    """How ``RevisionDB.set`` treats a path."""

    DOCUMENT = "document"
    COLLECTION = "collection"


class EntryType(StrEnum):
    FILE = "file"
    DIR = "dir"


class CommitShape(StrEnum):
    """Which pair of writes a transfer committed."""

    NONE = "none"
    UPDATE_BOTH = "update_both"
    CREATE_DEST = "create_dest"
    RECREATE_SOURCE = "recreate_source"


# -- Store ---------------------------------------------------------------------


class StoredFile(BaseModel):
    """Content of a path together with the revision token it was read at."""

    path: str
    content: str
    revision: str


class ChildEntry(BaseModel):
    name: str
    path: str
    type: EntryType


# -- Operations ----------------------------------------------------------------


class OperationOptions(BaseModel):
    """Per-call options for document reads and writes."""

    hash_fields: list[str] = Field(default_factory=list, description="Fields encrypted before write")
    unhash_fields: list[str] = Field(default_factory=list, description="Fields decrypted after read")
    format: str | None = None
    """Overrides the format detected from the path suffix."""


class TransferResult(BaseModel):
    """Outcome of a single ``transfer`` call."""

    source_path: str
    dest_path: str
    moved: int = 0
    remaining: int = 0
    shape: CommitShape = CommitShape.NONE
