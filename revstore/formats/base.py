"""Codec interface and conversion options."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from revstore.models import Document


@runtime_checkable
class Codec(Protocol):
    """Parse/serialize strategy for one document encoding.

    Implementations are pure and stateless: no I/O, no shared state.  Malformed
    input raises ``FormatError``; data is never silently dropped.
    """

    name: str

    def parse(self, content: str) -> list[Document]: ...

    def serialize(self, documents: Sequence[Document]) -> str: ...

    def extension(self) -> str: ...


@dataclass
class ConversionOptions:
    """Options for the conversion pipeline.

    Pipeline order is fixed: ``filter`` -> ``transform`` -> ``field_mapping``
    -> ``timestamp_field`` -> serialize.

    ``source_format`` / ``target_format`` left as ``None`` are detected from
    the source / destination path.  ``field_mapping`` maps *new* field names
    to the *old* names they are taken from.
    """

    source_format: str | None = None
    target_format: str | None = None
    field_mapping: dict[str, str] = field(default_factory=dict)
    timestamp_field: str | None = None
    filter: Callable[[Document], bool] | None = None
    transform: Callable[[Document], Document] | None = None
