"""Whole-document JSON: one blob holding an object or an array of objects."""

from __future__ import annotations

import json
from collections.abc import Sequence

from revstore.errors import FormatError
from revstore.models import Document


class JsonCodec:
    """Array-or-object JSON codec.

    A single document serializes as a bare object, not a 1-element array.
    Parsing a bare object yields a 1-element sequence, so the round trip
    still holds.
    """

    name = "json"

    def __init__(self, indent: int = 2) -> None:
        self._indent = indent

    def parse(self, content: str) -> list[Document]:
        if not content.strip():
            return []
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            msg = f"Invalid JSON at line {e.lineno}: {e.msg}"
            raise FormatError(msg, format_name=self.name, index=e.lineno) from e

        documents = data if isinstance(data, list) else [data]
        for position, document in enumerate(documents, start=1):
            if not isinstance(document, dict):
                msg = f"Invalid JSON: document {position} is {type(document).__name__}, not an object"
                raise FormatError(msg, format_name=self.name, index=position)
        return documents

    def serialize(self, documents: Sequence[Document]) -> str:
        data = documents[0] if len(documents) == 1 else list(documents)
        return json.dumps(data, indent=self._indent, ensure_ascii=False)

    def extension(self) -> str:
        return "json"
