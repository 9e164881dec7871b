"""Line-delimited JSON: one compact object per line."""

from __future__ import annotations

import json
from collections.abc import Sequence

from revstore.errors import FormatError
from revstore.models import Document


class JsonLinesCodec:
    name = "jsonl"

    def parse(self, content: str) -> list[Document]:
        documents: list[Document] = []
        # Split on "\n" only; compact JSON may legally carry U+2028 and friends.
        for lineno, line in enumerate(content.split("\n"), start=1):
            if not line.strip():
                continue
            try:
                document = json.loads(line)
            except json.JSONDecodeError as e:
                msg = f"Invalid JSONL at line {lineno}: {e.msg}"
                raise FormatError(msg, format_name=self.name, index=lineno) from e
            if not isinstance(document, dict):
                msg = f"Invalid JSONL at line {lineno}: expected an object"
                raise FormatError(msg, format_name=self.name, index=lineno)
            documents.append(document)
        return documents

    def serialize(self, documents: Sequence[Document]) -> str:
        # Trailing newline iff non-empty; appends rely on it.
        return "".join(json.dumps(doc, ensure_ascii=False, separators=(",", ":")) + "\n" for doc in documents)

    def extension(self) -> str:
        return "jsonl"
