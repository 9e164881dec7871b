"""Delimiter-separated tabular records with RFC-4180 quoting.

The first row is the header and defines field order.  Quoted fields may
contain the delimiter, the quote character and newlines; a doubled quote
(``""``) inside a quoted field is a literal quote.  Parsed values are
always strings.

On serialize the header is the union of all document keys in first-seen
order.  Non-string values are written as JSON (``true``, ``1.5``,
``{"a": 1}``); missing values and ``None`` are written as empty cells.
"""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Sequence
from typing import Any

from revstore.errors import FormatError
from revstore.models import Document


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class CsvCodec:
    name = "csv"

    def __init__(self, delimiter: str = ",") -> None:
        self._delimiter = delimiter

    def parse(self, content: str) -> list[Document]:
        if not content.strip():
            return []

        reader = csv.reader(io.StringIO(content, newline=""), delimiter=self._delimiter, strict=True)
        header: list[str] | None = None
        documents: list[Document] = []
        try:
            for row in reader:
                # A blank line; a lone empty cell is written as `""` and reads back as [""].
                if not row:
                    continue
                if header is None:
                    header = row
                    continue
                if len(row) > len(header):
                    msg = f"Invalid CSV at line {reader.line_num}: {len(row)} fields, header has {len(header)}"
                    raise FormatError(msg, format_name=self.name, index=reader.line_num)
                padded = row + [""] * (len(header) - len(row))
                documents.append(dict(zip(header, padded, strict=True)))
        except csv.Error as e:
            msg = f"Invalid CSV at line {reader.line_num}: {e}"
            raise FormatError(msg, format_name=self.name, index=reader.line_num) from e
        return documents

    def serialize(self, documents: Sequence[Document]) -> str:
        if not documents:
            return ""

        header: dict[str, None] = {}
        for document in documents:
            header.update(dict.fromkeys(document))

        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=self._delimiter, lineterminator="\n")
        writer.writerow(header)
        for document in documents:
            writer.writerow([_cell(document.get(name)) for name in header])
        return buffer.getvalue()

    def extension(self) -> str:
        return "csv"
