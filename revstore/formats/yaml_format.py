"""Human-readable nested YAML records.

A stream holds either one document (an object, or a list of objects) or
several documents separated by ``---``.  Parsing first tries the
single-document reading; if that fails (a multi-document stream is a
composer error for ``safe_load``) it falls back to reading every document
in the stream.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import yaml
from loguru import logger

from revstore.errors import FormatError
from revstore.models import Document

SEPARATOR = "\n---\n"


def _error_line(error: yaml.YAMLError) -> int | None:
    mark = getattr(error, "problem_mark", None)
    return mark.line + 1 if mark is not None else None


class YamlCodec:
    name = "yaml"

    def __init__(self, indent: int = 2) -> None:
        self._indent = indent

    def parse(self, content: str) -> list[Document]:
        if not content.strip():
            return []
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError:
            logger.debug("YAML single-document parse failed, retrying as multi-document stream")
            return self._parse_all(content)
        if data is None:
            return []
        return self._documents(data if isinstance(data, list) else [data])

    def _parse_all(self, content: str) -> list[Document]:
        loaded: list[Any] = []
        try:
            for data in yaml.safe_load_all(content):
                loaded.append(data)
        except yaml.YAMLError as e:
            position = len(loaded) + 1
            line = _error_line(e)
            where = f"document {position}" + (f" (line {line})" if line else "")
            msg = f"Invalid YAML in {where}: {getattr(e, 'problem', None) or e}"
            raise FormatError(msg, format_name=self.name, index=position) from e

        documents: list[Any] = []
        for data in loaded:
            if data is None:
                continue
            documents.extend(data if isinstance(data, list) else [data])
        return self._documents(documents)

    def _documents(self, items: list[Any]) -> list[Document]:
        for position, item in enumerate(items, start=1):
            if not isinstance(item, dict):
                msg = f"Invalid YAML: document {position} is {type(item).__name__}, not a mapping"
                raise FormatError(msg, format_name=self.name, index=position)
        return items

    def _dump(self, document: Document) -> str:
        return yaml.safe_dump(
            document,
            indent=self._indent,
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        ).strip()

    def serialize(self, documents: Sequence[Document]) -> str:
        if not documents:
            return ""
        try:
            return SEPARATOR.join(self._dump(document) for document in documents)
        except yaml.YAMLError as e:
            msg = f"Failed to serialize YAML: {e}"
            raise FormatError(msg, format_name=self.name) from e

    def extension(self) -> str:
        return "yaml"
