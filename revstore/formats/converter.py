"""Codec registry and the format conversion pipeline.

The registry maps format names to codecs and detects the format of a path
from its suffix.  Unrecognised suffixes fall back to ``DEFAULT_FORMAT``
(``json``).

The converter runs the conversion pipeline, in this order, for both entry
points (``convert_content`` for raw text, ``convert_documents`` for parsed
documents):

1. ``filter``         -- keep documents for which the predicate is true
2. ``transform``      -- map each document, in sequence order
3. ``field_mapping``  -- rename fields (``{new_name: old_name}``)
4. ``timestamp_field``-- stamp the current UTC instant
5. serialize          -- encode with the target codec
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import PurePosixPath

from revstore.errors import ConfigurationError
from revstore.formats.base import Codec, ConversionOptions
from revstore.formats.csv_format import CsvCodec
from revstore.formats.json_format import JsonCodec
from revstore.formats.jsonl_format import JsonLinesCodec
from revstore.formats.yaml_format import YamlCodec
from revstore.models import Document

DEFAULT_FORMAT = "json"

_SUFFIX_ALIASES = {"yml": "yaml"}


class FormatRegistry:
    """Name -> codec table, pre-populated with the built-in codecs."""

    def __init__(self) -> None:
        self._codecs: dict[str, Codec] = {}
        for codec in (JsonCodec(), JsonLinesCodec(), CsvCodec(), YamlCodec()):
            self.register(codec.name, codec)

    def register(self, name: str, codec: Codec) -> None:
        self._codecs[name] = codec

    def get(self, name: str) -> Codec:
        try:
            return self._codecs[name]
        except KeyError:
            msg = f"Unsupported format: {name}"
            raise ConfigurationError(msg) from None

    def detect(self, path: str, default: str = DEFAULT_FORMAT) -> str:
        """Return the format name for ``path`` based on its suffix."""
        suffix = PurePosixPath(path).suffix.lower().lstrip(".")
        suffix = _SUFFIX_ALIASES.get(suffix, suffix)
        return suffix if suffix in self._codecs else default

    def for_path(self, path: str, default: str = DEFAULT_FORMAT) -> Codec:
        return self.get(self.detect(path, default))

    def supported(self) -> list[str]:
        return list(self._codecs)


def apply_field_mapping(document: Document, mapping: dict[str, str]) -> Document:
    """Rename fields according to ``{new_name: old_name}``.

    Mapped fields come first, in mapping order.  Fields that are not the
    source of any mapping pass through unchanged.  A renamed-from field is
    dropped unless some mapping writes that same name back.  When a mapped
    name collides with a pass-through field, the mapped value wins.
    """
    mapped: Document = {}
    for new_name, old_name in mapping.items():
        if old_name in document:
            mapped[new_name] = document[old_name]

    sources = set(mapping.values())
    for key, value in document.items():
        if key not in sources and key not in mapped:
            mapped[key] = value
    return mapped


def utc_timestamp() -> str:
    """Current UTC instant as ISO-8601 with millisecond precision and ``Z``."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class FormatConverter:
    """Runs the conversion pipeline over a registry of codecs."""

    def __init__(
        self,
        registry: FormatRegistry | None = None,
        clock: Callable[[], str] = utc_timestamp,
    ) -> None:
        self.registry = registry or FormatRegistry()
        self._clock = clock

    def apply_pipeline(self, documents: Sequence[Document], options: ConversionOptions) -> list[Document]:
        """Run every pipeline stage except serialization."""
        processed = list(documents)

        if options.filter is not None:
            processed = [doc for doc in processed if options.filter(doc)]

        if options.transform is not None:
            processed = [options.transform(doc) for doc in processed]

        if options.field_mapping:
            processed = [apply_field_mapping(doc, options.field_mapping) for doc in processed]

        if options.timestamp_field:
            stamp = self._clock()
            processed = [{**doc, options.timestamp_field: stamp} for doc in processed]

        return processed

    def convert_documents(self, documents: Sequence[Document], options: ConversionOptions) -> str:
        target = self._require(options.target_format, "target_format")
        return self.registry.get(target).serialize(self.apply_pipeline(documents, options))

    def convert_content(self, content: str, options: ConversionOptions) -> str:
        source = self._require(options.source_format, "source_format")
        documents = self.registry.get(source).parse(content)
        return self.convert_documents(documents, options)

    @staticmethod
    def _require(value: str | None, name: str) -> str:
        if not value:
            msg = f"ConversionOptions.{name} must be set"
            raise ConfigurationError(msg)
        return value
