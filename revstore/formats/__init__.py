"""Document encodings and the conversion pipeline."""

from revstore.formats.base import Codec, ConversionOptions
from revstore.formats.converter import DEFAULT_FORMAT, FormatConverter, FormatRegistry, apply_field_mapping
from revstore.formats.csv_format import CsvCodec
from revstore.formats.json_format import JsonCodec
from revstore.formats.jsonl_format import JsonLinesCodec
from revstore.formats.yaml_format import YamlCodec

__all__ = [
    "DEFAULT_FORMAT",
    "Codec",
    "ConversionOptions",
    "CsvCodec",
    "FormatConverter",
    "FormatRegistry",
    "JsonCodec",
    "JsonLinesCodec",
    "YamlCodec",
    "apply_field_mapping",
]
