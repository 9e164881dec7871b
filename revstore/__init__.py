"""revstore - document collections on a revision-checked content store."""

from revstore.db import DBConfig, RevisionDB
from revstore.errors import (
    ConfigurationError,
    FormatError,
    PartialCommitInconsistencyError,
    RevisionConflictError,
    RevstoreError,
    SourceNotFoundError,
    TransferInProgressError,
)
from revstore.formats import ConversionOptions, FormatConverter, FormatRegistry
from revstore.models import Document, OperationOptions, TransferResult
from revstore.store import NOT_FOUND, ContentStore, LocalContentStore, MemoryContentStore
from revstore.transfer import TransferCoordinator
from revstore.write_queue import WriteQueue

__all__ = [
    "NOT_FOUND",
    "ConfigurationError",
    "ContentStore",
    "ConversionOptions",
    "DBConfig",
    "Document",
    "FormatConverter",
    "FormatError",
    "FormatRegistry",
    "LocalContentStore",
    "MemoryContentStore",
    "OperationOptions",
    "PartialCommitInconsistencyError",
    "RevisionConflictError",
    "RevisionDB",
    "RevstoreError",
    "SourceNotFoundError",
    "TransferCoordinator",
    "TransferInProgressError",
    "TransferResult",
    "WriteQueue",
]
