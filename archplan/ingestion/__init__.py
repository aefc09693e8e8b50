"""Document ingestion: parsing, storage and upload orchestration."""

from .parser import (
    SUPPORTED_EXTENSIONS,
    DocumentParser,
    FileTooLarge,
    InsufficientText,
    NoTextExtracted,
    ParseError,
    PdfParseError,
    UnsupportedFormat,
    normalize_text,
    parse,
)
from .storage import FileStorage, LocalFileStorage
from .uploads import UploadManager, UploadOutcome, generate_storage_key

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "DocumentParser",
    "FileStorage",
    "FileTooLarge",
    "InsufficientText",
    "LocalFileStorage",
    "NoTextExtracted",
    "ParseError",
    "PdfParseError",
    "UnsupportedFormat",
    "UploadManager",
    "UploadOutcome",
    "generate_storage_key",
    "normalize_text",
    "parse",
]
