"""Document ingestion: turn uploaded bytes into normalized plain text.

Dispatch is purely by file extension. ``parse`` never raises; any failure is
returned as a ``ParseError`` value carrying the format and a cause.

Usage:
    from archplan.ingestion.parser import ParseError, parse

    result = parse(data, ".docx")
    if isinstance(result, ParseError):
        ...
"""

from collections.abc import Callable
from dataclasses import dataclass
import html
import io
import re
import zipfile

import fitz
import structlog

from archplan.config import MB

logger = structlog.get_logger()

SUPPORTED_EXTENSIONS = (".txt", ".md", ".pdf", ".doc", ".docx")

DEFAULT_DOC_MAX_BYTES = 10 * MB
# Legacy .doc extraction that keeps this many characters or fewer is treated as noise
MIN_DOC_TEXT_CHARS = 50

_DOCX_BODY = "word/document.xml"
_DOCX_TEXT_RUN = re.compile(r"<w:t(?:\s[^>]*)?>([^<]*)</w:t>")
_NON_PRINTABLE = re.compile(rb"[^\x20-\x7e]+")

_HORIZONTAL_WS = re.compile(r"[ \t]+")
_WS_AROUND_NEWLINE = re.compile(r"[ \t]*\n[ \t]*")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class ParseError:
    """Base parse failure. ``cause`` is a human-readable reason."""

    format: str
    cause: str

    def __str__(self) -> str:
        return f"{self.format}: {self.cause}"


@dataclass(frozen=True)
class UnsupportedFormat(ParseError):
    pass


@dataclass(frozen=True)
class FileTooLarge(ParseError):
    size: int = 0
    limit: int = 0


@dataclass(frozen=True)
class InsufficientText(ParseError):
    pass


@dataclass(frozen=True)
class NoTextExtracted(ParseError):
    pass


@dataclass(frozen=True)
class PdfParseError(ParseError):
    pass


def normalize_extension(extension: str) -> str:
    ext = (extension or "").strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


def normalize_text(text: str) -> str:
    """Canonicalize whitespace. Idempotent.

    Line endings become ``\\n``, space/tab runs become one space, whitespace
    around newlines is dropped, 3+ newlines collapse to two, ends are trimmed.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _WS_AROUND_NEWLINE.sub("\n", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


class DocumentParser:
    """Extension-dispatching text extractor."""

    def __init__(self, doc_max_bytes: int = DEFAULT_DOC_MAX_BYTES):
        self.doc_max_bytes = doc_max_bytes
        self._handlers: dict[str, Callable[[bytes], str | ParseError]] = {
            ".txt": self._parse_text,
            ".md": self._parse_text,
            ".pdf": self._parse_pdf,
            ".doc": self._parse_doc,
            ".docx": self._parse_docx,
        }

    def parse(self, data: bytes, extension: str) -> str | ParseError:
        ext = normalize_extension(extension)
        handler = self._handlers.get(ext)
        if handler is None:
            return UnsupportedFormat(format=ext or "<none>", cause=f"Unsupported file type: {ext!r}")

        try:
            result = handler(data)
        except Exception as e:
            logger.warning("document_parse_failed", format=ext, error=str(e))
            return ParseError(format=ext, cause=f"{type(e).__name__}: {e}")

        if isinstance(result, ParseError):
            logger.info("document_parse_rejected", format=ext, reason=result.cause)
        else:
            logger.debug("document_parsed", format=ext, chars=len(result))
        return result

    def _parse_text(self, data: bytes) -> str:
        return normalize_text(data.decode("utf-8-sig", errors="replace"))

    def _parse_doc(self, data: bytes) -> str | ParseError:
        if len(data) > self.doc_max_bytes:
            return FileTooLarge(
                format=".doc",
                cause=f"File size {len(data)} bytes exceeds {self.doc_max_bytes} bytes limit",
                size=len(data),
                limit=self.doc_max_bytes,
            )

        # Printable ASCII runs, concatenated
        text = normalize_text(_NON_PRINTABLE.sub(b"", data).decode("ascii"))
        if len(text) <= MIN_DOC_TEXT_CHARS:
            return InsufficientText(
                format=".doc",
                cause="Could not extract meaningful text from legacy .doc file",
            )
        return text

    def _parse_docx(self, data: bytes) -> str | ParseError:
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            return ParseError(format=".docx", cause=f"Invalid .docx archive: {e}")

        with archive:
            if _DOCX_BODY not in archive.namelist():
                return NoTextExtracted(format=".docx", cause=f"{_DOCX_BODY} not found in archive")
            xml = archive.read(_DOCX_BODY).decode("utf-8", errors="replace")

        runs = [html.unescape(run) for run in _DOCX_TEXT_RUN.findall(xml)]
        text = normalize_text(" ".join(runs))
        if not text:
            return NoTextExtracted(format=".docx", cause="No text runs found in document")
        return text

    def _parse_pdf(self, data: bytes) -> str | ParseError:
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                pages = [page.get_text() for page in doc]
        except Exception as e:
            return PdfParseError(format=".pdf", cause=str(e))

        text = normalize_text("\n".join(pages))
        if not text:
            return NoTextExtracted(format=".pdf", cause="PDF contains no extractable text")
        return text


_default_parser = DocumentParser()


def parse(data: bytes, extension: str) -> str | ParseError:
    """Parse with the default size limits."""
    return _default_parser.parse(data, extension)
