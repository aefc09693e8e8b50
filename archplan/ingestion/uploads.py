"""Upload orchestration: store the bytes, record the upload, extract BRD text.

Text extraction follows the project's processing mode:

- ``parse_only``: the document parser alone
- ``llm_parsed``: parse, then enhance with the generation client; falls back
  to the parsed text when enhancement fails
- ``llm_raw``: send the raw bytes to the generation client; a failure leaves
  no text
"""

import asyncio
from dataclasses import dataclass
import os
import re
import time
import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from archplan.artifacts import ArtifactSpec
from archplan.config import Settings
from archplan.errors import UploadNotFound, UploadTooLargeError
from archplan.llm.client import GenerationClient
from archplan.models import ArtifactCategory, ProcessingMode, Upload, UploadVersion

from .parser import DocumentParser, ParseError
from .storage import FileStorage

logger = structlog.get_logger()

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
MAX_SANITIZED_BASE = 101
KEY_TOKEN_LENGTH = 8


def generate_storage_key(
    project_id: str, filename: str, now: float | None = None, token: str | None = None
) -> str:
    """``projects/<project_id>/<unix_ts>_<token>_<sanitized_base><ext>``

    ``token`` is random by default, so keys never collide within one second.
    """
    timestamp = int(time.time() if now is None else now)
    token = token or uuid.uuid4().hex[:KEY_TOKEN_LENGTH]
    base, ext = os.path.splitext(os.path.basename(filename))
    sanitized = _UNSAFE_FILENAME_CHARS.sub("_", base)[:MAX_SANITIZED_BASE]
    return f"projects/{project_id}/{timestamp}_{token}_{sanitized}{ext}"


@dataclass(frozen=True)
class ExtractionResult:
    content: str | None
    parse_error: ParseError | None = None
    generation_error: str | None = None


@dataclass(frozen=True)
class UploadOutcome:
    """A stored upload plus the BRD text extracted from it (``None`` on failure)."""

    upload: Upload
    version: UploadVersion
    content: str | None
    parse_error: ParseError | None = None
    generation_error: str | None = None


class UploadManager:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        storage: FileStorage,
        generation_client: GenerationClient,
        settings: Settings,
        parser: DocumentParser | None = None,
    ):
        self.session_maker = session_maker
        self.storage = storage
        self.generation_client = generation_client
        self.settings = settings
        self.parser = parser or DocumentParser(doc_max_bytes=settings.doc_max_bytes)

    async def create_upload(
        self,
        project_id: str,
        filename: str,
        data: bytes,
        *,
        content_type: str | None = None,
        uploaded_by: str | None = None,
        processing_mode: ProcessingMode | str = ProcessingMode.PARSE_ONLY,
        provider: str | None = None,
    ) -> UploadOutcome:
        self._check_size(data)
        key = generate_storage_key(project_id, filename)
        await self.storage.put(key, data, content_type)

        extraction = await self.extract_text(
            data, filename, processing_mode, provider=provider, project_id=project_id
        )

        try:
            async with self.session_maker() as session:
                upload = Upload(
                    project_id=project_id,
                    filename=filename,
                    content_type=content_type,
                    size_bytes=len(data),
                    storage_key=key,
                    storage_bucket=self.storage.bucket,
                    current_version=1,
                    uploaded_by=uploaded_by,
                )
                session.add(upload)
                await session.flush()
                version = self._version_row(upload, 1)
                session.add(version)
                await session.commit()
        except Exception:
            logger.error("upload_record_failed", project_id=project_id, storage_key=key)
            await self.storage.delete(key)
            raise

        logger.info(
            "upload_created",
            upload_id=upload.id,
            project_id=project_id,
            size_bytes=len(data),
            extracted=extraction.content is not None,
        )
        return UploadOutcome(
            upload=upload,
            version=version,
            content=extraction.content,
            parse_error=extraction.parse_error,
            generation_error=extraction.generation_error,
        )

    async def update_upload(
        self,
        upload_id: int,
        data: bytes,
        *,
        filename: str | None = None,
        content_type: str | None = None,
        uploaded_by: str | None = None,
        processing_mode: ProcessingMode | str = ProcessingMode.PARSE_ONLY,
        provider: str | None = None,
    ) -> UploadOutcome:
        """Store a new version of an existing upload."""
        self._check_size(data)
        existing = await self.get_upload(upload_id)
        filename = filename or existing.filename
        content_type = content_type or existing.content_type
        key = generate_storage_key(existing.project_id, filename)
        await self.storage.put(key, data, content_type)

        extraction = await self.extract_text(
            data, filename, processing_mode, provider=provider, project_id=existing.project_id
        )

        try:
            async with self.session_maker() as session:
                upload = await session.get(Upload, upload_id)
                if upload is None:
                    raise UploadNotFound(upload_id)
                upload.current_version += 1
                upload.filename = filename
                upload.content_type = content_type
                upload.size_bytes = len(data)
                upload.storage_key = key
                upload.uploaded_by = uploaded_by
                version = self._version_row(upload, upload.current_version)
                session.add(version)
                await session.commit()
        except Exception:
            logger.error("upload_version_failed", upload_id=upload_id, storage_key=key)
            await self.storage.delete(key)
            raise

        logger.info("upload_versioned", upload_id=upload_id, version=version.version_number)
        return UploadOutcome(
            upload=upload,
            version=version,
            content=extraction.content,
            parse_error=extraction.parse_error,
            generation_error=extraction.generation_error,
        )

    async def list_uploads(self, project_id: str | None = None) -> list[Upload]:
        """Newest first, optionally scoped to one project."""
        stmt = select(Upload).order_by(Upload.id.desc())
        if project_id is not None:
            stmt = stmt.where(Upload.project_id == project_id)
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_upload(self, upload_id: int) -> Upload:
        async with self.session_maker() as session:
            upload = await session.get(Upload, upload_id)
            if upload is None:
                raise UploadNotFound(upload_id)
            return upload

    async def list_versions(self, upload_id: int) -> list[UploadVersion]:
        """Newest version first."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(UploadVersion)
                .where(UploadVersion.upload_id == upload_id)
                .order_by(UploadVersion.version_number.desc())
            )
            return list(result.scalars().all())

    async def delete_upload(self, upload_id: int) -> None:
        """Remove every stored version, then the rows."""
        upload = await self.get_upload(upload_id)
        versions = await self.list_versions(upload_id)

        for key in {upload.storage_key, *(v.storage_key for v in versions)}:
            await self.storage.delete(key)

        async with self.session_maker() as session:
            await session.execute(delete(UploadVersion).where(UploadVersion.upload_id == upload_id))
            await session.execute(delete(Upload).where(Upload.id == upload_id))
            await session.commit()

        logger.info("upload_deleted", upload_id=upload_id, versions=len(versions))

    def download_url(self, item: Upload | UploadVersion) -> str:
        return self.storage.url_for(item.storage_key)

    async def extract_text(
        self,
        data: bytes,
        filename: str,
        processing_mode: ProcessingMode | str,
        *,
        provider: str | None = None,
        project_id: str | None = None,
    ) -> ExtractionResult:
        mode = ProcessingMode(processing_mode)
        extension = os.path.splitext(filename)[1]

        if mode is ProcessingMode.LLM_RAW:
            result = await self.generation_client.convert_document(
                data,
                filename,
                provider=provider,
                artifact=self._artifact(project_id, f"BRD conversion: {filename}"),
            )
            if result.ok:
                return ExtractionResult(content=result.text)
            logger.error("brd_conversion_failed", filename=filename, error=result.error)
            return ExtractionResult(content=None, generation_error=result.error)

        parsed = await asyncio.to_thread(self.parser.parse, data, extension)
        if isinstance(parsed, ParseError):
            logger.warning("brd_parse_failed", filename=filename, error=str(parsed))
            return ExtractionResult(content=None, parse_error=parsed)

        if mode is ProcessingMode.PARSE_ONLY:
            return ExtractionResult(content=parsed)

        result = await self.generation_client.enhance_parsed_text(
            parsed,
            provider=provider,
            artifact=self._artifact(project_id, f"BRD enhancement: {filename}"),
        )
        if result.ok:
            return ExtractionResult(content=result.text)
        logger.warning(
            "brd_enhancement_failed_using_parsed_text", filename=filename, error=result.error
        )
        return ExtractionResult(content=parsed, generation_error=result.error)

    def _check_size(self, data: bytes) -> None:
        if len(data) > self.settings.max_upload_bytes:
            logger.error(
                "upload_too_large",
                size_bytes=len(data),
                max_bytes=self.settings.max_upload_bytes,
            )
            raise UploadTooLargeError(len(data), self.settings.max_upload_bytes)

    def _artifact(self, project_id: str | None, title: str) -> ArtifactSpec | None:
        if project_id is None:
            return None
        return ArtifactSpec(
            project_id=project_id,
            title=title,
            category=ArtifactCategory.FUNCTION_REQUIREMENT_DOCUMENT,
        )

    @staticmethod
    def _version_row(upload: Upload, number: int) -> UploadVersion:
        return UploadVersion(
            upload_id=upload.id,
            version_number=number,
            filename=upload.filename,
            content_type=upload.content_type,
            size_bytes=upload.size_bytes,
            storage_key=upload.storage_key,
            storage_bucket=upload.storage_bucket,
            uploaded_by=upload.uploaded_by,
        )
