"""Append-only recording of generation calls."""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from archplan.models import ArtifactCategory, ArtifactType, GenerationArtifact

logger = structlog.get_logger()

MAX_TITLE_LENGTH = 255


@dataclass(frozen=True)
class ArtifactSpec:
    """What to record for a generation call made on behalf of a project."""

    project_id: str
    title: str
    category: ArtifactCategory = ArtifactCategory.OTHER
    type: ArtifactType = ArtifactType.DOC


class ArtifactRecorder:
    """Writes GenerationArtifact rows in their own session.

    Recording never fails the caller: errors are logged and ``None`` is returned.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def record(self, spec: ArtifactSpec, prompt: str, content: str | None) -> int | None:
        try:
            async with self.session_maker() as session:
                artifact = GenerationArtifact(
                    project_id=spec.project_id,
                    type=spec.type.value,
                    category=spec.category.value,
                    title=spec.title[:MAX_TITLE_LENGTH],
                    prompt=prompt,
                    content=content,
                )
                session.add(artifact)
                await session.commit()
                return artifact.id
        except Exception as e:
            logger.warning(
                "artifact_record_failed",
                project_id=spec.project_id,
                title=spec.title,
                error=str(e),
            )
            return None

    async def list_for_project(self, project_id: str) -> list[GenerationArtifact]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(GenerationArtifact)
                .where(GenerationArtifact.project_id == project_id)
                .order_by(GenerationArtifact.id)
            )
            return list(result.scalars().all())
