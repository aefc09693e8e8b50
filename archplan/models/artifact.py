"""Generation artifact model (append-only audit trail of provider calls)."""

from enum import Enum

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from .base import Base


class ArtifactType(str, Enum):
    DOC = "doc"
    IMAGE = "image"
    VIDEO = "video"
    CODE = "code"
    DIAGRAM = "diagram"
    OTHER = "other"


class ArtifactCategory(str, Enum):
    FUNCTION_REQUIREMENT_DOCUMENT = "Function Requirement Document"
    DESIGN_DOCUMENT = "Design Document"
    ARCHITECTURAL_DOCUMENT = "Architectural Document"
    TECHNICAL_SPECIFICATION = "Technical Specification"
    API_DOCUMENTATION = "API Documentation"
    DATABASE_SCHEMA = "Database Schema"
    OTHER = "Other"


class GenerationArtifact(Base):
    """Prompt and response of a single generation call."""

    __tablename__ = "generation_artifacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    type: Mapped[str] = mapped_column(String(32), index=True)
    category: Mapped[str] = mapped_column(String(64), index=True)
    title: Mapped[str] = mapped_column(String(255))
    # Null when the call failed
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    prompt: Mapped[str] = mapped_column(Text)

    @validates("type")
    def validate_type(self, key: str, value: str) -> str:
        return ArtifactType(value).value

    @validates("category")
    def validate_category(self, key: str, value: str) -> str:
        return ArtifactCategory(value).value

    @validates("title")
    def validate_title(self, key: str, value: str) -> str:
        if not value or len(value) > 255:
            raise ValueError("title must be 1-255 characters")
        return value
