"""Project model."""

from enum import Enum
import uuid

from sqlalchemy import JSON, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ProjectStatus(str, Enum):
    """Workflow status. Only the state machine writes this column."""

    INITIAL = "Initial"
    ELICITATION = "Elicitation"
    TECH_STACK_INPUT = "Tech_Stack_Input"
    QUEUED = "Queued"
    COMPLETE = "Complete"
    ERROR = "Error"


class ProcessingMode(str, Enum):
    """How an uploaded BRD file is turned into text."""

    PARSE_ONLY = "parse_only"
    LLM_PARSED = "llm_parsed"
    LLM_RAW = "llm_raw"


def new_project_id() -> str:
    return uuid.uuid4().hex


class Project(Base):
    """Project model - the workflow's aggregate root."""

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_project_id)
    name: Mapped[str] = mapped_column(String(255))
    user_email: Mapped[str] = mapped_column(String(255))

    status: Mapped[str] = mapped_column(
        String(32), default=ProjectStatus.INITIAL.value, index=True
    )

    # Normalized requirements text, null until ingestion completes
    brd_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    processing_mode: Mapped[str] = mapped_column(
        String(32), default=ProcessingMode.PARSE_ONLY.value
    )
    generation_provider: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # question-id -> answer, ids from archplan.catalog
    elicitation_data: Mapped[dict] = mapped_column(JSON, default=dict)
    elicitation_catalog_version: Mapped[int | None] = mapped_column(Integer, nullable=True)

    tech_stack_config: Mapped[dict] = mapped_column(JSON, default=dict)

    # Set only while status is Complete; a plan belongs to at most one project
    plan_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("plans.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        unique=True,
    )
