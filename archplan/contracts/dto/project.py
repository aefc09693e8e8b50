from datetime import datetime
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, RootModel, field_validator, model_validator

from archplan.catalog import ELICITATION_QUESTIONS, QUESTIONS_BY_ID
from archplan.models.project import ProcessingMode, ProjectStatus


class TechStackConfig(BaseModel):
    """The four-field technology record driving plan generation."""

    model_config = ConfigDict(extra="ignore")

    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = (
        "primary_language",
        "database_system",
        "deployment_env",
    )

    primary_language: str | None = None
    web_framework: str | None = None
    database_system: str | None = None
    deployment_env: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    def missing_fields(self) -> list[str]:
        return [name for name in self.REQUIRED_FIELDS if not getattr(self, name)]

    def to_storage(self) -> dict[str, str]:
        return self.model_dump(exclude_none=True)


class ElicitationAnswers(RootModel[dict[str, str]]):
    """Answers keyed by catalog question id. Unknown ids are rejected."""

    @model_validator(mode="after")
    def known_questions_only(self):
        unknown = sorted(set(self.root) - set(QUESTIONS_BY_ID))
        if unknown:
            raise ValueError(f"Unknown elicitation question ids: {', '.join(unknown)}")
        return self

    def ordered(self) -> dict[str, str]:
        """Answers in catalog order, whitespace-stripped."""
        return {
            q.id: self.root[q.id].strip() for q in ELICITATION_QUESTIONS if q.id in self.root
        }


class BrdDraft(BaseModel):
    """In-progress initial-step input. Only explicitly set fields are written."""

    brd_content: str | None = None
    processing_mode: ProcessingMode | None = None
    generation_provider: str | None = None


class ProjectCreate(BaseModel):
    name: str
    user_email: str
    brd_content: str | None = None
    processing_mode: ProcessingMode = ProcessingMode.PARSE_ONLY
    generation_provider: str | None = None

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("user_email")
    @classmethod
    def email_format(cls, v: str) -> str:
        v = v.strip()
        local, sep, domain = v.partition("@")
        if not sep or not local or not domain or any(c.isspace() for c in v):
            raise ValueError("must be a valid email")
        return v


class ProjectDTO(BaseModel):
    """Project response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    user_email: str
    status: ProjectStatus
    brd_content: str | None = None
    processing_mode: ProcessingMode
    generation_provider: str | None = None
    elicitation_data: dict[str, str] = {}
    elicitation_catalog_version: int | None = None
    tech_stack_config: dict[str, str] = {}
    plan_id: int | None = None


class PlanDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    content: str
    generated_at: datetime
