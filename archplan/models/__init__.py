"""Database models package."""

from .artifact import ArtifactCategory, ArtifactType, GenerationArtifact
from .base import Base
from .plan import MIN_PLAN_LENGTH, Plan, PlanTooShortError
from .project import ProcessingMode, Project, ProjectStatus
from .upload import Upload, UploadVersion

__all__ = [
    "ArtifactCategory",
    "ArtifactType",
    "Base",
    "GenerationArtifact",
    "MIN_PLAN_LENGTH",
    "Plan",
    "PlanTooShortError",
    "ProcessingMode",
    "Project",
    "ProjectStatus",
    "Upload",
    "UploadVersion",
]
