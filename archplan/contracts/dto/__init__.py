from .project import (
    BrdDraft,
    ElicitationAnswers,
    PlanDTO,
    ProjectCreate,
    ProjectDTO,
    TechStackConfig,
)

__all__ = [
    "BrdDraft",
    "ElicitationAnswers",
    "PlanDTO",
    "ProjectCreate",
    "ProjectDTO",
    "TechStackConfig",
]
