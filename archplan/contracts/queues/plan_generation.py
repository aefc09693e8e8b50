from pydantic import Field

from archplan.contracts.base import BaseMessage, BaseResult


class PlanGenerationMessage(BaseMessage):
    """Generate the architectural plan for a Queued project.

    Stream: plan_generation:queue
    Consumers: plan worker
    """

    project_id: str
    # 1-based; the consumer bumps it when it schedules a retry
    attempt: int = Field(default=1, ge=1)
    max_attempts: int = Field(default=3, ge=1)

    @property
    def is_final_attempt(self) -> bool:
        return self.attempt >= self.max_attempts


class PlanGenerationResult(BaseResult):
    """Outcome of one plan generation job."""

    project_id: str
    plan_id: int | None = None
    fallback_used: bool = False
