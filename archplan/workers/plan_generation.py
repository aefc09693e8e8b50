"""Plan generation worker: the sole consumer of ``Queued`` projects.

A job whose project is missing or no longer ``Queued`` finishes as cancelled.
Soft generation failures (provider error, too-short output) are absorbed by the
fallback plan. Unexpected exceptions propagate so the consumer's retry
accounting applies; on the final attempt the project is moved to ``Error``
first.
"""

import time

import structlog

from archplan.artifacts import ArtifactSpec
from archplan.config import Settings
from archplan.contracts.queues.plan_generation import (
    PlanGenerationMessage,
    PlanGenerationResult,
)
from archplan.errors import InvalidTransition, ProjectNotFound
from archplan.llm.client import GenerationClient
from archplan.models import MIN_PLAN_LENGTH, ArtifactCategory, ProjectStatus
from archplan.projects.state_machine import ProjectStateMachine

from .plan_context import build_fallback_plan, build_generation_context

logger = structlog.get_logger(__name__)


class PlanGenerationWorker:
    def __init__(
        self,
        state_machine: ProjectStateMachine,
        generation_client: GenerationClient,
        settings: Settings,
    ):
        self.state_machine = state_machine
        self.generation_client = generation_client
        self.settings = settings

    async def perform(self, message: PlanGenerationMessage) -> PlanGenerationResult:
        started = time.monotonic()
        project_id = message.project_id
        log = logger.bind(project_id=project_id, attempt=message.attempt)

        try:
            project = await self.state_machine.get_project(project_id)
            if project.status != ProjectStatus.QUEUED.value:
                log.warning(
                    "plan_generation_cancelled", reason="not_queued", status=project.status
                )
                return self._result(
                    message, "cancelled", started, error=f"Project is {project.status}, not Queued"
                )

            log.info("plan_generation_started", provider=project.generation_provider)

            result = await self.generation_client.generate_plan(
                build_generation_context(project),
                provider=project.generation_provider,
                artifact=ArtifactSpec(
                    project_id=project_id,
                    title=f"Architectural plan: {project.name}",
                    category=ArtifactCategory.ARCHITECTURAL_DOCUMENT,
                ),
            )

            fallback_used = not (result.ok and len(result.text.strip()) >= MIN_PLAN_LENGTH)
            if fallback_used:
                log.warning(
                    "plan_generation_fallback",
                    reason=result.error or "content_too_short",
                )
                content = build_fallback_plan(project)
            else:
                content = result.text

            _, plan = await self.state_machine.complete(project_id, content)
        except ProjectNotFound:
            log.warning("plan_generation_cancelled", reason="project_not_found")
            return self._result(message, "cancelled", started, error="Project not found")
        except InvalidTransition as e:
            # Rewound or completed by a duplicate run while generating
            log.warning("plan_generation_cancelled", reason="status_changed", status=e.current)
            return self._result(message, "cancelled", started, error=str(e))
        except Exception as e:
            log.error(
                "plan_generation_failed",
                error=str(e),
                error_type=type(e).__name__,
                final_attempt=message.is_final_attempt,
                exc_info=True,
            )
            if message.is_final_attempt:
                await self.mark_failed(project_id)
            raise

        log.info("plan_generation_completed", plan_id=plan.id, fallback_used=fallback_used)
        return self._result(
            message, "success", started, plan_id=plan.id, fallback_used=fallback_used
        )

    async def mark_failed(self, project_id: str) -> None:
        """Move the project to ``Error``; a project already moved on is left alone."""
        log = logger.bind(project_id=project_id)
        try:
            await self.state_machine.mark_error(project_id)
        except (InvalidTransition, ProjectNotFound) as e:
            log.warning("plan_generation_mark_error_skipped", reason=str(e))

    @staticmethod
    def _result(
        message: PlanGenerationMessage,
        status: str,
        started: float,
        **fields,
    ) -> PlanGenerationResult:
        return PlanGenerationResult(
            request_id=message.request_id,
            project_id=message.project_id,
            status=status,
            duration_ms=int((time.monotonic() - started) * 1000),
            **fields,
        )
