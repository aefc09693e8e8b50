"""Project workflow state machine.

The only component allowed to write ``Project.status``. Every status write is
a conditional ``UPDATE ... WHERE status IN (expected)``; a zero row count means
another writer got there first and is reported as ``InvalidTransition``.

    Initial -> Elicitation -> Tech_Stack_Input -> Queued -> Complete | Error

Backward moves (Elicitation -> Initial, Tech_Stack_Input -> Elicitation) and
rewinds (Queued/Complete/Error -> Tech_Stack_Input | Elicitation) skip the
forward preconditions. Draft saves write step fields without touching status.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from archplan.catalog import CATALOG_VERSION
from archplan.config import Settings
from archplan.contracts.dto.project import (
    BrdDraft,
    ElicitationAnswers,
    ProjectCreate,
    TechStackConfig,
)
from archplan.errors import InvalidTransition, ProjectNotFound, TransitionValidationError
from archplan.models import Plan, Project, ProjectStatus
from archplan.queues import JobQueue

logger = structlog.get_logger()

S = ProjectStatus

TRANSITIONS: dict[ProjectStatus, frozenset[ProjectStatus]] = {
    S.INITIAL: frozenset({S.ELICITATION}),
    S.ELICITATION: frozenset({S.TECH_STACK_INPUT, S.INITIAL}),
    S.TECH_STACK_INPUT: frozenset({S.QUEUED, S.ELICITATION}),
    S.QUEUED: frozenset({S.COMPLETE, S.ERROR, S.TECH_STACK_INPUT, S.ELICITATION}),
    S.COMPLETE: frozenset({S.TECH_STACK_INPUT, S.ELICITATION}),
    S.ERROR: frozenset({S.TECH_STACK_INPUT, S.ELICITATION}),
}

REWIND_SOURCES = frozenset({S.QUEUED, S.COMPLETE, S.ERROR})
REWIND_TARGETS = frozenset({S.TECH_STACK_INPUT, S.ELICITATION})


def can_transition(current: str | ProjectStatus, target: str | ProjectStatus) -> bool:
    try:
        return ProjectStatus(target) in TRANSITIONS[ProjectStatus(current)]
    except ValueError:
        return False


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(err["msg"].removeprefix("Value error, ") for err in exc.errors())


def _validation_error(
    project_id: str, requested: ProjectStatus, exc: ValidationError
) -> TransitionValidationError:
    errors = {
        ".".join(str(part) for part in err["loc"]) or "input": err["msg"] for err in exc.errors()
    }
    return TransitionValidationError(
        project_id, requested.value, _validation_message(exc), errors=errors
    )


class ProjectStateMachine:
    """Public workflow operations over persisted projects.

    Args:
        session_maker: Async session factory
        job_queue: Receives a plan generation job when a project is queued
        settings: Supplies the deployment allow-list
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        job_queue: JobQueue,
        settings: Settings,
    ):
        self.session_maker = session_maker
        self.job_queue = job_queue
        self.settings = settings

    # Reads

    async def get_project(self, project_id: str) -> Project:
        async with self.session_maker() as session:
            project = await session.get(Project, project_id)
            if project is None:
                raise ProjectNotFound(project_id)
            return project

    async def get_plan(self, project_id: str) -> Plan | None:
        """Plan currently referenced by the project, if any."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(Plan).join(Project, Project.plan_id == Plan.id).where(Project.id == project_id)
            )
            return result.scalar_one_or_none()

    # Creation and drafts

    async def create_project(self, data: ProjectCreate) -> Project:
        async with self.session_maker() as session:
            project = Project(
                name=data.name,
                user_email=data.user_email,
                status=S.INITIAL.value,
                brd_content=data.brd_content,
                processing_mode=data.processing_mode.value,
                generation_provider=data.generation_provider,
                elicitation_data={},
                tech_stack_config={},
                elicitation_catalog_version=None,
                plan_id=None,
            )
            session.add(project)
            await session.commit()
            logger.info("project_created", project_id=project.id)
            return project

    async def save_brd_draft(self, project_id: str, draft: BrdDraft | Mapping[str, Any]) -> Project:
        """Write initial-step fields that the caller explicitly set. Any state."""
        if not isinstance(draft, BrdDraft):
            try:
                draft = BrdDraft.model_validate(dict(draft))
            except ValidationError as e:
                raise _validation_error(project_id, S.INITIAL, e) from e

        values: dict[str, Any] = {}
        for field in draft.model_fields_set:
            value = getattr(draft, field)
            if field == "processing_mode":
                if value is None:
                    continue
                value = value.value
            values[field] = value

        await self._write_fields(project_id, values)
        return await self.get_project(project_id)

    async def save_tech_stack_draft(
        self, project_id: str, config: TechStackConfig | Mapping[str, Any]
    ) -> Project:
        """Replace the stored tech stack config without validating it. Any state."""
        config = self._tech_stack(project_id, S.TECH_STACK_INPUT, config)
        await self._write_fields(project_id, {"tech_stack_config": config.to_storage()})
        return await self.get_project(project_id)

    # Forward transitions

    async def start_elicitation(
        self, project_id: str, draft: BrdDraft | Mapping[str, Any] | None = None
    ) -> Project:
        """Initial -> Elicitation. Requires non-empty ``brd_content``."""
        project = await self._require_state(project_id, S.ELICITATION, {S.INITIAL})
        if draft is not None:
            project = await self.save_brd_draft(project_id, draft)

        if not (project.brd_content or "").strip():
            raise TransitionValidationError(
                project_id,
                S.ELICITATION.value,
                "Please provide BRD content before continuing.",
                errors={"brd_content": "can't be blank"},
            )

        return await self._transition(project_id, {S.INITIAL}, S.ELICITATION)

    async def submit_elicitation(
        self, project_id: str, answers: ElicitationAnswers | Mapping[str, str]
    ) -> Project:
        """Elicitation -> Tech_Stack_Input, persisting the (possibly partial) answers."""
        data = self._answers(project_id, S.TECH_STACK_INPUT, answers)
        return await self._transition(
            project_id,
            {S.ELICITATION},
            S.TECH_STACK_INPUT,
            elicitation_data=data,
            elicitation_catalog_version=CATALOG_VERSION,
        )

    async def submit_tech_stack(
        self, project_id: str, config: TechStackConfig | Mapping[str, Any] | None = None
    ) -> Project:
        """Tech_Stack_Input -> Queued and enqueue plan generation.

        ``config`` replaces the stored config and is persisted even when
        validation fails. Without it, the stored draft is submitted.
        """
        project = await self._require_state(project_id, S.QUEUED, {S.TECH_STACK_INPUT})
        if config is not None:
            project = await self.save_tech_stack_draft(project_id, config)

        stack = self._tech_stack(project_id, S.QUEUED, project.tech_stack_config or {})
        self._validate_tech_stack(project_id, stack)

        project = await self._transition(project_id, {S.TECH_STACK_INPUT}, S.QUEUED)

        try:
            await self.job_queue.enqueue_plan_generation(project_id)
        except Exception as e:
            logger.error("plan_generation_enqueue_failed", project_id=project_id, error=str(e))
            await self._transition(project_id, {S.QUEUED}, S.TECH_STACK_INPUT)
            raise

        return project

    async def complete(self, project_id: str, content: str) -> tuple[Project, Plan]:
        """Queued -> Complete. Inserts the plan and flips status in one transaction."""
        async with self.session_maker() as session:
            plan = Plan(content=content)
            session.add(plan)
            await session.flush()
            await self._conditional_update(
                session, project_id, {S.QUEUED}, S.COMPLETE, plan_id=plan.id
            )
            await session.commit()

        logger.info("plan_persisted", project_id=project_id, plan_id=plan.id, chars=len(content))
        return await self.get_project(project_id), plan

    async def mark_error(self, project_id: str) -> Project:
        """Queued -> Error."""
        return await self._transition(project_id, {S.QUEUED}, S.ERROR, plan_id=None)

    # Backward transitions

    async def back_to_initial(
        self, project_id: str, answers: ElicitationAnswers | Mapping[str, str] | None = None
    ) -> Project:
        """Elicitation -> Initial, keeping any answers supplied so far."""
        values: dict[str, Any] = {}
        if answers is not None:
            values["elicitation_data"] = self._answers(project_id, S.INITIAL, answers)
            values["elicitation_catalog_version"] = CATALOG_VERSION
        return await self._transition(project_id, {S.ELICITATION}, S.INITIAL, **values)

    async def back_to_elicitation(
        self, project_id: str, config: TechStackConfig | Mapping[str, Any] | None = None
    ) -> Project:
        """Tech_Stack_Input -> Elicitation, keeping any tech stack draft supplied."""
        values: dict[str, Any] = {}
        if config is not None:
            values["tech_stack_config"] = self._tech_stack(
                project_id, S.ELICITATION, config
            ).to_storage()
        return await self._transition(project_id, {S.TECH_STACK_INPUT}, S.ELICITATION, **values)

    async def rewind(self, project_id: str, target: str | ProjectStatus) -> Project:
        """Queued/Complete/Error -> Tech_Stack_Input or Elicitation.

        Clears ``plan_id``; the old plan row is kept. A queued job that has not
        started yet sees the new status and cancels itself.
        """
        requested = getattr(target, "value", target)
        if requested not in {s.value for s in REWIND_TARGETS}:
            project = await self.get_project(project_id)
            raise InvalidTransition(project_id, project.status, requested)

        return await self._transition(
            project_id, REWIND_SOURCES, ProjectStatus(requested), plan_id=None
        )

    # Internals

    def _tech_stack(
        self,
        project_id: str,
        requested: ProjectStatus,
        config: TechStackConfig | Mapping[str, Any],
    ) -> TechStackConfig:
        if isinstance(config, TechStackConfig):
            return config
        try:
            return TechStackConfig.model_validate(dict(config))
        except ValidationError as e:
            raise _validation_error(project_id, requested, e) from e

    def _validate_tech_stack(self, project_id: str, stack: TechStackConfig) -> None:
        missing = stack.missing_fields()
        if missing:
            raise TransitionValidationError(
                project_id,
                S.QUEUED.value,
                f"Please complete the required fields: {', '.join(missing)}.",
                errors={name: "can't be blank" for name in missing},
            )

        allowed = self.settings.allowed_deployment_envs
        if stack.deployment_env not in allowed:
            message = f"Only {' or '.join(allowed)} deployment is currently supported."
            raise TransitionValidationError(
                project_id,
                S.QUEUED.value,
                message,
                errors={"deployment_env": message},
            )

    def _answers(
        self,
        project_id: str,
        requested: ProjectStatus,
        answers: ElicitationAnswers | Mapping[str, str],
    ) -> dict[str, str]:
        if isinstance(answers, ElicitationAnswers):
            return answers.ordered()
        try:
            return ElicitationAnswers.model_validate(dict(answers)).ordered()
        except ValidationError as e:
            raise _validation_error(project_id, requested, e) from e

    async def _require_state(
        self, project_id: str, target: ProjectStatus, expected: Iterable[ProjectStatus]
    ) -> Project:
        project = await self.get_project(project_id)
        if project.status not in {s.value for s in expected}:
            raise InvalidTransition(project_id, project.status, target.value)
        return project

    async def _write_fields(self, project_id: str, values: dict[str, Any]) -> None:
        if not values:
            await self.get_project(project_id)
            return
        async with self.session_maker() as session:
            result = await session.execute(
                update(Project)
                .where(Project.id == project_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ProjectNotFound(project_id)
            await session.commit()
        logger.debug("project_draft_saved", project_id=project_id, fields=sorted(values))

    async def _conditional_update(
        self,
        session: AsyncSession,
        project_id: str,
        expected: Iterable[ProjectStatus],
        target: ProjectStatus,
        **values: Any,
    ) -> None:
        expected_values = [s.value for s in expected]
        result = await session.execute(
            update(Project)
            .where(Project.id == project_id, Project.status.in_(expected_values))
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await session.scalar(select(Project.status).where(Project.id == project_id))
            if current is None:
                raise ProjectNotFound(project_id)
            raise InvalidTransition(project_id, current, target.value)

    async def _transition(
        self,
        project_id: str,
        expected: Iterable[ProjectStatus],
        target: ProjectStatus,
        **values: Any,
    ) -> Project:
        async with self.session_maker() as session:
            await self._conditional_update(session, project_id, expected, target, **values)
            await session.commit()

        logger.info("project_transitioned", project_id=project_id, to_status=target.value)
        return await self.get_project(project_id)
