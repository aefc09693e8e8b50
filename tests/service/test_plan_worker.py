"""Service tests for PlanGenerationWorker."""

import pytest
from sqlalchemy.exc import OperationalError

from archplan.contracts.queues import PlanGenerationMessage
from archplan.llm.client import GenerationResult
from archplan.models import ArtifactCategory, ProjectStatus
from archplan.workers.plan_generation import PlanGenerationWorker

from tests.conftest import GENERATED_PLAN, StubGenerationClient

S = ProjectStatus


def make_worker(state_machine, settings, client) -> PlanGenerationWorker:
    return PlanGenerationWorker(state_machine, client, settings)


@pytest.mark.asyncio
async def test_generated_plan_is_persisted(state_machine, settings, queue_project):
    project = await queue_project(generation_provider="anthropic")
    client = StubGenerationClient()
    worker = make_worker(state_machine, settings, client)

    result = await worker.perform(PlanGenerationMessage(project_id=project.id))

    assert result.status == "success"
    assert not result.fallback_used
    project = await state_machine.get_project(project.id)
    assert project.status == S.COMPLETE.value
    assert project.plan_id == result.plan_id
    assert (await state_machine.get_plan(project.id)).content == GENERATED_PLAN

    call = client.calls[0]
    assert call["provider"] == "anthropic"
    assert "E-commerce platform, 10k users, Stripe payments" in call["context"]
    assert call["artifact"].category == ArtifactCategory.ARCHITECTURAL_DOCUMENT


@pytest.mark.asyncio
async def test_erroring_client_falls_back_and_completes(state_machine, settings, queue_project):
    project = await queue_project()
    client = StubGenerationClient(GenerationResult(error="provider unavailable"))
    worker = make_worker(state_machine, settings, client)

    result = await worker.perform(PlanGenerationMessage(project_id=project.id))

    assert result.status == "success"
    assert result.fallback_used
    project = await state_machine.get_project(project.id)
    assert project.status == S.COMPLETE.value
    content = (await state_machine.get_plan(project.id)).content
    for value in ("Go", "PostgreSQL", "Fly.io"):
        assert value in content


@pytest.mark.asyncio
async def test_short_output_falls_back(state_machine, settings, queue_project):
    project = await queue_project()
    client = StubGenerationClient(GenerationResult(text="Too short."))
    worker = make_worker(state_machine, settings, client)

    result = await worker.perform(PlanGenerationMessage(project_id=project.id))

    assert result.fallback_used
    assert "Fly.io" in (await state_machine.get_plan(project.id)).content


@pytest.mark.asyncio
async def test_not_queued_is_a_noop(state_machine, settings, make_project):
    project = await make_project()
    client = StubGenerationClient()
    worker = make_worker(state_machine, settings, client)

    result = await worker.perform(PlanGenerationMessage(project_id=project.id))

    assert result.status == "cancelled"
    assert client.calls == []
    project = await state_machine.get_project(project.id)
    assert project.status == S.INITIAL.value
    assert project.plan_id is None


@pytest.mark.asyncio
async def test_missing_project_is_cancelled(state_machine, settings):
    worker = make_worker(state_machine, settings, StubGenerationClient())

    result = await worker.perform(PlanGenerationMessage(project_id="missing"))

    assert result.status == "cancelled"


@pytest.mark.asyncio
async def test_rewound_project_is_cancelled(state_machine, settings, queue_project):
    project = await queue_project()
    await state_machine.rewind(project.id, S.TECH_STACK_INPUT)
    client = StubGenerationClient()

    result = await make_worker(state_machine, settings, client).perform(
        PlanGenerationMessage(project_id=project.id)
    )

    assert result.status == "cancelled"
    assert client.calls == []


@pytest.mark.asyncio
async def test_exception_before_final_attempt_keeps_queued(state_machine, settings, queue_project):
    project = await queue_project()
    worker = make_worker(state_machine, settings, StubGenerationClient(error=RuntimeError("boom")))

    with pytest.raises(RuntimeError):
        await worker.perform(PlanGenerationMessage(project_id=project.id, attempt=1, max_attempts=3))

    assert (await state_machine.get_project(project.id)).status == S.QUEUED.value


@pytest.mark.asyncio
async def test_exception_on_final_attempt_marks_error(state_machine, settings, queue_project):
    project = await queue_project()
    worker = make_worker(state_machine, settings, StubGenerationClient(error=RuntimeError("boom")))

    with pytest.raises(RuntimeError):
        await worker.perform(PlanGenerationMessage(project_id=project.id, attempt=3, max_attempts=3))

    project = await state_machine.get_project(project.id)
    assert project.status == S.ERROR.value
    assert project.plan_id is None


@pytest.mark.asyncio
async def test_duplicate_run_is_a_noop(state_machine, settings, queue_project):
    project = await queue_project()
    worker = make_worker(state_machine, settings, StubGenerationClient())
    message = PlanGenerationMessage(project_id=project.id)

    first = await worker.perform(message)
    second = await worker.perform(message)

    assert first.status == "success"
    assert second.status == "cancelled"
    assert (await state_machine.get_project(project.id)).plan_id == first.plan_id


@pytest.mark.asyncio
async def test_lookup_failure_on_final_attempt_marks_error(
    state_machine, settings, queue_project, monkeypatch
):
    project = await queue_project()
    get_project = state_machine.get_project
    calls = []

    async def flaky_get_project(project_id):
        calls.append(project_id)
        if len(calls) == 1:
            raise OperationalError("SELECT projects", {}, Exception("connection reset"))
        return await get_project(project_id)

    monkeypatch.setattr(state_machine, "get_project", flaky_get_project)
    client = StubGenerationClient()
    worker = make_worker(state_machine, settings, client)

    with pytest.raises(OperationalError):
        await worker.perform(PlanGenerationMessage(project_id=project.id, attempt=3, max_attempts=3))

    assert client.calls == []
    assert (await get_project(project.id)).status == S.ERROR.value


@pytest.mark.asyncio
async def test_mark_failed_skips_project_that_moved_on(state_machine, settings, make_project):
    project = await make_project()

    await make_worker(state_machine, settings, StubGenerationClient()).mark_failed(project.id)

    assert (await state_machine.get_project(project.id)).status == S.INITIAL.value
