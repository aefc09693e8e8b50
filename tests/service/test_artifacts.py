"""Service tests for ArtifactRecorder."""

import pytest

from archplan.artifacts import ArtifactRecorder, ArtifactSpec
from archplan.models import ArtifactCategory


@pytest.fixture
def recorder(session_maker) -> ArtifactRecorder:
    return ArtifactRecorder(session_maker)


@pytest.mark.asyncio
async def test_record_and_list(recorder, make_project):
    project = await make_project()
    spec = ArtifactSpec(
        project_id=project.id,
        title="Architectural plan: Shop",
        category=ArtifactCategory.ARCHITECTURAL_DOCUMENT,
    )

    first = await recorder.record(spec, prompt="system\n\nuser", content="# Plan")
    second = await recorder.record(spec, prompt="system\n\nuser", content=None)

    artifacts = await recorder.list_for_project(project.id)
    assert [a.id for a in artifacts] == [first, second]
    assert artifacts[0].category == "Architectural Document"
    assert artifacts[0].type == "doc"
    assert artifacts[0].content == "# Plan"
    assert artifacts[1].content is None


@pytest.mark.asyncio
async def test_long_titles_are_truncated(recorder, make_project):
    project = await make_project()

    await recorder.record(ArtifactSpec(project_id=project.id, title="t" * 400), "p", "c")

    (artifact,) = await recorder.list_for_project(project.id)
    assert artifact.title == "t" * 255
    assert artifact.category == "Other"


@pytest.mark.asyncio
async def test_failures_are_swallowed(recorder, make_project):
    project = await make_project()

    # Empty titles are rejected by the model
    assert await recorder.record(ArtifactSpec(project_id=project.id, title=""), "p", "c") is None
    assert await recorder.list_for_project(project.id) == []


@pytest.mark.asyncio
async def test_unavailable_database_is_swallowed(make_project):
    def broken_session_maker():
        raise ConnectionError("database unavailable")

    recorder = ArtifactRecorder(broken_session_maker)

    assert await recorder.record(ArtifactSpec(project_id="p1", title="x"), "p", "c") is None
