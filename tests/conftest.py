"""Shared fixtures: in-memory database, settings and generation stubs."""

from collections.abc import AsyncGenerator

from fakeredis import aioredis
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from archplan.config import Settings
from archplan.contracts.dto import ProjectCreate
from archplan.database import create_engine, create_session_maker, init_db
from archplan.llm.client import GenerationResult
from archplan.projects.state_machine import ProjectStateMachine

GENERATED_PLAN = (
    "# Architectural Plan\n\n"
    "## Executive Summary\n"
    "A Go service backed by PostgreSQL and deployed on Fly.io, sized for 10k users "
    "with Stripe handling payments."
)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url="redis://localhost:6379/0",
        openai_api_key=None,
        open_router_key=None,
        uploads_dir=str(tmp_path / "uploads"),
        retry_backoff_base_seconds=10,
        retry_backoff_max_seconds=60,
        llm_timeout_seconds=5,
    )


@pytest.fixture
async def engine(settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_engine(
        settings,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(engine)


@pytest.fixture
async def redis_client():
    redis = aioredis.FakeRedis(decode_responses=True)
    yield redis
    await redis.aclose()


class RecordingJobQueue:
    """Job queue double that records enqueued project ids."""

    def __init__(self):
        self.enqueued: list[str] = []
        self.fail_with: Exception | None = None

    async def enqueue_plan_generation(self, project_id: str) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.enqueued.append(project_id)
        return f"{len(self.enqueued)}-0"


class StubGenerationClient:
    """Generation client double returning a fixed result, or raising."""

    def __init__(self, result: GenerationResult | None = None, error: Exception | None = None):
        self.result = result or GenerationResult(text=GENERATED_PLAN, model="openai:gpt-4o-mini")
        self.error = error
        self.calls: list[dict] = []

    async def generate_plan(self, context, *, provider=None, artifact=None) -> GenerationResult:
        self.calls.append({"context": context, "provider": provider, "artifact": artifact})
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def job_queue() -> RecordingJobQueue:
    return RecordingJobQueue()


@pytest.fixture
def state_machine(session_maker, job_queue, settings) -> ProjectStateMachine:
    return ProjectStateMachine(session_maker, job_queue, settings)


@pytest.fixture
def make_project(state_machine):
    async def _make(**overrides):
        data = {
            "name": "Shop",
            "user_email": "owner@example.com",
            "brd_content": "E-commerce platform, 10k users, Stripe payments",
        }
        data.update(overrides)
        return await state_machine.create_project(ProjectCreate(**data))

    return _make


@pytest.fixture
def queue_project(state_machine, make_project):
    """Create a project and drive it to Queued with a Go/PostgreSQL/Fly.io stack."""

    async def _queue(**overrides):
        project = await make_project(**overrides)
        await state_machine.start_elicitation(project.id)
        await state_machine.submit_elicitation(
            project.id,
            {"expected_users": "10,000", "integration_requirements": "Stripe"},
        )
        return await state_machine.submit_tech_stack(
            project.id,
            {
                "primary_language": "Go",
                "database_system": "PostgreSQL",
                "deployment_env": "Fly.io",
            },
        )

    return _queue
