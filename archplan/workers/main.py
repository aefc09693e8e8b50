"""Plan worker service: hosts the job consumer and exposes ``/health``.

Run: archplan-worker (or uvicorn archplan.workers.main:app)
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from redis.asyncio import Redis
import structlog
import uvicorn

from archplan.artifacts import ArtifactRecorder
from archplan.config import Settings, get_settings
from archplan.database import create_engine, create_session_maker
from archplan.llm.client import GenerationClient
from archplan.logging_config import setup_logging
from archplan.projects.state_machine import ProjectStateMachine
from archplan.queues import RedisJobQueue, get_pending_job_count

from .consumer import PlanGenerationConsumer
from .plan_generation import PlanGenerationWorker

logger = structlog.get_logger()


def build_consumer(redis: Redis, session_maker, settings: Settings) -> PlanGenerationConsumer:
    """Wire the worker's collaborators from settings."""
    state_machine = ProjectStateMachine(
        session_maker,
        RedisJobQueue(redis, max_attempts=settings.plan_job_max_attempts),
        settings,
    )
    generation_client = GenerationClient(settings, recorder=ArtifactRecorder(session_maker))
    worker = PlanGenerationWorker(state_machine, generation_client, settings)
    return PlanGenerationConsumer(redis, worker, settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings = get_settings()
    setup_logging(
        service_name=settings.service_name,
        log_format=settings.log_format,
        log_level=settings.log_level,
    )

    redis = Redis.from_url(settings.redis_url, decode_responses=True)
    engine = create_engine(settings, pool_pre_ping=True)
    consumer = build_consumer(redis, create_session_maker(engine), settings)
    consumer_task = asyncio.create_task(consumer.run())

    app.state.redis = redis
    app.state.consumer = consumer

    yield

    # Shutdown
    logger.info("shutdown_initiated")
    consumer_task.cancel()
    await asyncio.gather(consumer_task, return_exceptions=True)

    await redis.aclose()
    await engine.dispose()
    logger.info("shutdown_complete")


app = FastAPI(title="Architecture Planner Worker", lifespan=lifespan)


@app.get("/health")
async def health_check(request: Request):
    consumer: PlanGenerationConsumer = request.app.state.consumer
    return {
        "status": "ok",
        "pending_jobs": await get_pending_job_count(request.app.state.redis),
        "in_flight": consumer.in_flight,
    }


def main():
    """Entry point for the ``archplan-worker`` script."""
    uvicorn.run("archplan.workers.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
