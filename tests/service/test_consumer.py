"""Service tests for the plan generation consumer using fakeredis."""

import asyncio
import json
import time

import pytest

from archplan.contracts.queues import PlanGenerationMessage, PlanGenerationResult
from archplan.models import ProjectStatus
from archplan.queues import (
    PLAN_GENERATION_DEAD,
    PLAN_GENERATION_GROUP,
    PLAN_GENERATION_QUEUE,
    PLAN_GENERATION_RETRY,
    RedisJobQueue,
    ensure_consumer_group,
    get_pending_job_count,
    promote_due_retries,
)
from archplan.workers.consumer import PlanGenerationConsumer
from archplan.workers.plan_generation import PlanGenerationWorker

from tests.conftest import StubGenerationClient

CONSUMER = "test-consumer"


async def read_one(redis):
    resp = await redis.xreadgroup(
        groupname=PLAN_GENERATION_GROUP,
        consumername=CONSUMER,
        streams={PLAN_GENERATION_QUEUE: ">"},
        count=1,
    )
    assert resp, "Should have read a queued job"
    _stream, messages = resp[0]
    return messages[0]


@pytest.fixture
def make_consumer(redis_client, state_machine, settings):
    def _make(client):
        worker = PlanGenerationWorker(state_machine, client, settings)
        return PlanGenerationConsumer(redis_client, worker, settings, consumer_name=CONSUMER)

    return _make


@pytest.mark.asyncio
async def test_job_completes_and_publishes_result(
    redis_client, make_consumer, queue_project, state_machine
):
    project = await queue_project()
    await ensure_consumer_group(redis_client)
    message = PlanGenerationMessage(project_id=project.id, callback_stream="plan:results")
    await redis_client.xadd(PLAN_GENERATION_QUEUE, {"data": message.model_dump_json()})

    message_id, data = await read_one(redis_client)
    result = await make_consumer(StubGenerationClient()).process_message(message_id, data)

    assert result.status == "success"
    assert (await state_machine.get_project(project.id)).status == ProjectStatus.COMPLETE.value
    assert await get_pending_job_count(redis_client) == 0

    published = await redis_client.xrange("plan:results")
    assert len(published) == 1
    payload = PlanGenerationResult.model_validate_json(published[0][1]["data"])
    assert payload.project_id == project.id
    assert payload.plan_id == result.plan_id


@pytest.mark.asyncio
async def test_failures_retry_then_error_and_dead_letter(
    redis_client, make_consumer, queue_project, state_machine, settings
):
    project = await queue_project()
    await ensure_consumer_group(redis_client)
    consumer = make_consumer(StubGenerationClient(error=RuntimeError("db exploded")))
    message = PlanGenerationMessage(project_id=project.id, max_attempts=3)
    await redis_client.xadd(PLAN_GENERATION_QUEUE, {"data": message.model_dump_json()})

    for attempt in (1, 2):
        message_id, data = await read_one(redis_client)
        assert json.loads(data["data"])["attempt"] == attempt

        assert await consumer.process_message(message_id, data) is None
        assert (await state_machine.get_project(project.id)).status == ProjectStatus.QUEUED.value

        scheduled = await redis_client.zrange(PLAN_GENERATION_RETRY, 0, -1, withscores=True)
        assert len(scheduled) == 1
        # Far enough in the future to cover any backoff
        assert await promote_due_retries(redis_client, now=scheduled[0][1] + 1) == 1

    message_id, data = await read_one(redis_client)
    result = await consumer.process_message(message_id, data)

    assert result.status == "failed"
    assert "db exploded" in result.error
    assert (await state_machine.get_project(project.id)).status == ProjectStatus.ERROR.value
    dead = await redis_client.xrange(PLAN_GENERATION_DEAD)
    assert len(dead) == 1
    assert json.loads(dead[0][1]["data"])["attempt"] == 3
    assert await redis_client.zcard(PLAN_GENERATION_RETRY) == 0


@pytest.mark.asyncio
async def test_retry_backoff_is_exponential(redis_client, make_consumer, settings):
    consumer = make_consumer(StubGenerationClient(error=RuntimeError("boom")))
    message = PlanGenerationMessage(project_id="p1", attempt=2, max_attempts=5)

    await consumer._handle_failure(message, RuntimeError("boom"))

    [(raw, due)] = await redis_client.zrange(PLAN_GENERATION_RETRY, 0, -1, withscores=True)
    assert PlanGenerationMessage.model_validate_json(raw).attempt == 3
    # base 10s * 2^(2-1)
    assert 18 <= due - time.time() <= 21


@pytest.mark.asyncio
async def test_retries_not_due_stay_parked(redis_client):
    message = PlanGenerationMessage(project_id="p1")
    await redis_client.zadd(PLAN_GENERATION_RETRY, {message.model_dump_json(): 2000.0})

    assert await promote_due_retries(redis_client, now=1000.0) == 0
    assert await redis_client.zcard(PLAN_GENERATION_RETRY) == 1


@pytest.mark.asyncio
async def test_malformed_message_is_acked(redis_client, make_consumer):
    await ensure_consumer_group(redis_client)
    await redis_client.xadd(PLAN_GENERATION_QUEUE, {"data": '{"project_id": 5'})

    message_id, data = await read_one(redis_client)
    result = await make_consumer(StubGenerationClient()).process_message(message_id, data)

    assert result is None
    assert await get_pending_job_count(redis_client) == 0


@pytest.mark.asyncio
async def test_poll_dispatches_delivered_jobs(
    redis_client, make_consumer, queue_project, state_machine
):
    project = await queue_project()
    consumer = make_consumer(StubGenerationClient())
    consumer.block_ms = 10
    await ensure_consumer_group(redis_client)
    queue = RedisJobQueue(redis_client)
    await queue.enqueue_plan_generation(project.id)

    assert await consumer.poll() == 1
    await asyncio.gather(*list(consumer._tasks))

    assert (await state_machine.get_project(project.id)).status == ProjectStatus.COMPLETE.value
    assert await get_pending_job_count(redis_client) == 0


@pytest.mark.asyncio
async def test_redis_job_queue_publishes_message(redis_client):
    queue = RedisJobQueue(redis_client, max_attempts=4, callback_stream="cb")

    await queue.enqueue_plan_generation("p1")

    entries = await redis_client.xrange(PLAN_GENERATION_QUEUE)
    message = PlanGenerationMessage.model_validate_json(entries[0][1]["data"])
    assert message.project_id == "p1"
    assert message.attempt == 1
    assert message.max_attempts == 4
    assert message.callback_stream == "cb"


async def abandon_next_job(redis, consumer_name="crashed-worker"):
    """Deliver the next queued job to a consumer that never acknowledges it."""
    resp = await redis.xreadgroup(
        groupname=PLAN_GENERATION_GROUP,
        consumername=consumer_name,
        streams={PLAN_GENERATION_QUEUE: ">"},
        count=1,
    )
    assert resp, "Should have read a queued job"


@pytest.mark.asyncio
async def test_abandoned_job_is_finished_by_another_consumer(
    redis_client, state_machine, settings, queue_project
):
    project = await queue_project()
    await ensure_consumer_group(redis_client)
    await RedisJobQueue(redis_client).enqueue_plan_generation(project.id)
    await abandon_next_job(redis_client)

    worker = PlanGenerationWorker(state_machine, StubGenerationClient(), settings)
    consumer = PlanGenerationConsumer(
        redis_client, worker, settings, consumer_name="replacement", block_ms=10, claim_idle_ms=0
    )
    assert await consumer.poll() == 1
    await asyncio.gather(*list(consumer._tasks))

    assert (await state_machine.get_project(project.id)).status == ProjectStatus.COMPLETE.value
    assert await get_pending_job_count(redis_client) == 0


@pytest.mark.asyncio
async def test_recently_delivered_job_is_not_reclaimed(
    redis_client, make_consumer, queue_project, state_machine
):
    project = await queue_project()
    await ensure_consumer_group(redis_client)
    await RedisJobQueue(redis_client).enqueue_plan_generation(project.id)
    await abandon_next_job(redis_client)

    consumer = make_consumer(StubGenerationClient())
    consumer.block_ms = 10

    assert await consumer.poll() == 0
    assert (await state_machine.get_project(project.id)).status == ProjectStatus.QUEUED.value
    assert await get_pending_job_count(redis_client) == 1


@pytest.mark.asyncio
async def test_job_over_delivery_limit_is_dead_lettered(
    redis_client, state_machine, settings, queue_project
):
    settings.plan_job_max_deliveries = 1
    project = await queue_project()
    await ensure_consumer_group(redis_client)
    await RedisJobQueue(redis_client).enqueue_plan_generation(project.id)
    await abandon_next_job(redis_client)

    client = StubGenerationClient()
    worker = PlanGenerationWorker(state_machine, client, settings)
    consumer = PlanGenerationConsumer(
        redis_client, worker, settings, consumer_name="replacement", block_ms=10, claim_idle_ms=0
    )
    assert await consumer.poll() == 1
    await asyncio.gather(*list(consumer._tasks))

    assert client.calls == []
    assert (await state_machine.get_project(project.id)).status == ProjectStatus.ERROR.value
    dead = await redis_client.xrange(PLAN_GENERATION_DEAD)
    assert len(dead) == 1
    assert "Delivered 2 times" in dead[0][1]["error"]
    assert await get_pending_job_count(redis_client) == 0


@pytest.mark.asyncio
async def test_failed_promotion_keeps_retry_parked(redis_client, monkeypatch):
    await ensure_consumer_group(redis_client)
    message = PlanGenerationMessage(project_id="p1", attempt=2)
    await redis_client.zadd(PLAN_GENERATION_RETRY, {message.model_dump_json(): 1000.0})

    class BrokenPipeline:
        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc_info):
            return False

        def xadd(self, *args, **kwargs):
            return self

        def zrem(self, *args, **kwargs):
            return self

        async def execute(self):
            raise ConnectionError("connection lost")

    with monkeypatch.context() as m:
        m.setattr(redis_client, "pipeline", lambda transaction=True: BrokenPipeline())
        with pytest.raises(ConnectionError):
            await promote_due_retries(redis_client, now=2000.0)

    assert await redis_client.zcard(PLAN_GENERATION_RETRY) == 1
    assert await redis_client.xlen(PLAN_GENERATION_QUEUE) == 0

    assert await promote_due_retries(redis_client, now=2000.0) == 1
    assert await redis_client.zcard(PLAN_GENERATION_RETRY) == 0
    entries = await redis_client.xrange(PLAN_GENERATION_QUEUE)
    assert PlanGenerationMessage.model_validate_json(entries[0][1]["data"]).attempt == 2
