"""Redis Streams job queue for plan generation.

Jobs are ``PlanGenerationMessage`` JSON documents stored under the ``data``
field of a stream entry. Retries are parked in a sorted set scored by their
due time and promoted back onto the stream by the consumer. Jobs that exhaust
their attempts are moved to the dead-letter stream.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Protocol

import structlog

from archplan.contracts.queues.plan_generation import PlanGenerationMessage

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger(__name__)

PLAN_GENERATION_QUEUE = "plan_generation:queue"
PLAN_GENERATION_RETRY = "plan_generation:retry"
PLAN_GENERATION_DEAD = "plan_generation:dead"

PLAN_GENERATION_GROUP = "plan-generation-workers"

# Stream length cap; the queue is trimmed approximately on every add
QUEUE_MAXLEN = 10_000


async def ensure_consumer_group(
    redis: Redis,
    stream: str = PLAN_GENERATION_QUEUE,
    group: str = PLAN_GENERATION_GROUP,
) -> None:
    """Create the consumer group (and stream) if it does not exist.

    Should be called on worker startup.
    """
    try:
        await redis.xgroup_create(stream, group, id="0", mkstream=True)
        logger.info("consumer_group_created", queue=stream, group=group)
    except Exception as e:
        if "BUSYGROUP" in str(e):
            logger.debug("consumer_group_exists", queue=stream, group=group)
        else:
            logger.error("consumer_group_creation_failed", queue=stream, error=str(e))
            raise


async def get_pending_job_count(
    redis: Redis,
    queue: str = PLAN_GENERATION_QUEUE,
    group: str = PLAN_GENERATION_GROUP,
) -> int:
    """Number of delivered but unacknowledged jobs in ``queue``."""
    try:
        info = await redis.xpending(queue, group)
        return info.get("pending", 0) if isinstance(info, dict) else 0
    except Exception:
        return 0


def retry_delay(attempt: int, base_seconds: float, max_seconds: float) -> float:
    """Backoff before re-running a job whose ``attempt``-th run failed."""
    return min(base_seconds * (2 ** (attempt - 1)), max_seconds)


async def publish(redis: Redis, message: PlanGenerationMessage) -> str:
    message_id = await redis.xadd(
        PLAN_GENERATION_QUEUE,
        {"data": message.model_dump_json()},
        maxlen=QUEUE_MAXLEN,
        approximate=True,
    )
    logger.info(
        "plan_generation_enqueued",
        project_id=message.project_id,
        attempt=message.attempt,
        message_id=message_id,
    )
    return message_id


async def schedule_retry(
    redis: Redis,
    message: PlanGenerationMessage,
    delay_seconds: float,
    now: float | None = None,
) -> float:
    """Park ``message`` until ``now + delay_seconds``. Returns the due time."""
    due = (time.time() if now is None else now) + delay_seconds
    await redis.zadd(PLAN_GENERATION_RETRY, {message.model_dump_json(): due})
    logger.info(
        "plan_generation_retry_scheduled",
        project_id=message.project_id,
        attempt=message.attempt,
        delay_seconds=delay_seconds,
    )
    return due


async def promote_due_retries(redis: Redis, now: float | None = None) -> int:
    """Move retries whose due time has passed back onto the queue.

    The XADD and ZREM run in one MULTI, so an entry is never dropped from the
    retry set without reaching the stream. Two consumers promoting the same
    entry at once can both publish it; the worker's Queued check absorbs the
    duplicate.
    """
    now = time.time() if now is None else now
    due = await redis.zrangebyscore(PLAN_GENERATION_RETRY, "-inf", now)
    promoted = 0
    for raw in due:
        message = PlanGenerationMessage.model_validate_json(raw)
        async with redis.pipeline(transaction=True) as pipe:
            pipe.xadd(
                PLAN_GENERATION_QUEUE,
                {"data": raw},
                maxlen=QUEUE_MAXLEN,
                approximate=True,
            )
            pipe.zrem(PLAN_GENERATION_RETRY, raw)
            message_id, removed = await pipe.execute()

        if not removed:
            logger.warning(
                "plan_generation_retry_promoted_twice",
                project_id=message.project_id,
                message_id=message_id,
            )
            continue
        logger.info(
            "plan_generation_retry_promoted",
            project_id=message.project_id,
            attempt=message.attempt,
            message_id=message_id,
        )
        promoted += 1
    return promoted


async def get_delivery_count(
    redis: Redis,
    message_id: str,
    queue: str = PLAN_GENERATION_QUEUE,
    group: str = PLAN_GENERATION_GROUP,
) -> int:
    """How many times ``message_id`` has been delivered to the group (0 if not pending)."""
    entries = await redis.xpending_range(queue, group, min=message_id, max=message_id, count=1)
    return entries[0]["times_delivered"] if entries else 0


async def dead_letter(redis: Redis, message: PlanGenerationMessage, error: str) -> str:
    message_id = await redis.xadd(
        PLAN_GENERATION_DEAD,
        {"data": message.model_dump_json(), "error": error},
    )
    logger.error(
        "plan_generation_dead_lettered",
        project_id=message.project_id,
        attempts=message.attempt,
        error=error,
    )
    return message_id


class JobQueue(Protocol):
    """What the state machine needs from the job queue."""

    async def enqueue_plan_generation(self, project_id: str) -> str: ...


class RedisJobQueue:
    """Enqueues plan generation jobs onto the Redis stream."""

    def __init__(self, redis: Redis, max_attempts: int = 3, callback_stream: str | None = None):
        self.redis = redis
        self.max_attempts = max_attempts
        self.callback_stream = callback_stream

    async def enqueue_plan_generation(self, project_id: str) -> str:
        message = PlanGenerationMessage(
            project_id=project_id,
            max_attempts=self.max_attempts,
            callback_stream=self.callback_stream,
        )
        # Carry the caller's correlation id into the job when one is bound
        correlation_id = structlog.contextvars.get_contextvars().get("correlation_id")
        if correlation_id:
            message.correlation_id = correlation_id
        return await publish(self.redis, message)
