"""Redis Streams consumer for plan generation jobs.

Each message runs as its own task, bounded by a semaphore. A job that raises
is re-scheduled with exponential backoff until it runs out of attempts, then
moved to the dead-letter stream. Messages are acknowledged once their outcome
(result, retry or dead letter) has been recorded.

Entries left pending by a consumer that died mid-job are reclaimed with
XAUTOCLAIM once idle longer than the provider timeout plus a grace period.
An entry delivered more than ``plan_job_max_deliveries`` times is
dead-lettered without running again and its project is moved to ``Error``.
"""

import asyncio
import os

from pydantic import ValidationError
from redis.asyncio import Redis
import structlog

from archplan.config import Settings
from archplan.contracts.queues.plan_generation import (
    PlanGenerationMessage,
    PlanGenerationResult,
)
from archplan.logging_config import bind_job_context, clear_job_context, set_correlation_id
from archplan.queues import (
    PLAN_GENERATION_GROUP,
    PLAN_GENERATION_QUEUE,
    dead_letter,
    ensure_consumer_group,
    get_delivery_count,
    promote_due_retries,
    retry_delay,
    schedule_retry,
)

from .plan_generation import PlanGenerationWorker

logger = structlog.get_logger()


class PlanGenerationConsumer:
    def __init__(
        self,
        redis: Redis,
        worker: PlanGenerationWorker,
        settings: Settings,
        consumer_name: str | None = None,
        block_ms: int = 5000,
        claim_idle_ms: int | None = None,
    ):
        self.redis = redis
        self.worker = worker
        self.settings = settings
        self.stream_name = PLAN_GENERATION_QUEUE
        self.group_name = PLAN_GENERATION_GROUP
        self.consumer_name = consumer_name or f"plan-worker-{os.getpid()}"
        self.block_ms = block_ms
        if claim_idle_ms is None:
            claim_idle_ms = int(
                (settings.llm_timeout_seconds + settings.stale_job_grace_seconds) * 1000
            )
        self.claim_idle_ms = claim_idle_ms
        self.semaphore = asyncio.Semaphore(settings.worker_concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._active: set[str] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def run(self):
        """Run consumer loop until cancelled, then drain in-flight jobs."""
        await ensure_consumer_group(self.redis, self.stream_name, self.group_name)
        logger.info(
            "plan_consumer_started",
            consumer=self.consumer_name,
            claim_idle_ms=self.claim_idle_ms,
        )

        try:
            while True:
                try:
                    await self.poll()
                except asyncio.CancelledError:
                    logger.info("plan_consumer_stopping")
                    break
                except Exception as e:
                    logger.error("plan_consumer_error", error=str(e))
                    await asyncio.sleep(1)
        finally:
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
            logger.info("plan_consumer_stopped")

    async def poll(self) -> int:
        """Promote due retries, reclaim stale entries and start tasks for new messages."""
        await promote_due_retries(self.redis)

        started = 0
        for message_id, data, deliveries in await self.reclaim_stale():
            await self._start(message_id, data, deliveries)
            started += 1

        resp = await self.redis.xreadgroup(
            groupname=self.group_name,
            consumername=self.consumer_name,
            streams={self.stream_name: ">"},
            count=self.settings.worker_concurrency,
            block=None if started else self.block_ms,
        )
        for _stream_name, messages in resp or []:
            for message_id, data in messages:
                await self._start(message_id, data)
                started += 1
        return started

    async def reclaim_stale(self) -> list[tuple[str, dict, int]]:
        """Take over entries that stayed pending longer than ``claim_idle_ms``.

        Returns ``(message_id, data, deliveries)`` for each claimed entry not
        already running in this consumer.
        """
        resp = await self.redis.xautoclaim(
            self.stream_name,
            self.group_name,
            self.consumer_name,
            min_idle_time=self.claim_idle_ms,
            start_id="0-0",
            count=self.settings.worker_concurrency,
        )
        if not resp:
            return []

        claimed = []
        for message_id, data in resp[1]:
            # Entries trimmed from the stream come back without an id
            if message_id is None or message_id in self._active:
                continue
            deliveries = await get_delivery_count(
                self.redis, message_id, self.stream_name, self.group_name
            )
            logger.warning("plan_job_reclaimed", message_id=message_id, deliveries=deliveries)
            claimed.append((message_id, data or {}, deliveries))
        return claimed

    async def _start(self, message_id: str, data: dict, deliveries: int = 1) -> None:
        await self.semaphore.acquire()
        self._active.add(message_id)
        task = asyncio.create_task(self._run_one(message_id, data, deliveries))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_one(self, message_id: str, data: dict, deliveries: int) -> None:
        try:
            await self.process_message(message_id, data, deliveries)
        except Exception as e:
            # Left unacknowledged; reclaimed once idle past claim_idle_ms
            logger.error("plan_job_handling_failed", message_id=message_id, error=str(e))
        finally:
            self._active.discard(message_id)
            self.semaphore.release()

    async def process_message(
        self, message_id: str, data: dict, deliveries: int = 1
    ) -> PlanGenerationResult | None:
        """Process a single message and acknowledge it.

        Returns the job result, or ``None`` when the job was re-scheduled or
        the message could not be decoded.
        """
        raw_data = data.get("data")
        if not raw_data:
            logger.error("missing_data_field", message_id=message_id)
            await self._ack(message_id)
            return None

        try:
            message = PlanGenerationMessage.model_validate_json(raw_data)
        except ValidationError as e:
            logger.error("invalid_job_format", message_id=message_id, error=str(e))
            await self._ack(message_id)
            return None

        set_correlation_id(message.correlation_id)
        bind_job_context(project_id=message.project_id, attempt=message.attempt)
        try:
            if deliveries > self.settings.plan_job_max_deliveries:
                result = await self._give_up(message, deliveries)
            else:
                try:
                    result = await self.worker.perform(message)
                except Exception as e:
                    result = await self._handle_failure(message, e)

            await self._ack(message_id)
            if result is not None:
                await self.publish_result(message, result)
            return result
        finally:
            clear_job_context("correlation_id", "project_id", "attempt")

    async def _give_up(
        self, message: PlanGenerationMessage, deliveries: int
    ) -> PlanGenerationResult:
        reason = f"Delivered {deliveries} times without completing"
        logger.error("plan_job_delivery_limit_reached", deliveries=deliveries)
        return await self._handle_failure(
            message.model_copy(update={"attempt": message.max_attempts}),
            RuntimeError(reason),
        )

    async def _handle_failure(
        self, message: PlanGenerationMessage, error: Exception
    ) -> PlanGenerationResult | None:
        reason = f"{type(error).__name__}: {error}"

        if message.is_final_attempt:
            # Raising here leaves the entry pending, so it is reclaimed later
            await self.worker.mark_failed(message.project_id)
            await dead_letter(self.redis, message, reason)
            return PlanGenerationResult(
                request_id=message.request_id,
                project_id=message.project_id,
                status="failed",
                error=reason,
            )

        delay = retry_delay(
            message.attempt,
            self.settings.retry_backoff_base_seconds,
            self.settings.retry_backoff_max_seconds,
        )
        await schedule_retry(
            self.redis,
            message.model_copy(update={"attempt": message.attempt + 1}),
            delay,
        )
        return None

    async def _ack(self, message_id: str) -> None:
        await self.redis.xack(self.stream_name, self.group_name, message_id)

    async def publish_result(
        self, message: PlanGenerationMessage, result: PlanGenerationResult
    ) -> None:
        if not message.callback_stream:
            return
        await self.redis.xadd(message.callback_stream, {"data": result.model_dump_json()})
        logger.debug(
            "plan_result_published",
            stream=message.callback_stream,
            status=result.status,
        )
