"""
Handling of one Cloud Tasks push delivery.

Steps:
- Capture + decode the task payload
- Resolve the queue connection the job was dispatched on
- Verify the OpenID token Cloud Tasks signed the request with
- Rebuild attempts / max tries / retry deadline from the queue
- Run the job through the worker (lifecycle sinks are already wired)
- Return a HandlingResult the controller turns into the HTTP answer
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import orjson
from pydantic import ValidationError

from cloud_tasks.exceptions import (
    EmptyBodyError,
    HandlingErrorKind,
    MalformedPayloadError,
    TaskHandlingError,
)
from cloud_tasks.handler.service.queue_config import QueueConfigResolver, decode_command
from cloud_tasks.handler.service.retry_policy import RetryPolicyResolver
from cloud_tasks.handler.service.token_verifier import TokenVerifier
from cloud_tasks.models.dto import InboundDelivery, TaskPayload
from cloud_tasks.worker.job import CloudTasksJob
from cloud_tasks.worker.worker import JobOutcome, Worker, WorkerOptions
from shared.utils import LogContext, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class HandlingResult:
    ok: bool
    job_id: Optional[str] = None
    outcome: Optional[JobOutcome] = None
    error: Optional[HandlingErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def completed(cls, job_id: str, outcome: JobOutcome) -> "HandlingResult":
        return cls(ok=True, job_id=job_id, outcome=outcome)

    @classmethod
    def rejected(cls, error: TaskHandlingError, job_id: Optional[str] = None) -> "HandlingResult":
        return cls(ok=False, job_id=job_id, error=error.kind, message=error.message)


def capture_task(body: bytes) -> TaskPayload:
    if not body:
        raise EmptyBodyError()

    try:
        raw = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise MalformedPayloadError() from e

    try:
        return TaskPayload.model_validate(raw)
    except ValidationError as e:
        raise MalformedPayloadError("Incoming task has an unexpected structure") from e


def parse_retry_count(value: Optional[str]) -> int:
    if value is None or value == "":
        return 0
    try:
        count = int(value)
    except ValueError as e:
        raise MalformedPayloadError("Invalid [X-CloudTasks-TaskRetryCount] header") from e
    if count < 0:
        raise MalformedPayloadError("Invalid [X-CloudTasks-TaskRetryCount] header")
    return count


class TaskHandler:
    def __init__(
        self,
        *,
        config_resolver: QueueConfigResolver,
        token_verifier: TokenVerifier,
        retry_resolver: RetryPolicyResolver,
        worker: Worker,
        worker_options: Optional[WorkerOptions] = None,
    ) -> None:
        self._config_resolver = config_resolver
        self._token_verifier = token_verifier
        self._retry_resolver = retry_resolver
        self._worker = worker
        self._worker_options = worker_options or WorkerOptions()

    async def handle(self, delivery: InboundDelivery, task: Optional[TaskPayload] = None) -> HandlingResult:
        job_id = task.uuid if task else None
        try:
            if task is None:
                task = capture_task(delivery.body)
                job_id = task.uuid
                raw_body = delivery.body.decode("utf-8", errors="replace")
            else:
                raw_body = task.model_dump_json(by_alias=True)
            return await self._handle(delivery, task, raw_body)
        except TaskHandlingError as e:
            logger.warning(
                "Task delivery rejected",
                error=e.kind.value,
                job_id=job_id,
                message=e.message,
                queue=delivery.queue_name,
                task=delivery.task_name,
            )
            return HandlingResult.rejected(e, job_id=job_id)

    async def _handle(self, delivery: InboundDelivery, task: TaskPayload, raw_body: str) -> HandlingResult:
        command = decode_command(task)
        config = self._config_resolver.resolve(task)

        await self._token_verifier.verify(delivery.authorization, config)

        attempt_count = parse_retry_count(delivery.retry_count)

        queue_name = delivery.queue_name or config.queue

        with LogContext(task_uuid=task.uuid, queue=queue_name, connection=config.connection):
            context = await self._retry_resolver.resolve_attempt(
                config,
                attempt_count,
                queue_name,
                delivery.task_name,
            )

            job = CloudTasksJob(
                payload=task,
                command=command,
                raw_body=raw_body,
                connection_name=config.connection,
                context=context,
            )

            outcome = await self._worker.process(config.connection, job, self._worker_options)
            logger.info("Task handled", job_id=job.uuid, outcome=outcome.value, attempt=job.attempts)

        return HandlingResult.completed(job.uuid, outcome)
