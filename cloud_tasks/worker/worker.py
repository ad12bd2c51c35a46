from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from cloud_tasks.worker.events import EventDispatcher
from cloud_tasks.worker.job import CloudTasksJob
from cloud_tasks.worker.registry import JobRegistry, job_registry
from shared.config import Settings
from shared.utils import get_logger

logger = get_logger(__name__)


class JobOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    RELEASED = "released"
    FAILED = "failed"


class MaxAttemptsExceededError(Exception):
    pass


@dataclass(frozen=True)
class WorkerOptions:
    max_tries: int = 0  # used when the job carries none, 0 = unlimited
    timeout: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "WorkerOptions":
        return cls(
            max_tries=settings.worker_max_tries,
            timeout=settings.worker_timeout,
        )


class Worker:
    """
    Runs one job for one delivery.

    Application exceptions never leave process(): they are turned into
    lifecycle events and a JobOutcome.
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        *,
        registry: JobRegistry = job_registry,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._dispatcher = dispatcher
        self._registry = registry
        self._clock = clock

    def _max_tries(self, job: CloudTasksJob, options: WorkerOptions) -> int:
        return job.max_tries if job.max_tries is not None else options.max_tries

    def already_exceeds_max_attempts(self, job: CloudTasksJob, options: WorkerOptions) -> bool:
        retry_until = job.retry_until
        if retry_until is not None:
            return self._clock() > retry_until

        max_tries = self._max_tries(job, options)
        return max_tries > 0 and job.attempts > max_tries

    def will_exceed_max_attempts(self, job: CloudTasksJob, options: WorkerOptions) -> bool:
        retry_until = job.retry_until
        if retry_until is not None:
            return retry_until <= self._clock()

        max_tries = self._max_tries(job, options)
        return max_tries > 0 and job.attempts >= max_tries

    async def process(self, connection_name: str, job: CloudTasksJob, options: WorkerOptions) -> JobOutcome:
        logger.info(
            "Processing job",
            job_id=job.uuid,
            job=job.display_name,
            connection=connection_name,
            attempt=job.attempts,
            max_tries=job.max_tries,
            retry_until=job.retry_until,
        )

        await self._dispatcher.job_started(job)

        if self.already_exceeds_max_attempts(job, options):
            error = MaxAttemptsExceededError(
                f"{job.display_name} has been attempted too many times or run too long."
            )
            await self._fail_job(job, error)
            return JobOutcome.FAILED

        try:
            await job.fire(self._registry, timeout=options.timeout)
        except Exception as e:
            return await self._handle_job_exception(job, options, e)

        await self._dispatcher.job_succeeded(job)
        return JobOutcome.SUCCEEDED

    async def _handle_job_exception(
        self,
        job: CloudTasksJob,
        options: WorkerOptions,
        exception: Exception,
    ) -> JobOutcome:
        logger.warning("Job raised", job_id=job.uuid, attempt=job.attempts, error=str(exception))

        if self.will_exceed_max_attempts(job, options):
            await self._fail_job(job, exception)
            return JobOutcome.FAILED

        await self._dispatcher.job_errored(job, exception)
        job.release()
        return JobOutcome.RELEASED

    async def _fail_job(self, job: CloudTasksJob, exception: BaseException) -> None:
        if job.has_failed:
            return
        job.mark_as_failed()
        await self._dispatcher.job_failed(job, exception)
