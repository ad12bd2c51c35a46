"""
Lifecycle events emitted by the worker and the sinks that consume them.

Sinks are wired once at startup. The dispatcher calls them in order, one
event at a time, so a job's events arrive as started -> succeeded / errored
/ failed.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol, Sequence

from cloud_tasks.worker.job import CloudTasksJob
from shared.utils import get_logger

logger = get_logger(__name__)


class LifecycleEventSink(Protocol):
    async def on_started(self, job_id: str) -> None:
        ...

    async def on_succeeded(self, job_id: str) -> None:
        ...

    async def on_errored(self, job_id: str, exception: BaseException) -> None:
        ...

    async def on_failed(
        self,
        job_id: str,
        exception: BaseException,
        *,
        connection: str,
        queue: str,
        raw_payload: str,
    ) -> None:
        ...


class EventDispatcher:
    def __init__(self, sinks: Sequence[LifecycleEventSink] = ()) -> None:
        self._sinks = tuple(sinks)

    @property
    def sinks(self) -> tuple[LifecycleEventSink, ...]:
        return self._sinks

    async def _emit(
        self,
        event: str,
        job: CloudTasksJob,
        call: Callable[[LifecycleEventSink], Awaitable[None]],
    ) -> None:
        for sink in self._sinks:
            try:
                await call(sink)
            except Exception as e:
                # A broken sink must not change the job's outcome.
                logger.error(
                    "Lifecycle sink failed",
                    lifecycle_event=event,
                    sink=type(sink).__name__,
                    job_id=job.uuid,
                    error=str(e),
                    exc_info=e,
                )

    async def job_started(self, job: CloudTasksJob) -> None:
        await self._emit("started", job, lambda sink: sink.on_started(job.uuid))

    async def job_succeeded(self, job: CloudTasksJob) -> None:
        await self._emit("succeeded", job, lambda sink: sink.on_succeeded(job.uuid))

    async def job_errored(self, job: CloudTasksJob, exception: BaseException) -> None:
        await self._emit("errored", job, lambda sink: sink.on_errored(job.uuid, exception))

    async def job_failed(self, job: CloudTasksJob, exception: BaseException) -> None:
        await self._emit(
            "failed",
            job,
            lambda sink: sink.on_failed(
                job.uuid,
                exception,
                connection=job.connection_name,
                queue=job.queue,
                raw_payload=job.raw_body,
            ),
        )


class LoggingListener:
    """Writes one structured log line per lifecycle event."""

    async def on_started(self, job_id: str) -> None:
        logger.info("Job started", job_id=job_id)

    async def on_succeeded(self, job_id: str) -> None:
        logger.info("Job succeeded", job_id=job_id)

    async def on_errored(self, job_id: str, exception: BaseException) -> None:
        logger.warning("Job attempt errored", job_id=job_id, error=str(exception))

    async def on_failed(
        self,
        job_id: str,
        exception: BaseException,
        *,
        connection: str,
        queue: str,
        raw_payload: str,
    ) -> None:
        logger.error(
            "Job failed",
            job_id=job_id,
            connection=connection,
            queue=queue,
            error=str(exception),
        )
