"""
The job descriptor handed to the worker: decoded payload plus the attempt
context reconstructed from the queue.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Optional

from cloud_tasks.models.dto import AttemptContext, JobCommand, TaskPayload
from cloud_tasks.worker.registry import JobRegistry
from shared.utils import get_logger

logger = get_logger(__name__)


class UnknownJobError(Exception):
    """The command references a job name nobody registered."""


class JobTimeoutError(Exception):
    """The job ran longer than the worker timeout."""


class CloudTasksJob:
    def __init__(
        self,
        *,
        payload: TaskPayload,
        command: JobCommand,
        raw_body: str,
        connection_name: str,
        context: AttemptContext,
    ) -> None:
        self.payload = payload
        self.command = command
        self.raw_body = raw_body
        self.connection_name = connection_name
        self.context = context

        self._failed = False
        self._released = False

    def __repr__(self) -> str:
        return f"<CloudTasksJob {self.display_name} uuid={self.uuid} attempt={self.attempts}>"

    @property
    def uuid(self) -> str:
        return self.payload.uuid

    @property
    def display_name(self) -> str:
        return self.payload.display_name

    @property
    def queue(self) -> str:
        return self.context.queue

    @property
    def attempts(self) -> int:
        return self.context.attempts

    @property
    def max_tries(self) -> Optional[int]:
        return self.context.max_tries

    @property
    def retry_until(self) -> Optional[int]:
        return self.context.retry_until

    @property
    def has_failed(self) -> bool:
        return self._failed

    @property
    def is_released(self) -> bool:
        return self._released

    def mark_as_failed(self) -> None:
        self._failed = True

    def release(self) -> None:
        # Bookkeeping only: the delivery is still acknowledged and Cloud Tasks
        # schedules nothing for a released job.
        self._released = True

    async def fire(self, registry: JobRegistry, timeout: Optional[float] = None) -> None:
        handler = registry.get(self.command.job)
        if handler is None:
            raise UnknownJobError(f"Job [{self.command.job}] is not registered")

        if inspect.iscoroutinefunction(handler):
            call = handler(*self.command.args, **self.command.kwargs)
            if not timeout:
                await call
                return
            try:
                await asyncio.wait_for(call, timeout=timeout)
            except asyncio.TimeoutError as e:
                raise JobTimeoutError(f"Job [{self.command.job}] exceeded {timeout}s") from e
            return

        thread = asyncio.ensure_future(
            asyncio.to_thread(handler, *self.command.args, **self.command.kwargs)
        )
        if not timeout:
            await thread
            return
        try:
            await asyncio.wait_for(asyncio.shield(thread), timeout=timeout)
        except asyncio.TimeoutError as e:
            # Threads cannot be cancelled; report the outcome only once it is done.
            logger.warning("Sync job exceeded timeout, waiting for it to finish", job=self.command.job, timeout=timeout)
            await asyncio.gather(thread, return_exceptions=True)
            raise JobTimeoutError(f"Job [{self.command.job}] exceeded {timeout}s") from e
