"""
Attempt bookkeeping for a delivery.

Cloud Tasks only tells us how often it already retried the task
(X-CloudTasks-TaskRetryCount). Max tries and the retry deadline come from the
queue's retry configuration and the task's first attempt.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Mapping, Optional, Protocol, TypeVar

from cloud_tasks.db.service.cloud_tasks_service import QueueServiceError
from cloud_tasks.exceptions import RetryPolicyUnavailableError
from cloud_tasks.models.dto import AttemptContext, ConnectionConfig, RemoteTask, RetryPolicy
from shared.utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# The emulator ignores queue retry settings; keep tests fast and deterministic.
EMULATOR_RETRY_OVERRIDE: Mapping[str, Any] = {
    "max_attempts": 3,
    "min_backoff": 0,
    "max_backoff": 0,
}


class QueueService(Protocol):
    async def get_retry_policy(self, project: str, location: str, queue: str) -> RetryPolicy:
        ...

    async def get_task(self, project: str, location: str, queue: str, task: str) -> RemoteTask:
        ...


def compute_retry_until(policy: RetryPolicy, task: RemoteTask) -> Optional[int]:
    if task.first_attempt_dispatched_at is None:
        return None
    if policy.max_retry_duration is None:
        return None
    return task.first_attempt_dispatched_at + policy.max_retry_duration


class RetryPolicyResolver:
    def __init__(
        self,
        service: QueueService,
        *,
        timeout: float = 10.0,
        policy_override: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._service = service
        self._timeout = timeout
        self._policy_override = dict(policy_override) if policy_override else None

    async def _lookup(self, call: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.error("Cloud Tasks lookup timed out", lookup=what, timeout=self._timeout)
            raise RetryPolicyUnavailableError() from e
        except QueueServiceError as e:
            raise RetryPolicyUnavailableError() from e

    async def get_retry_policy(self, connection: ConnectionConfig, queue: str) -> RetryPolicy:
        policy = await self._lookup(
            self._service.get_retry_policy(connection.project, connection.location, queue),
            "queue",
        )
        if self._policy_override:
            policy = policy.model_copy(update=self._policy_override)
        return policy

    async def resolve_attempt(
        self,
        connection: ConnectionConfig,
        attempt_count: int,
        queue_name: str,
        task_name: Optional[str],
    ) -> AttemptContext:
        policy = await self.get_retry_policy(connection, queue_name)
        attempts = attempt_count + 1

        # The deadline only matters once a retry happened.
        retry_until: Optional[int] = None
        if attempts > 1:
            retry_until = await self._retry_until(connection, policy, queue_name, task_name)

        return AttemptContext(
            attempts=attempts,
            queue=queue_name,
            max_tries=policy.max_attempts,
            retry_until=retry_until,
        )

    async def _retry_until(
        self,
        connection: ConnectionConfig,
        policy: RetryPolicy,
        queue_name: str,
        task_name: Optional[str],
    ) -> Optional[int]:
        if policy.max_retry_duration is None:
            return None

        if not task_name:
            logger.warning("Retry without task name, no retry deadline applied", queue=queue_name)
            return None

        task = await self._lookup(
            self._service.get_task(connection.project, connection.location, queue_name, task_name),
            "task",
        )
        return compute_retry_until(policy, task)
