"""
Google Cloud Tasks lookups used while handling a delivery:
- queue retry configuration (max attempts, max retry duration, backoff)
- task record (first attempt dispatch time)

The google-cloud-tasks client is synchronous, calls go through
asyncio.to_thread so they never block the event loop.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import grpc
from google.api_core import exceptions as core_exceptions
from google.cloud import tasks_v2
from google.cloud.tasks_v2.services.cloud_tasks.transports import CloudTasksGrpcTransport

from cloud_tasks.models.dto import RemoteTask, RetryPolicy
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class QueueServiceError(Exception):
    """Cloud Tasks could not be reached or refused the lookup."""


def create_client(emulator_host: Optional[str] = None) -> tasks_v2.CloudTasksClient:
    """Client for Google Cloud, or for the local emulator when a host is given."""
    if emulator_host:
        channel = grpc.insecure_channel(emulator_host)
        return tasks_v2.CloudTasksClient(transport=CloudTasksGrpcTransport(channel=channel))
    return tasks_v2.CloudTasksClient()


def _seconds(message: Any, field: str) -> Optional[float]:
    if field not in message:
        return None
    return getattr(message, field).total_seconds()


def retry_policy_from_queue(queue: tasks_v2.Queue) -> RetryPolicy:
    config = queue.retry_config

    # A zero max_retry_duration means "unlimited" for Cloud Tasks.
    duration = _seconds(config, "max_retry_duration")
    max_retry_duration = int(duration) if duration else None

    return RetryPolicy(
        max_attempts=config.max_attempts,
        max_retry_duration=max_retry_duration,
        min_backoff=_seconds(config, "min_backoff"),
        max_backoff=_seconds(config, "max_backoff"),
    )


def remote_task_from_task(task: tasks_v2.Task) -> RemoteTask:
    dispatched_at: Optional[int] = None
    if "first_attempt" in task and "dispatch_time" in task.first_attempt:
        dispatched_at = int(task.first_attempt.dispatch_time.timestamp())
    return RemoteTask(name=task.name, first_attempt_dispatched_at=dispatched_at)


class CloudTasksService:
    def __init__(
        self,
        client: Optional[tasks_v2.CloudTasksClient] = None,
        *,
        emulator_host: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self._client = client or create_client(emulator_host)
        self._timeout = timeout

    async def _call(self, method: Callable[..., Any], request: dict[str, Any]) -> Any:
        try:
            return await asyncio.to_thread(method, request=request, timeout=self._timeout)
        except core_exceptions.GoogleAPIError as e:
            logger.error("Cloud Tasks lookup failed", request=request, error=str(e))
            raise QueueServiceError(str(e)) from e

    async def get_retry_policy(self, project: str, location: str, queue: str) -> RetryPolicy:
        name = self._client.queue_path(project, location, queue)
        response = await self._call(self._client.get_queue, {"name": name})
        return retry_policy_from_queue(response)

    async def get_task(self, project: str, location: str, queue: str, task: str) -> RemoteTask:
        name = self._client.task_path(project, location, queue, task)
        response = await self._call(self._client.get_task, {"name": name})
        return remote_task_from_task(response)

    def close(self) -> None:
        self._client.transport.close()
