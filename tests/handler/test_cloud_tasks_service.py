from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as core_exceptions
from google.cloud import tasks_v2

from cloud_tasks.db.service.cloud_tasks_service import (
    CloudTasksService,
    QueueServiceError,
    remote_task_from_task,
    retry_policy_from_queue,
)

QUEUE_PATH = "projects/my-project/locations/europe-west1/queues/default"
TASK_PATH = f"{QUEUE_PATH}/tasks/task-1"
DISPATCHED = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def make_queue(**retry):
    return tasks_v2.Queue(name=QUEUE_PATH, retry_config=tasks_v2.RetryConfig(**retry))


def test_retry_policy_from_queue():
    queue = make_queue(
        max_attempts=5,
        max_retry_duration=timedelta(seconds=600),
        min_backoff=timedelta(seconds=0.1),
        max_backoff=timedelta(seconds=3600),
    )

    policy = retry_policy_from_queue(queue)

    assert policy.max_attempts == 5
    assert policy.max_retry_duration == 600
    assert policy.min_backoff == pytest.approx(0.1)
    assert policy.max_backoff == 3600


def test_zero_retry_duration_means_none():
    policy = retry_policy_from_queue(make_queue(max_attempts=-1, max_retry_duration=timedelta(0)))

    assert policy.max_attempts == -1
    assert policy.max_retry_duration is None


def test_missing_retry_duration_means_none():
    policy = retry_policy_from_queue(make_queue(max_attempts=3))

    assert policy.max_retry_duration is None
    assert policy.min_backoff is None


def test_remote_task_from_task():
    task = tasks_v2.Task(name=TASK_PATH, first_attempt=tasks_v2.Attempt(dispatch_time=DISPATCHED))

    remote = remote_task_from_task(task)

    assert remote.name == TASK_PATH
    assert remote.first_attempt_dispatched_at == int(DISPATCHED.timestamp())


def test_remote_task_without_first_attempt():
    remote = remote_task_from_task(tasks_v2.Task(name=TASK_PATH))

    assert remote.first_attempt_dispatched_at is None


def fake_client():
    client = MagicMock(spec=tasks_v2.CloudTasksClient)
    client.queue_path.return_value = QUEUE_PATH
    client.task_path.return_value = TASK_PATH
    return client


@pytest.mark.asyncio
async def test_get_retry_policy_calls_get_queue():
    client = fake_client()
    client.get_queue.return_value = make_queue(max_attempts=7)
    service = CloudTasksService(client, timeout=3)

    policy = await service.get_retry_policy("my-project", "europe-west1", "default")

    assert policy.max_attempts == 7
    client.queue_path.assert_called_once_with("my-project", "europe-west1", "default")
    client.get_queue.assert_called_once_with(request={"name": QUEUE_PATH}, timeout=3)


@pytest.mark.asyncio
async def test_get_task_calls_get_task():
    client = fake_client()
    client.get_task.return_value = tasks_v2.Task(
        name=TASK_PATH, first_attempt=tasks_v2.Attempt(dispatch_time=DISPATCHED)
    )
    service = CloudTasksService(client)

    remote = await service.get_task("my-project", "europe-west1", "default", "task-1")

    assert remote.first_attempt_dispatched_at == int(DISPATCHED.timestamp())
    client.task_path.assert_called_once_with("my-project", "europe-west1", "default", "task-1")


@pytest.mark.asyncio
async def test_google_api_errors_are_wrapped():
    client = fake_client()
    client.get_queue.side_effect = core_exceptions.ServiceUnavailable("backend down")
    service = CloudTasksService(client)

    with pytest.raises(QueueServiceError):
        await service.get_retry_policy("my-project", "europe-west1", "default")
