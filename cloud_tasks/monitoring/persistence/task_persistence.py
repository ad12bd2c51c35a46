from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cloud_tasks.db.models import CloudTask, FailedJob, TaskStatus

EVENT_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


async def fetch_task(db: AsyncSession, task_uuid: str) -> Optional[CloudTask]:
    result = await db.execute(select(CloudTask).where(CloudTask.task_uuid == task_uuid))
    return result.scalar_one_or_none()


def append_task_event(
    task: CloudTask,
    status: TaskStatus,
    *,
    at: datetime,
    exception: Optional[str] = None,
) -> None:
    metadata = dict(task.task_metadata or {})
    events = list(metadata.get("events", []))
    events.append({"status": status.value, "datetime": at.strftime(EVENT_DATETIME_FORMAT)})
    metadata["events"] = events
    if exception is not None:
        metadata["exception"] = exception

    # reassign so the JSON column is flagged dirty
    task.task_metadata = metadata
    task.status = status.value


async def insert_failed_job(
    db: AsyncSession,
    *,
    uuid: str,
    connection: str,
    queue: str,
    payload: str,
    exception: str,
) -> int:
    row = FailedJob(
        uuid=uuid,
        connection=connection,
        queue=queue,
        payload=payload,
        exception=exception,
    )
    db.add(row)
    await db.flush()
    return row.id
