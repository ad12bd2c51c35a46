"""
Task monitoring: status events on the cloud_tasks table and the failed_jobs
ledger. Both are fed by the worker's lifecycle events through
MonitoringListener.
"""

from __future__ import annotations

import traceback
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cloud_tasks.db.models import TaskStatus
from cloud_tasks.db.session import get_db_session
from cloud_tasks.monitoring.persistence.task_persistence import (
    append_task_event,
    fetch_task,
    insert_failed_job,
)
from shared.utils import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_exception(exception: BaseException) -> str:
    return "".join(traceback.format_exception(type(exception), exception, exception.__traceback__))


class TaskStatusReporter:
    def __init__(
        self,
        session_factory: SessionFactory = get_db_session,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._now = now

    async def _mark(self, task_uuid: str, status: TaskStatus, exception: Optional[str] = None) -> bool:
        async with self._session_factory() as db:
            task = await fetch_task(db, task_uuid)
            if task is None:
                logger.info("No monitored task row, status not recorded", task_uuid=task_uuid, status=status.value)
                return False

            if status is TaskStatus.ERROR and task.status == TaskStatus.FAILED.value:
                return False

            append_task_event(task, status, at=self._now(), exception=exception)
            return True

    async def mark_as_running(self, task_uuid: str) -> bool:
        return await self._mark(task_uuid, TaskStatus.RUNNING)

    async def mark_as_successful(self, task_uuid: str) -> bool:
        return await self._mark(task_uuid, TaskStatus.SUCCESSFUL)

    async def mark_as_error(self, task_uuid: str, exception: BaseException) -> bool:
        return await self._mark(task_uuid, TaskStatus.ERROR, exception=format_exception(exception))

    async def mark_as_failed(self, task_uuid: str) -> bool:
        return await self._mark(task_uuid, TaskStatus.FAILED)


class FailedJobLedger:
    def __init__(self, session_factory: SessionFactory = get_db_session) -> None:
        self._session_factory = session_factory

    async def log(
        self,
        uuid: str,
        *,
        connection: str,
        queue: str,
        payload: str,
        exception: BaseException,
    ) -> int:
        async with self._session_factory() as db:
            row_id = await insert_failed_job(
                db,
                uuid=uuid,
                connection=connection,
                queue=queue,
                payload=payload,
                exception=format_exception(exception),
            )
        logger.info("Failed job recorded", job_id=uuid, connection=connection, queue=queue)
        return row_id


class MonitoringListener:
    """Lifecycle sink writing to the monitoring tables."""

    def __init__(self, ledger: FailedJobLedger, reporter: Optional[TaskStatusReporter] = None) -> None:
        self._ledger = ledger
        self._reporter = reporter

    async def on_started(self, job_id: str) -> None:
        if self._reporter:
            await self._reporter.mark_as_running(job_id)

    async def on_succeeded(self, job_id: str) -> None:
        if self._reporter:
            await self._reporter.mark_as_successful(job_id)

    async def on_errored(self, job_id: str, exception: BaseException) -> None:
        if self._reporter:
            await self._reporter.mark_as_error(job_id, exception)

    async def on_failed(
        self,
        job_id: str,
        exception: BaseException,
        *,
        connection: str,
        queue: str,
        raw_payload: str,
    ) -> None:
        await self._ledger.log(
            job_id,
            connection=connection,
            queue=queue,
            payload=raw_payload,
            exception=exception,
        )
        if self._reporter:
            await self._reporter.mark_as_failed(job_id)


def build_monitoring_listener(dashboard_enabled: bool) -> MonitoringListener:
    reporter = TaskStatusReporter() if dashboard_enabled else None
    return MonitoringListener(FailedJobLedger(), reporter)
