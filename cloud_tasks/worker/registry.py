"""
Job registry: maps the job name carried in a task command to a callable.

    from cloud_tasks.worker.registry import job

    @job("reports.generate")
    async def generate_report(report_id: int) -> None:
        ...

Modules listed in JOB_MODULES are imported at startup so their decorators run.
"""

from __future__ import annotations

import importlib
from typing import Any, Callable, Iterable, Optional

from shared.utils import get_logger

logger = get_logger(__name__)

JobHandler = Callable[..., Any]


class JobRegistry:
    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def add(self, name: str, handler: JobHandler) -> JobHandler:
        if name in self._handlers:
            logger.warning("Duplicate job name, overwriting previous handler", job=name)
        self._handlers[name] = handler
        return handler

    def register(self, name: Optional[str] = None) -> Callable[[JobHandler], JobHandler]:
        def decorator(handler: JobHandler) -> JobHandler:
            return self.add(name or f"{handler.__module__}.{handler.__qualname__}", handler)

        return decorator

    def get(self, name: str) -> Optional[JobHandler]:
        return self._handlers.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    @property
    def names(self) -> list[str]:
        return sorted(self._handlers)


job_registry = JobRegistry()
job = job_registry.register


def import_job_modules(modules: Iterable[str]) -> None:
    for module in modules:
        importlib.import_module(module)
        logger.info("Job module loaded", module=module)
