"""
Wiring of the delivery pipeline.

Everything is built once from Settings at startup and shared by all requests:
connection registry, token verifier, retry policy resolver, worker and its
lifecycle sinks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from cloud_tasks.db.service.cloud_tasks_service import CloudTasksService
from cloud_tasks.handler.service.openid import OpenIdTokenDecoder
from cloud_tasks.handler.service.queue_config import ConnectionRegistry, QueueConfigResolver
from cloud_tasks.handler.service.retry_policy import EMULATOR_RETRY_OVERRIDE, RetryPolicyResolver
from cloud_tasks.handler.service.task_handler import TaskHandler
from cloud_tasks.handler.service.token_verifier import TokenVerifier
from cloud_tasks.monitoring.service.monitoring_service import build_monitoring_listener
from cloud_tasks.worker.events import EventDispatcher, LoggingListener
from cloud_tasks.worker.registry import import_job_modules, job_registry
from cloud_tasks.worker.worker import Worker, WorkerOptions
from shared.config import Settings, get_settings
from shared.utils import get_logger

logger = get_logger(__name__)


@dataclass
class HandlerContainer:
    handler: TaskHandler
    decoder: OpenIdTokenDecoder
    queue_service: CloudTasksService

    async def close(self) -> None:
        await self.decoder.close()
        self.queue_service.close()


_container: Optional[HandlerContainer] = None


def build_container(settings: Settings) -> HandlerContainer:
    emulated = settings.cloud_tasks_testing

    registry = ConnectionRegistry.from_settings(settings)

    decoder = OpenIdTokenDecoder(settings.openid_certs_url, timeout=settings.openid_timeout)
    verifier = TokenVerifier.for_mode(decoder, emulated=emulated)

    queue_service = CloudTasksService(
        emulator_host=settings.cloud_tasks_emulator_host if emulated else None,
        timeout=settings.cloud_tasks_timeout,
    )
    retry_resolver = RetryPolicyResolver(
        queue_service,
        timeout=settings.cloud_tasks_timeout,
        policy_override=EMULATOR_RETRY_OVERRIDE if emulated else None,
    )

    dispatcher = EventDispatcher(
        [
            LoggingListener(),
            build_monitoring_listener(settings.cloud_tasks_dashboard_enabled),
        ]
    )

    handler = TaskHandler(
        config_resolver=QueueConfigResolver(registry),
        token_verifier=verifier,
        retry_resolver=retry_resolver,
        worker=Worker(dispatcher, registry=job_registry),
        worker_options=WorkerOptions.from_settings(settings),
    )

    logger.info(
        "Task handler ready",
        connections=registry.names,
        default_connection=registry.default,
        emulated=emulated,
        dashboard=settings.cloud_tasks_dashboard_enabled,
    )
    return HandlerContainer(handler=handler, decoder=decoder, queue_service=queue_service)


def init_task_handler(settings: Optional[Settings] = None) -> TaskHandler:
    global _container
    settings = settings or get_settings()
    if _container is None:
        import_job_modules(settings.job_modules)
        _container = build_container(settings)
    return _container.handler


def get_task_handler() -> TaskHandler:
    """FastAPI dependency."""
    return init_task_handler()


async def close_task_handler() -> None:
    global _container
    if _container is not None:
        await _container.close()
        _container = None
