import pytest

from cloud_tasks.handler.dependencies import build_container
from cloud_tasks.handler.service.retry_policy import EMULATOR_RETRY_OVERRIDE
from cloud_tasks.handler.service.token_verifier import EMULATOR_ISSUERS
from cloud_tasks.monitoring.service.monitoring_service import MonitoringListener
from cloud_tasks.worker.events import LoggingListener
from shared.config import Settings


@pytest.fixture
def emulated_settings():
    return Settings(
        cloud_tasks_testing=True,
        cloud_tasks_emulator_host="localhost:8123",
        worker_max_tries=4,
        queue_connections={
            "cloudtasks": {"project": "p", "location": "l", "handler": "http://localhost:8080/handle-task"},
        },
    )


@pytest.mark.asyncio
async def test_emulated_mode_wiring(emulated_settings):
    container = build_container(emulated_settings)
    handler = container.handler

    assert handler._token_verifier._allowed_issuers == EMULATOR_ISSUERS
    assert handler._retry_resolver._policy_override == dict(EMULATOR_RETRY_OVERRIDE)
    assert handler._worker_options.max_tries == 4

    sinks = handler._worker._dispatcher.sinks
    assert [type(s) for s in sinks] == [LoggingListener, MonitoringListener]

    await container.close()
