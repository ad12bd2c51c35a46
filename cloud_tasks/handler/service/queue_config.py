"""
Connection registry and the resolver that maps a task payload to the queue
connection it was dispatched on.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import ValidationError

from cloud_tasks.exceptions import MalformedPayloadError, UnknownConnectionError
from cloud_tasks.models.dto import ConnectionConfig, JobCommand, TaskPayload
from shared.config import Settings


class ConnectionRegistry:
    """
    Read-only view of the configured queue connections.

    Built once at startup and shared by every request; it is never mutated
    afterwards, so concurrent reads need no locking.
    """

    def __init__(self, connections: Mapping[str, ConnectionConfig], default: str) -> None:
        self._connections = MappingProxyType(dict(connections))
        self._default = default

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConnectionRegistry":
        connections = {
            name: ConnectionConfig.model_validate(raw)
            for name, raw in settings.queue_connections.items()
        }
        return cls(connections, settings.queue_default)

    @property
    def default(self) -> str:
        return self._default

    @property
    def names(self) -> list[str]:
        return sorted(self._connections)

    def get(self, name: str) -> Optional[ConnectionConfig]:
        return self._connections.get(name)


def decode_command(payload: TaskPayload) -> JobCommand:
    try:
        return JobCommand.model_validate_json(payload.data.command)
    except ValidationError as e:
        raise MalformedPayloadError("Could not decode task command") from e


class QueueConfigResolver:
    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def resolve(self, payload: TaskPayload) -> ConnectionConfig:
        command = decode_command(payload)
        name = command.connection or self._registry.default

        config = self._registry.get(name)
        if config is None:
            raise UnknownConnectionError(f"Queue connection [{name}] is not configured")

        return config.model_copy(update={"connection": name})
