"""
Inbound push delivery and the task payload Cloud Tasks carries in its body.

Body sent by the enqueuing side:

    {
        "uuid": "6f1c...",
        "displayName": "reports.generate",
        "data": {
            "commandName": "reports.generate",
            "command": "{\"job\": \"reports.generate\", \"args\": [42], ...}"
        }
    }

`data.command` is itself a serialized JSON document (JobCommand).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class InboundDelivery:
    """Raw request body plus the Cloud Tasks headers of one push delivery."""

    body: bytes = b""
    authorization: Optional[str] = None
    retry_count: Optional[str] = None
    queue_name: Optional[str] = None
    task_name: Optional[str] = None


class TaskData(BaseModel):
    command: str = Field(min_length=1)
    command_name: Optional[str] = Field(default=None, alias="commandName")

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class TaskPayload(BaseModel):
    uuid: str = Field(min_length=1)
    display_name: str = Field(alias="displayName")
    data: TaskData

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class JobCommand(BaseModel):
    job: str = Field(min_length=1)
    args: list[Any] = Field(default_factory=list)
    kwargs: dict[str, Any] = Field(default_factory=dict)
    connection: Optional[str] = None
    queue: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="ignore")
