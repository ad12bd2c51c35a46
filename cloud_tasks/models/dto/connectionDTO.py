"""
Queue connection settings (one entry of QUEUE_CONNECTIONS).
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ConnectionConfig(BaseModel):
    # Name the config was resolved under; set by the registry lookup.
    connection: Optional[str] = None

    driver: str = "cloudtasks"
    project: str
    location: str
    handler: str  # public URL of /handle-task, also the expected token audience
    queue: str = "default"
    service_account_email: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="ignore")
