from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from .enums import TaskStatus


class CloudTask(Base):
    """One row per dispatched task, written by the enqueuing side and updated here."""

    __tablename__ = "cloud_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    task_uuid: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    queue: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=TaskStatus.QUEUED.value,
        server_default=TaskStatus.QUEUED.value,
        index=True,
    )

    # "metadata" is reserved on declarative classes
    task_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_cloud_tasks_queue_created_at", "queue", "created_at"),
    )
