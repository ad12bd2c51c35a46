from .base import Base
from .enums import TaskStatus
from .cloud_task import CloudTask
from .failed_job import FailedJob

__all__ = [
    "Base",
    "TaskStatus",
    "CloudTask",
    "FailedJob",
]
