from enum import Enum


class TaskStatus(str, Enum):
    QUEUED = "queued"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    SUCCESSFUL = "successful"
    ERROR = "error"
    FAILED = "failed"
