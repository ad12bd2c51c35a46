from .taskDTO import InboundDelivery, TaskData, TaskPayload, JobCommand
from .connectionDTO import ConnectionConfig
from .attemptDTO import DecodedToken, RetryPolicy, RemoteTask, AttemptContext
from .responsesDTO import HandleTaskResponse, ErrorResponse

__all__ = [
    "InboundDelivery",
    "TaskData",
    "TaskPayload",
    "JobCommand",
    "ConnectionConfig",
    "DecodedToken",
    "RetryPolicy",
    "RemoteTask",
    "AttemptContext",
    "HandleTaskResponse",
    "ErrorResponse",
]
