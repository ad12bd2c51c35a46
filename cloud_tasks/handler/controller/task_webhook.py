from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import ORJSONResponse

from cloud_tasks.exceptions import STATUS_BY_KIND
from cloud_tasks.handler.dependencies import get_task_handler
from cloud_tasks.handler.service.task_handler import TaskHandler
from cloud_tasks.models.dto import ErrorResponse, HandleTaskResponse, InboundDelivery
from shared.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/handle-task",
    response_model=HandleTaskResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def handle_task(
    request: Request,
    authorization: Optional[str] = Header(None),
    retry_count: Optional[str] = Header(None, alias="X-CloudTasks-TaskRetryCount"),
    queue_name: Optional[str] = Header(None, alias="X-CloudTasks-QueueName"),
    task_name: Optional[str] = Header(None, alias="X-CloudTasks-TaskName"),
    handler: TaskHandler = Depends(get_task_handler),
):
    # controller concern: capture raw request, the service decodes it
    delivery = InboundDelivery(
        body=await request.body(),
        authorization=authorization,
        retry_count=retry_count,
        queue_name=queue_name,
        task_name=task_name,
    )

    result = await handler.handle(delivery)

    if not result.ok:
        return ORJSONResponse(
            status_code=STATUS_BY_KIND[result.error],
            content=ErrorResponse(error=result.error.value, detail=result.message).model_dump(),
        )

    return HandleTaskResponse(ok=True, job_id=result.job_id, outcome=result.outcome.value)
