"""FastAPI app receiving Cloud Tasks push deliveries."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from cloud_tasks.exceptions import register_exception_handlers
from cloud_tasks.handler.controller.task_webhook import router as task_router
from cloud_tasks.handler.dependencies import close_task_handler, init_task_handler
from shared.config import get_settings
from shared.services import close_db
from shared.utils import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Task handler starting up",
        emulated=settings.cloud_tasks_testing,
        default_connection=settings.queue_default,
    )

    init_task_handler(settings)

    yield

    logger.info("Task handler shutting down")
    await close_task_handler()
    await close_db()


app = FastAPI(
    title="Cloud Tasks Handler",
    description="Receives Cloud Tasks HTTP push deliveries and runs the queued jobs",
    version="1.0.0",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "cloud-tasks-handler"}


app.include_router(task_router, tags=["Cloud Tasks"])

register_exception_handlers(app)
