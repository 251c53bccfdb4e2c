from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from annotation_hub.core.config import settings
from annotation_hub.core.correlation import CorrelationIdMiddleware
from annotation_hub.core.database import close_database, init_database
from annotation_hub.core.exceptions import ErrorCode, ErrorResponse, HubError
from annotation_hub.core.metrics import MetricsMiddleware
from annotation_hub.log.logging import logger
from annotation_hub.routers.application_router import router as application_router
from annotation_hub.routers.healthcheck_router import router as healthcheck_router
from annotation_hub.routers.invoice_router import router as invoice_router
from annotation_hub.routers.metrics_router import router as metrics_router
from annotation_hub.routers.project_router import router as project_router
from annotation_hub.scheduler.scheduler import start_scheduler, stop_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Annotation Hub...")

    try:
        await init_database()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        # Continue startup; /health/ready reports the outage

    await start_scheduler()

    yield

    logger.info("Shutting down Annotation Hub...")
    await stop_scheduler()
    await close_database()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Annotation Hub",
    description="Project applications, capacity, deletion authorization and invoice payouts",
    version="1.0.0",
    lifespan=lifespan,
)

# Last added = first executed
app.add_middleware(MetricsMiddleware)
app.add_middleware(CorrelationIdMiddleware)


@app.exception_handler(HubError)
async def hub_error_handler(request: Request, exc: HubError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        exc.message,
        event_type="request_failed",
        error=exc.__class__.__name__,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_response().to_content())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
        for error in exc.errors()
    ]
    response = ErrorResponse.create(
        message="Validation error",
        code=ErrorCode.VALIDATION_ERROR,
        error="ValidationError",
        errors=errors,
    )
    return JSONResponse(status_code=400, content=response.to_content())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(
        "Unhandled error",
        event_type="unhandled_error",
        path=request.url.path,
        error=str(exc),
    )
    response = ErrorResponse.create(message="Internal server error", code=ErrorCode.INTERNAL_ERROR)
    return JSONResponse(status_code=500, content=response.to_content())


@app.get("/")
async def root():
    return {"message": "Annotation Hub is running!", "environment": settings.environment}


app.include_router(project_router)
app.include_router(application_router)
app.include_router(invoice_router)

app.include_router(healthcheck_router)
app.include_router(metrics_router)
