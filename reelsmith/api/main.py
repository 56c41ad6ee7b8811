"""
FastAPI Main Application

The web process only plans batches, acknowledges provider callbacks and
serves status. Dispatch and callback processing run on RQ workers.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from reelsmith.api.dependencies import close_dependencies
from reelsmith.config.settings import settings
from reelsmith.services.errors import ErrorType, PipelineError


logger = structlog.get_logger(__name__)

# HTTP status for pipeline errors that escape a route
ERROR_STATUS_CODES = {
    ErrorType.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorType.AUTHENTICATION_FAILED: status.HTTP_401_UNAUTHORIZED,
    ErrorType.PROVIDER_REJECTED: status.HTTP_502_BAD_GATEWAY,
    ErrorType.PROVIDER_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorType.STORAGE_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


app = FastAPI(
    title="Reelsmith - Listing Video Generation",
    description="Per-room clip generation for real-estate listings with webhook ingestion and ffmpeg composition",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Liveness plus the switches that change webhook handling"""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "service": "reelsmith",
        "queue": settings.rq_queue_name,
        "fal_webhook_verify": settings.fal_webhook_verify,
    }


def _error_body(code: str, message: str, details=None) -> dict:
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"error": error}


def _serialize_validation_errors(errors):
    # ctx may carry exception instances, which JSON cannot encode
    cleaned = []
    for err in errors:
        err_copy = err.copy()
        ctx = err_copy.get("ctx")
        if ctx:
            err_copy["ctx"] = {
                key: (str(value) if isinstance(value, Exception) else value)
                for key, value in ctx.items()
            }
        cleaned.append(err_copy)
    return cleaned


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies (400)"""
    errors = _serialize_validation_errors(exc.errors())
    logger.warning("validation_error", path=request.url.path, errors=errors)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("VALIDATION_ERROR", "Request validation failed", errors),
    )


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    """
    Pipeline errors keep their error code; the status comes from
    ERROR_STATUS_CODES and defaults to 500
    """
    status_code = ERROR_STATUS_CODES.get(exc.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "pipeline_error",
        path=request.url.path,
        code=exc.error_type.value,
        retryable=exc.retryable,
        error=exc.message,
    )

    return JSONResponse(status_code=status_code, content=_error_body(exc.error_type.value, exc.message))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Anything else (500)"""
    logger.error(
        "unexpected_error",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("INTERNAL_ERROR", "An unexpected error occurred"),
    )


@app.on_event("startup")
async def startup_event():
    logger.info("application_starting", log_level=settings.log_level)

    from reelsmith.models import init_db

    init_db()

    logger.info("application_started", fal_webhook_verify=settings.fal_webhook_verify)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("application_shutting_down")
    await close_dependencies()


from reelsmith.api.routes import videos, webhooks

app.include_router(videos.router, prefix="/v1", tags=["videos"])
app.include_router(webhooks.router, prefix="/v1", tags=["webhooks"])
