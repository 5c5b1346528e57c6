"""Entry point for the ChunkVault controller service."""

import time
import uuid

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from common.logging_config import setup_logging
from controller.config import CONTROLLER_HOST, CONTROLLER_PORT
from controller.database import get_db_connection, init_database
from controller.exceptions import (
    DFSException,
    EmptyUploadError,
    FileNotFoundError,
    IntegrityFaultError,
    InvalidUploadError,
    StoreUnavailableError,
    UnauthorizedAccessError,
    UnsupportedContentTypeError,
    UploadCancelledError,
    UploadTooLargeError,
)
from controller.routes.file_routes import router as file_router
from controller.routes.internal_routes import router as internal_router
from controller.schemas.common import ErrorResponse
from controller.service_locator import get_file_service

logger = setup_logging('controller')
setup_logging('blobstore')

app = FastAPI(
    title="ChunkVault Controller",
    description="Deduplicating chunked blob store",
    version="1.0.0"
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    logger.info(
        f"Request started: {request.method} {request.url.path} [request_id={request_id}] "
        f"[user_id={request.headers.get('x-user-id', 'anonymous')}]"
    )

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
    )

    response.headers["X-Request-ID"] = request_id

    return response


@app.on_event("startup")
async def startup_event():
    """
    Initialize the database and drain deletions left over from the last run.
    """
    logger.info("Controller service starting up...")

    init_database()
    logger.info("Database initialized")

    try:
        result = await run_in_threadpool(get_file_service().reconcile_pending_deletions)
        if result.failed:
            logger.warning(f"{len(result.failed)} object deletions still pending after startup reconcile")
    except Exception as e:
        logger.error(f"Startup reconcile failed: {e}", exc_info=True)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Controller service shutting down...")
    get_file_service().close()


def _error_response(request: Request, exc: Exception, status_code: int, code: str, level: str = "warning") -> JSONResponse:
    request_id = getattr(request.state, 'request_id', 'unknown')
    message = f"{type(exc).__name__}: {exc} [request_id={request_id}] path={request.url.path}"
    if level == "error":
        logger.error(message, exc_info=exc)
    else:
        logger.warning(message)
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(detail=str(exc), code=code).model_dump()
    )


@app.exception_handler(FileNotFoundError)
async def file_not_found_handler(request: Request, exc: FileNotFoundError):
    return _error_response(request, exc, status.HTTP_404_NOT_FOUND, "FILE_NOT_FOUND")


@app.exception_handler(UnauthorizedAccessError)
async def unauthorized_access_handler(request: Request, exc: UnauthorizedAccessError):
    return _error_response(request, exc, status.HTTP_403_FORBIDDEN, "UNAUTHORIZED_ACCESS")


@app.exception_handler(EmptyUploadError)
async def empty_upload_handler(request: Request, exc: EmptyUploadError):
    return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "EMPTY_UPLOAD")


@app.exception_handler(UploadTooLargeError)
async def upload_too_large_handler(request: Request, exc: UploadTooLargeError):
    return _error_response(request, exc, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "FILE_SIZE_EXCEEDED")


@app.exception_handler(UnsupportedContentTypeError)
async def unsupported_content_type_handler(request: Request, exc: UnsupportedContentTypeError):
    return _error_response(request, exc, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, "FILE_TYPE_NOT_SUPPORTED")


@app.exception_handler(InvalidUploadError)
async def invalid_upload_handler(request: Request, exc: InvalidUploadError):
    return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "INVALID_UPLOAD")


@app.exception_handler(UploadCancelledError)
async def upload_cancelled_handler(request: Request, exc: UploadCancelledError):
    return _error_response(request, exc, status.HTTP_504_GATEWAY_TIMEOUT, "UPLOAD_TIMEOUT")


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    return _error_response(request, exc, status.HTTP_503_SERVICE_UNAVAILABLE, "STORE_UNAVAILABLE", level="error")


@app.exception_handler(IntegrityFaultError)
async def integrity_fault_handler(request: Request, exc: IntegrityFaultError):
    return _error_response(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTEGRITY_FAULT", level="error")


@app.exception_handler(DFSException)
async def dfs_exception_handler(request: Request, exc: DFSException):
    return _error_response(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", level="error")


app.include_router(file_router)
app.include_router(internal_router)


@app.get("/")
async def root():
    """
    Root endpoint for health check.
    """
    return {"message": "ChunkVault Controller API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Liveness probe. Returns 200 if the process is up.
    """
    return {"status": "healthy", "service": "controller"}


@app.get("/ready")
async def ready_check():
    """
    Readiness check endpoint.
    Verifies database and object store connectivity.
    """
    try:
        with get_db_connection() as conn:
            conn.execute("SELECT 1 FROM chunks LIMIT 1")
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"

    store_error = await run_in_threadpool(get_file_service().ping_store)
    store_status = "ok" if store_error is None else f"error: {store_error}"

    ready = db_status == "ok" and store_status == "ok"
    status_code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(
        status_code=status_code,
        content={
            "ready": ready,
            "database": db_status,
            "object_store": store_status
        }
    )


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "controller.main:app",
        host=CONTROLLER_HOST,
        port=CONTROLLER_PORT,
    )


if __name__ == "__main__":
    main()
