"""FastAPI application entry point for tutor-sync"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tutor_sync.api.conversations import router as conversations_router
from tutor_sync.api.schemas import error_body
from tutor_sync.api.sync import router as sync_router
from tutor_sync.core.config import settings
from tutor_sync.core.errors import (
    AuthError,
    PartialSaveFailure,
    StoreError,
    ValidationError,
)
from tutor_sync.core.logging import configure_logging, get_logger
from tutor_sync.db import init_db

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan context manager for startup/shutdown."""
    configure_logging()
    init_db()
    logger.info("database_initialized")
    yield


app = FastAPI(
    title="Tutor Sync API",
    description="Message deduplication and synchronization for AI tutoring sessions",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

app.include_router(sync_router)
app.include_router(conversations_router)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed requests are reported as 400, not FastAPI's default 422."""
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    logger.info("request_invalid", path=request.url.path, errors=len(details))
    return JSONResponse(
        status_code=400, content=error_body("Invalid request data", details)
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(
    request: Request, exc: ValidationError
) -> JSONResponse:
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    logger.info("request_unauthenticated", path=request.url.path, reason=exc.details)
    return JSONResponse(
        status_code=401,
        content=exc.to_dict(),
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("request_store_error", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=500, content=exc.to_dict())


@app.exception_handler(PartialSaveFailure)
async def partial_save_failure_handler(
    request: Request, exc: PartialSaveFailure
) -> JSONResponse:
    logger.error(
        "request_save_failed", path=request.url.path, failed=len(exc.outcomes)
    )
    body = error_body("Failed to sync messages")
    body["results"] = [outcome.to_dict() for outcome in exc.outcomes]
    return JSONResponse(status_code=500, content=body)


@app.get("/api/v1/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        dict with status "ok" if the service is healthy.
    """
    return {"status": "ok"}
