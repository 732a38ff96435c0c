"""FastAPI application entry point."""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .admin import setup_admin
from .core.config import settings
from .routes import applications, audit, documents, health, letters, requirements
from .schemas.error import ErrorResponse
from .services.errors import WorkflowError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application startup/shutdown lifecycle."""
    from .services.notifications import (
        init_notification_dispatcher,
        shutdown_notification_dispatcher,
    )
    from .services.storage import init_storage_service

    init_storage_service(settings)
    init_notification_dispatcher(settings)
    yield
    await shutdown_notification_dispatcher()


app = FastAPI(
    title="MediConnect Visa API",
    description="Medical visa application workflow for MediConnect patients, hospitals, and admins",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

_HTTP_STATUS_TITLES: dict[int, str] = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    412: "Precondition Failed",
    413: "Payload Too Large",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
}


def _request_id(request: Request) -> str:
    return request.headers.get("x-request-id", str(uuid.uuid4()))


def _build_error(
    status_code: int,
    detail: str,
    request_id: str,
    *,
    problem_type: str = "about:blank",
    instance: str = "",
) -> ErrorResponse:
    return ErrorResponse(
        type=problem_type,
        title=_HTTP_STATUS_TITLES.get(status_code, "Error"),
        status=status_code,
        detail=detail,
        request_id=request_id,
        instance=instance,
    )


@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    """Convert typed workflow errors to RFC 7807, keeping the error kind in ``type``."""
    body = _build_error(
        exc.status_code,
        exc.detail,
        _request_id(request),
        problem_type=f"/errors/{exc.kind}",
        instance=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Convert HTTPException to RFC 7807 Problem Details."""
    body = _build_error(exc.status_code, str(exc.detail), _request_id(request))
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert Pydantic validation errors to RFC 7807 Problem Details."""
    body = _build_error(
        422,
        str(exc.errors()),
        _request_id(request),
        problem_type="/errors/validation",
        instance=request.url.path,
    )
    return JSONResponse(status_code=422, content=body.model_dump())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all for unhandled exceptions -- log and return 500."""
    request_id = _request_id(request)
    logger.exception("Unhandled exception (request_id=%s)", request_id)
    body = _build_error(500, "An unexpected error occurred.", request_id)
    return JSONResponse(status_code=500, content=body.model_dump())


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(requirements.router, prefix="/api/visa-requirements", tags=["requirements"])
app.include_router(applications.router, prefix="/api/visa-applications", tags=["applications"])
app.include_router(letters.router, prefix="/api/visa-applications", tags=["letters"])
app.include_router(documents.router, prefix="/api/documents", tags=["documents"])
app.include_router(audit.router, prefix="/api/audit", tags=["audit"])

# Setup SQLAdmin dashboard at /admin
setup_admin(app)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": "Welcome to the MediConnect Visa API"}
