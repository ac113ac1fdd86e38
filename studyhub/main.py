"""
FastAPI backend for StudyHub.

AI-assisted learning platform: workspaces of uploaded course material,
AI-generated subjects, quizzes and exam patterns, quiz submissions with
per-subject analytics, flashcards and vector search.

This main file handles app initialization, error handling and router
mounting. All endpoints are organized in the routers/ directory.
"""

import logging
import traceback
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
env_paths = [
    Path(__file__).parent.parent / ".env",
    Path(__file__).parent / ".env",
]
for env_path in env_paths:
    if env_path.exists():
        load_dotenv(env_path)
        break

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .ai_config import SUPPORTED_PROVIDERS, has_api_key
from .config import settings
from .database import check_database_health, init_db
from .exceptions import ProviderRateLimitError, StudyHubError
from .routers import (
    admin,
    analytics,
    files,
    flashcards,
    jobs,
    past_exams,
    patterns,
    quiz_submissions,
    quizzes,
    search,
    subjects,
    workspaces,
)

# =============================================================================
# Configuration
# =============================================================================

TESTING = settings.testing

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 60


# =============================================================================
# Lifespan Event Handler
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup."""
    init_db()
    logger.info("Database initialized")
    yield
    logger.info("Application shutting down")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="StudyHub",
    description="AI-assisted learning platform API",
    version=__version__,
    lifespan=lifespan,
)


# =============================================================================
# Error Handlers
# =============================================================================

def _error_response(status_code: int, message: str, headers: dict = None, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra}, headers=headers)


@app.exception_handler(StudyHubError)
async def studyhub_error_handler(request: Request, exc: StudyHubError):
    """Typed domain errors carry their own status code."""
    headers = None
    if exc.status_code == 429:
        retry_after = exc.retry_after if isinstance(exc, ProviderRateLimitError) and exc.retry_after else None
        headers = {"Retry-After": str(retry_after or DEFAULT_RETRY_AFTER_SECONDS)}

    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return _error_response(exc.status_code, exc.message, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing request fields are a 400, same shape as other errors."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return _error_response(400, "Invalid request: " + "; ".join(problems))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    if settings.is_development:
        return _error_response(500, str(exc) or "Internal server error", traceback=traceback.format_exc())
    return _error_response(500, str(exc) or "Internal server error")


async def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """
    Custom handler for rate limit exceeded errors.
    Includes Retry-After header for better client handling.
    """
    detail = str(exc.detail).lower()
    if "hour" in detail:
        retry_after = 3600
    elif "second" in detail:
        retry_after = 1
    else:
        retry_after = DEFAULT_RETRY_AFTER_SECONDS

    return _error_response(
        429,
        f"Rate limit exceeded. Please wait {retry_after} seconds before retrying.",
        headers={"Retry-After": str(retry_after)},
        retry_after_seconds=retry_after,
    )


# Rate limiting (relaxed in test mode)
if not TESTING:
    limiter = Limiter(key_func=get_remote_address)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, custom_rate_limit_handler)
    logger.info("Rate limiting enabled")
else:
    limiter = Limiter(key_func=lambda: "test-client")
    app.state.limiter = limiter
    logger.info("Rate limiting relaxed (test mode)")


# =============================================================================
# Middleware
# =============================================================================

origins = settings.allowed_origins.split(",") if settings.allowed_origins != "*" else ["*"]

if origins == ["*"] and settings.environment == "production":
    logger.warning(
        "SECURITY WARNING: CORS is set to allow ALL origins (*). "
        "Set STUDYHUB_ALLOWED_ORIGINS to specific domains."
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """
    Add unique request ID to each request for tracing.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# =============================================================================
# Routers
# =============================================================================

app.include_router(workspaces.router)
app.include_router(files.router)
app.include_router(subjects.router)
app.include_router(quizzes.router)
app.include_router(quiz_submissions.router)
app.include_router(analytics.router)
app.include_router(flashcards.router)
app.include_router(past_exams.router)
app.include_router(patterns.router)
app.include_router(search.router)
app.include_router(jobs.router)
app.include_router(admin.router)


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health")
async def health_check():
    """
    Liveness plus database connectivity and AI provider availability.

    Returns 200 with status "degraded" when the database is unreachable.
    """
    database = check_database_health()
    providers = {name: has_api_key(name) for name in SUPPORTED_PROVIDERS}
    return {
        "status": "healthy" if database.get("database_connected") else "degraded",
        "version": __version__,
        "environment": settings.environment,
        "database": database,
        "providers": providers,
    }
