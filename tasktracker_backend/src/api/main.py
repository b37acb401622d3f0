import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import StoreError, TaskTrackerError
from .logging_setup import setup_logging
from .routers import audit_logs as audit_logs_router
from .routers import auth as auth_router
from .routers import tasks as tasks_router
from .routers import users as users_router
from .settings import get_settings

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "auth", "description": "Password login and the current user."},
    {
        "name": "tasks",
        "description": "Task creation, partial updates with change tracking, trash and comments.",
    },
    {"name": "audit-logs", "description": "Per-task history and per-user daily timelines."},
    {"name": "users", "description": "Team members and their task statistics."},
]

_settings = get_settings()
setup_logging(_settings.log_level, _settings.log_file)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Team Task Tracker",
    description="Team task tracking API with a field-level audit trail and daily activity timelines.",
    version="0.1.0",
    openapi_tags=openapi_tags,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_body(kind: str, message: str, detail) -> dict:
    return {"error": kind, "message": message, "detail": jsonable_encoder(detail)}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "detail": [... pydantic/fastapi error details ...],
            "message": "Request validation failed"
        }
    """
    return JSONResponse(
        status_code=422,
        content=_error_body("ValidationError", "Request validation failed", exc.errors()),
    )


@app.exception_handler(TaskTrackerError)
async def domain_exception_handler(request: Request, exc: TaskTrackerError) -> JSONResponse:
    """Render domain errors (validation, not found, store failures) in the same envelope."""
    if isinstance(exc, StoreError):
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.kind, exc.message, exc.detail),
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {"message": "Healthy", "backend": _settings.persistence_backend}


# Include routers
app.include_router(auth_router.router)
app.include_router(tasks_router.router)
app.include_router(audit_logs_router.router)
app.include_router(users_router.router)
