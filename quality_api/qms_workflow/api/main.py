from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from qms_workflow.core.errors import QualityWorkflowError
from qms_workflow.core.logging import actor_id_var, configure_logging, correlation_id_var, tenant_id_var
from qms_workflow.core.settings import get_app_settings
from qms_workflow.repositories.memory import InMemoryQualityDatabase
from qms_workflow.schemas.common import ErrorInfo, ErrorResponse, MessageResponse, ReadinessResponse
from qms_workflow.services.blob import LocalBlobStore

# Routers
from qms_workflow.api.routes.audit import router as audit_router
from qms_workflow.api.routes.records import router as records_router
from qms_workflow.api.routes.reports import router as reports_router
from qms_workflow.api.routes.workflow import router as workflow_router

settings = get_app_settings()

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "Health", "description": "Liveness and readiness checks."},
    {"name": "Records", "description": "NCR, MRB, CAPA and SCAR records, notes, tasks and attachments."},
    {"name": "Workflow", "description": "Status transitions, dispositions, board votes, 8D steps and links."},
    {"name": "Audit", "description": "Audit trail, milestones and progress."},
    {"name": "Reports", "description": "Exportable quality reports (CSV/Excel/PDF)."},
]

# Workflow error code -> HTTP status. Codes not listed are state conflicts (409).
ERROR_STATUS = {
    "ValidationError": 422,
    "NotAMember": 422,
    "NotFound": 404,
}

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

app.state.settings = settings
app.state.memory_db = InMemoryQualityDatabase()
app.state.blob_store = LocalBlobStore(settings.BLOB_STORAGE_ROOT)

if settings.CORS_ALLOW_CREDENTIALS and not settings.cors_credentials_allowed:
    logger.warning("Ignoring CORS_ALLOW_CREDENTIALS: browsers refuse credentials for '*' origins.")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.cors_credentials_allowed,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
    expose_headers=["X-Correlation-ID", "Content-Disposition"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Bind correlation, tenant and actor ids to the logging context for the request.

    The correlation id is taken from X-Correlation-ID (or X-Request-ID) when the
    caller sends one and echoed back on every response.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    request.state.correlation_id = corr
    request.state.tenant_id = request.headers.get("X-Tenant-ID")
    tokens = (
        (correlation_id_var, correlation_id_var.set(corr)),
        (tenant_id_var, tenant_id_var.set(request.state.tenant_id)),
        (actor_id_var, actor_id_var.set(request.headers.get("X-Actor-ID"))),
    )
    started = time.perf_counter()
    try:
        response = await call_next(request)
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
    finally:
        for var, token in tokens:
            var.reset(token)

    response.headers["X-Correlation-ID"] = corr
    return response


def _error_response(request: Request, status_code: int, info: ErrorInfo) -> JSONResponse:
    """Wrap an ErrorInfo in the ErrorResponse envelope shared by every failure."""
    envelope = ErrorResponse(
        status=status_code,
        error=info,
        correlation_id=getattr(request.state, "correlation_id", None),
        tenant_id=getattr(request.state, "tenant_id", None),
        path=request.url.path,
        method=request.method,
        timestamp=datetime.now(tz=timezone.utc),
    )
    return JSONResponse(status_code=status_code, content=envelope.model_dump(mode="json"))


@app.exception_handler(QualityWorkflowError)
async def workflow_exception_handler(request: Request, exc: QualityWorkflowError):
    """error.type is the workflow error code, so clients can switch on it."""
    status_code = ERROR_STATUS.get(exc.code, 409)
    logger.debug("Workflow error %s -> HTTP %s", exc.code, status_code)
    return _error_response(request, status_code, ErrorInfo(type=exc.code, message=exc.message, details=exc.details))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Header checks in core.deps and unknown routes end up here.
    structured: Any = None if isinstance(exc.detail, str) else exc.detail
    message = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return _error_response(request, exc.status_code, ErrorInfo(type="http_error", message=message, details=structured))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies, query parameters and path enums (e.g. an unknown item type)."""
    info = ErrorInfo(type="validation_error", message="Request validation failed", details=exc.errors())
    return _error_response(request, 422, info)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error in %s %s", request.method, request.url.path)
    return _error_response(
        request, 500, ErrorInfo(type="internal_error", message="An unexpected error occurred")
    )


@app.on_event("startup")
async def on_startup() -> None:
    """
    Prepare the record store.

    With STORE_BACKEND=postgres and RUN_MIGRATIONS_ON_STARTUP, Alembic upgrades to
    head first. AUTO_SEED then creates the demo record set for SEED_TENANT_ID.
    Failures are logged and the service keeps starting; /api/v1/health/ready
    reports whether the store is usable.
    """
    logger.info("Quality workflow API starting with %s record store", settings.STORE_BACKEND)
    if settings.STORE_BACKEND == "postgres" and settings.RUN_MIGRATIONS_ON_STARTUP:
        from qms_workflow.db.run_migrations import upgrade_to_head

        try:
            # env.py drives its own event loop, so Alembic runs off the server loop.
            await asyncio.to_thread(upgrade_to_head)
        except Exception:
            logger.exception("Startup migration failed")

    if settings.AUTO_SEED:
        from qms_workflow.core.deps import build_workflow_service
        from qms_workflow.db.seed import seed_demo_records

        try:
            await seed_demo_records(build_workflow_service(app.state), settings.SEED_TENANT_ID)
        except Exception:
            logger.exception("Demo seeding failed")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    if settings.STORE_BACKEND == "postgres":
        from qms_workflow.db.session import dispose_engine

        await dispose_engine()


api_v1 = APIRouter(prefix="/api/v1")


# PUBLIC_INTERFACE
@api_v1.get(
    "/health",
    response_model=MessageResponse,
    summary="Health Check",
    tags=["Health"],
)
def health_check() -> MessageResponse:
    """Liveness: the process is up and serving requests."""
    return MessageResponse(message="Healthy")


# PUBLIC_INTERFACE
@api_v1.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness Check",
    description="Checks that the configured record store answers.",
    tags=["Health"],
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check():
    """
    Readiness: the memory store is always ready; postgres must answer SELECT 1.

    Returns 503 with the failure text when the database cannot be reached.
    """
    backend = settings.STORE_BACKEND
    if backend != "postgres":
        return ReadinessResponse(ready=True, store_backend=backend)

    from qms_workflow.db.session import ping_database

    try:
        await ping_database()
    except Exception as exc:
        logger.warning("Readiness check failed: %s", exc)
        body = ReadinessResponse(ready=False, store_backend=backend, detail=str(exc))
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
    return ReadinessResponse(ready=True, store_backend=backend)


# Literal paths (/quality/links, /quality/progress) must be registered before
# the /quality/{item_type}/{record_id} routes.
api_v1.include_router(workflow_router)
api_v1.include_router(audit_router)
api_v1.include_router(records_router)
api_v1.include_router(reports_router)

app.include_router(api_v1)
