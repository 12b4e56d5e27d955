import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cohort_tracker import __version__
from cohort_tracker.config import settings
from cohort_tracker.db import engine
from cohort_tracker.exceptions import (
    DomainError,
    ErrorCode,
    InvalidRequestError,
    UnauthorizedError,
)
from cohort_tracker.models import Base
from cohort_tracker.routes import (
    assignments_router,
    auth_router,
    batches_router,
    organizations_router,
    projects_router,
    public_router,
    student_projects_router,
    users_router,
)

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables on startup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield


app = FastAPI(
    title="Cohort Tracker API",
    description="Batches, project templates and student progress for cohorts",
    version=__version__,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    headers = None
    if isinstance(exc, UnauthorizedError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_dict(), headers=headers
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed ids and bodies are rejected before any handler runs."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg', 'invalid value')}"
    else:
        message = InvalidRequestError.default_message
    return JSONResponse(
        status_code=InvalidRequestError.status_code,
        content={"error": message, "code": ErrorCode.INVALID_REQUEST.value},
    )


# Auth routes - included twice with different prefixes:
# - No prefix: JWKS at /.well-known/jwks.json (standard location)
# - /api/v1 prefix: Exchange at /api/v1/auth/exchange
app.include_router(auth_router)
app.include_router(auth_router, prefix="/api/v1")

app.include_router(organizations_router, prefix="/api/v1")
app.include_router(batches_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(projects_router, prefix="/api/v1")
app.include_router(assignments_router, prefix="/api/v1")
app.include_router(student_projects_router, prefix="/api/v1")

# Share links, no authentication
app.include_router(public_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
