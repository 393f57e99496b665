"""
Land Sales Platform API - Main Application.

FastAPI application with CORS enabled for frontend communication. Engine
errors are mapped to HTTP responses here, in one place:

- ValidationError            -> 422 (NotFoundError -> 404)
- StateError                 -> 409
- AvailabilityConflictError  -> 409 with the unavailable unit ids
- InconsistencyError         -> 500 with the failed step
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from api.models import ErrorResponse
from domain.errors import (
    AvailabilityConflictError,
    InconsistencyError,
    NotFoundError,
    StateError,
    ValidationError,
)

# Create FastAPI application
app = FastAPI(
    title="Land Sales Platform API",
    description="REST API for land and house sales with installment schedules",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, exc: Exception, **fields) -> JSONResponse:
    body = ErrorResponse(error=type(exc).__name__, detail=str(exc), **fields)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body, exclude_none=True),
    )


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError):
    if isinstance(exc, NotFoundError):
        return _error(404, exc)
    return _error(422, exc)


@app.exception_handler(StateError)
async def handle_state_error(request: Request, exc: StateError):
    return _error(409, exc)


@app.exception_handler(AvailabilityConflictError)
async def handle_availability_conflict(request: Request, exc: AvailabilityConflictError):
    return _error(409, exc, unavailable_unit_ids=exc.unavailable_unit_ids)


@app.exception_handler(InconsistencyError)
async def handle_inconsistency(request: Request, exc: InconsistencyError):
    return _error(
        500,
        exc,
        failed_step=exc.failed_step,
        compensation_failures=exc.compensation_failures,
    )


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "land-sales-platform-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Land Sales Platform API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import installments, sales, units

app.include_router(sales.router, prefix="/api/v1", tags=["Sales"])
app.include_router(installments.router, prefix="/api/v1", tags=["Installments"])
app.include_router(units.router, prefix="/api/v1", tags=["Units"])
