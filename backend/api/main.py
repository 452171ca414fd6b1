"""
Allocation Engine API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from allocation.errors import (
    AllocationConflict,
    AllocationError,
    InsufficientInventory,
    InvalidSelection,
    NoStrategyAvailable,
    SelectionIncomplete,
    TransactionNotFound,
    TransactionNotReleasable,
)
from core.config import get_settings

settings = get_settings()
logger = structlog.get_logger()

ERROR_STATUS = {
    NoStrategyAvailable: 503,
    InsufficientInventory: 409,
    AllocationConflict: 409,
    TransactionNotReleasable: 409,
    SelectionIncomplete: 422,
    InvalidSelection: 422,
    TransactionNotFound: 404,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Allocation API starting up", version=settings.app_version)
    yield
    logger.info("Allocation API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Strategy-driven inventory allocation for estimation, manufacturing and sales",
    lifespan=lifespan,
)


@app.exception_handler(AllocationError)
async def allocation_error_handler(request: Request, exc: AllocationError):
    """Typed allocation outcomes → HTTP status + machine-readable body."""
    status_code = ERROR_STATUS.get(type(exc), 400)
    logger.info(
        "api.allocation_error",
        path=request.url.path,
        code=exc.code,
        status_code=status_code,
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": str(exc),
            "code": exc.code,
            "retryable": exc.retryable,
            **exc.details(),
        },
    )


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import allocations, inventory, strategies

app.include_router(allocations.router)
app.include_router(strategies.router)
app.include_router(inventory.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
