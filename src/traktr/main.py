"""
Traktr - Main Application.

FastAPI application exposing session resolution and job synchronization to
the screen layer.
"""

import logging
import sys
import traceback
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from traktr import __version__
from traktr.config import get_settings
from traktr.exceptions import TraktrException
from traktr.schemas import ErrorDetail, ErrorResponse, HealthResponse

# Import module routers
from traktr.modules.chat.router import router as chat_router
from traktr.modules.companies.router import router as companies_router
from traktr.modules.jobs.router import router as jobs_router
from traktr.modules.session.router import router as session_router
from traktr.modules.tickets.router import router as tickets_router

# Configure standard logging
logging.basicConfig(
    level=getattr(logging, get_settings().app_log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("traktr")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    logger.info(
        f"Starting Traktr API v{__version__} "
        f"[env={settings.app_env}] "
        f"[in_memory={settings.use_in_memory_backends}] "
        f"[features={settings.features.to_dict()}]"
    )
    yield
    logger.info("Shutting down Traktr API")


# Create FastAPI application
app = FastAPI(
    title="Traktr API",
    description="Field-service job tracker: session resolution and multi-backend job synchronization.",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Middleware
# =============================================================================


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.info(f"[{request_id}] {request.method} {request.url.path}")

    response = await call_next(request)

    logger.info(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code}")

    return response


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add request ID to all requests."""
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(TraktrException)
async def traktr_exception_handler(request: Request, exc: TraktrException):
    """Handle Traktr custom exceptions."""
    request_id = getattr(request.state, "request_id", None)

    logger.warning(f"TraktrException: {exc.code} - {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
                request_id=request_id,
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", None)

    logger.error(f"Unhandled exception on {request.url.path}")
    logger.error(f"Exception type: {type(exc).__name__}")
    logger.error(f"Traceback:\n{traceback.format_exc()}")

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="INTERNAL_ERROR",
                message=str(exc) if get_settings().app_debug else "An unexpected error occurred",
                request_id=request_id,
            )
        ).model_dump(),
    )


# =============================================================================
# Health Check
# =============================================================================


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint."""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        version=__version__,
        features=settings.features.to_dict(),
        app_env=settings.app_env,
        in_memory_backends=settings.use_in_memory_backends,
    )


# =============================================================================
# Register Module Routers
# =============================================================================

app.include_router(session_router)
app.include_router(jobs_router)
app.include_router(companies_router)
app.include_router(tickets_router)
app.include_router(chat_router)


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint redirect to docs."""
    return {"message": "Welcome to Traktr API", "docs": "/docs"}
