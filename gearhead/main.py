"""
Gearhead Assistant - FastAPI Application

Main entry point for the backend API.
Provides chat streaming, file ingestion and background email AI jobs.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gearhead.config.settings import settings
from gearhead.infrastructure.background import drain_background_tasks
from gearhead.infrastructure.exceptions import (
    AuthenticationError,
    GearheadError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    UnsupportedMediaTypeError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 30


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Gearhead Assistant backend starting in {settings.environment} mode...")

    try:
        from gearhead.infrastructure.db.database import init_db
        await init_db()
        logger.info("SQLModel database connection pool initialized")
    except Exception as e:
        logger.warning(f"SQLModel database initialization skipped: {e}")

    yield

    try:
        await asyncio.wait_for(drain_background_tasks(), timeout=SHUTDOWN_DRAIN_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("Background tasks still running at shutdown")

    try:
        from gearhead.infrastructure.db.database import close_db
        await close_db()
        logger.info("SQLModel database connection pool closed")
    except Exception as e:
        logger.warning(f"SQLModel database shutdown error: {e}")

    logger.info("Gearhead Assistant backend shutting down...")


app = FastAPI(
    title="Gearhead Assistant",
    description="Chat, file and email assistant backend for the car enthusiast community",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Thread-ID"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors."""
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(status_code=401, content=exc.to_dict())


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    return JSONResponse(status_code=403, content=exc.to_dict())


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return JSONResponse(status_code=404, content=exc.to_dict())


@app.exception_handler(UnsupportedMediaTypeError)
async def unsupported_media_type_handler(request: Request, exc: UnsupportedMediaTypeError):
    return JSONResponse(status_code=415, content=exc.to_dict())


@app.exception_handler(RateLimitError)
async def rate_limit_error_handler(request: Request, exc: RateLimitError):
    """Handle rate limit errors."""
    retry_after = exc.details.get("retry_after_seconds")
    headers = {"Retry-After": str(retry_after)} if retry_after else None
    return JSONResponse(status_code=429, content=exc.to_dict(), headers=headers)


@app.exception_handler(GearheadError)
async def general_error_handler(request: Request, exc: GearheadError):
    """Handle all other application errors."""
    logger.error(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=500, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Anything outside the application error hierarchy is a 500 with a JSON body."""
    logger.exception(f"Unhandled {exc.__class__.__name__} on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "type": exc.__class__.__name__},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid request: {location} {first.get('msg', '')}".strip()
    return JSONResponse(status_code=400, content={"error": message})


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "gearhead-assistant"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Gearhead Assistant API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from gearhead.api.routes import ai_jobs, auth, chat, upload  # noqa: E402

app.include_router(chat.router, prefix="/api", tags=["Chat"])
app.include_router(upload.router, prefix="/api", tags=["Files"])
app.include_router(ai_jobs.router, prefix="/api", tags=["AI Jobs"])
app.include_router(auth.router, prefix="/api", tags=["Auth"])
