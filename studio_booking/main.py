"""
Studio Booking - FastAPI Backend Application
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import structlog

from studio_booking.config import settings
from studio_booking.api import admin, reservations
from studio_booking.engine.errors import (
    CONFLICT,
    FORBIDDEN,
    VALIDATION,
    BookingError,
    NotFound,
    NotFoundOrForbidden,
)

logging.basicConfig(format="%(message)s", level=settings.log_level)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

STATUS_BY_CATEGORY = {
    VALIDATION: 400,
    CONFLICT: 409,
    FORBIDDEN: 403,
}


def status_for(error: BookingError) -> int:
    if isinstance(error, (NotFoundOrForbidden, NotFound)):
        return 404
    return STATUS_BY_CATEGORY.get(error.category, 503)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Studio Booking API", version="1.0.0")
    yield
    logger.info("Shutting down Studio Booking API")


# Create FastAPI application
app = FastAPI(
    title="Studio Booking",
    description="Reservation and availability engine for recording studios",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "Booking request rejected",
        path=request.url.path,
        error=exc.code,
        category=exc.category,
        status_code=status_code,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# Health check endpoints
@app.get("/health")
async def health():
    """Basic health check"""
    return {"status": "healthy", "service": "api", "version": "1.0.0"}


@app.get("/health/ready")
async def ready():
    """Readiness check with dependency verification"""
    from studio_booking.database import SessionLocal

    checks = {}

    # Check database
    try:
        async with SessionLocal() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"failed: {str(e)}"

    # Check Redis
    try:
        from studio_booking.jobs.celery_app import celery_app
        celery_app.control.ping(timeout=1)
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"failed: {str(e)}"

    all_ok = all(v == "ok" for v in checks.values())

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
    }


# Include API routers
app.include_router(reservations.router, prefix="/bookings", tags=["Bookings"])
app.include_router(reservations.availability_router, prefix="/availability", tags=["Availability"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "studio_booking.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
