# backoffice/main.py - FastAPI entry point for the back-office API
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import traceback
import time

from backoffice.core.config import settings
from backoffice.core.db import db_manager, get_engine, health_check as database_health
from backoffice.core.exceptions import BackOfficeError
from backoffice.models import Base
from backoffice.api.routers import academic, classes, fees, enrollments


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.log_format_string,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting {settings.API_TITLE}...")
    logger.info(f"Environment: {settings.ENV}")
    logger.info(f"Database: {db_manager.safe_url}")

    engine = get_engine()

    # Create tables if they don't exist (for development)
    if settings.is_development:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")

    yield

    logger.info(f"Shutting down {settings.API_TITLE}...")
    db_manager.close()


app = FastAPI(
    title=settings.API_TITLE,
    description="Academic-year scoped classes, fee schedules, enrollments and payments",
    version=settings.API_VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and duration of every request"""
    start_time = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"Error processing {request.method} {request.url.path}: {e}")
        raise
    process_time = time.time() - start_time
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")
    return response


app.add_middleware(CORSMiddleware, **settings.get_cors_config())


@app.exception_handler(BackOfficeError)
async def backoffice_exception_handler(request: Request, exc: BackOfficeError):
    """Typed engine errors become {"detail", "code"} with their HTTP status"""
    logger.warning(f"{request.method} {request.url.path} failed: {exc.code} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    logger.error(traceback.format_exc())
    if settings.is_development:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "code": "internal_error", "traceback": traceback.format_exc()},
        )
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "code": "internal_error"})


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENV,
        "version": settings.API_VERSION,
        "database": database_health(),
    }


app.include_router(academic.router, prefix="/api/academic-years", tags=["Academic Years"])
app.include_router(academic.levels_router, prefix="/api/levels", tags=["Levels"])
app.include_router(classes.router, prefix="/api/class-sections", tags=["Class Sections"])
app.include_router(fees.router, prefix="/api/fee-schedules", tags=["Fee Schedules"])
app.include_router(enrollments.router, prefix="/api/enrollments", tags=["Enrollments"])
app.include_router(enrollments.students_router, prefix="/api/students", tags=["Students"])
logger.info("All routers registered successfully")


@app.get("/")
async def root():
    return {
        "message": settings.API_TITLE,
        "version": settings.API_VERSION,
        "docs_url": "/docs" if settings.is_development else "Documentation disabled in production",
    }
