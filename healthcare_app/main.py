from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import logging

import redis

from .api.v1.admin import router as admin_router
from .api.v1.appointments import router as appointments_router
from .api.v1.auth import router as auth_router
from .api.v1.doctors import router as doctors_router
from .api.v1.medical_records import router as medical_records_router
from .api.v1.users import router as users_router
from .core.config import Settings, settings as default_settings
from .core.database import Database
from .core.exceptions import AppError
from .services.auth_service import AuthService

logger = logging.getLogger(__name__)


def _error_response(exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.label, "code": exc.code, "detail": exc.detail},
        headers=exc.headers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize application on startup, release resources on shutdown."""
    settings = app.state.settings
    logger.info(f"Starting {settings.APP_NAME}...")

    owns_database = app.state.database is None
    if owns_database:
        app.state.database = Database(settings)
    owns_redis = app.state.redis is None
    if owns_redis:
        app.state.redis = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

    database = app.state.database
    logger.info(f"Using {database.dialect} database")

    try:
        database.init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}")
        raise

    if settings.FIRST_ADMIN_EMAIL and settings.FIRST_ADMIN_PASSWORD:
        with database.session() as db:
            AuthService(db, settings).bootstrap_admin(
                settings.FIRST_ADMIN_EMAIL, settings.FIRST_ADMIN_PASSWORD
            )

    logger.info("Application startup complete")
    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    if owns_redis:
        app.state.redis.close()
    if owns_database:
        database.dispose()


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    redis_client: Optional[redis.Redis] = None
) -> FastAPI:
    """Build the API; database and redis are created by the lifespan unless given."""
    settings = settings or default_settings

    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="A comprehensive healthcare appointment scheduling system",
        openapi_url="/api/v1/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.database = database
    app.state.redis = redis_client

    # Middleware setup
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Only add TrustedHostMiddleware in production, not in testing
    if not settings.TESTING:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

    # Custom middleware for request logging and timing
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.4f}s"
        )

        return response

    # Exception handlers
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return _error_response(exc)

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc: StarletteHTTPException):
        # Status handlers take precedence over class handlers
        if isinstance(exc, AppError):
            return _error_response(exc)
        return JSONResponse(
            status_code=404,
            content={
                "error": "Not Found",
                "message": "The requested resource was not found",
                "path": str(request.url.path)
            }
        )

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.exception(f"Internal server error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "message": "An unexpected error occurred"
            }
        )

    # Include routers
    for router in (
        auth_router, users_router, doctors_router,
        appointments_router, medical_records_router, admin_router
    ):
        app.include_router(router, prefix="/api/v1")

    # Health check endpoint
    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": time.time(),
            "version": settings.VERSION
        }

    # Root endpoint
    @app.get("/")
    def root():
        """Root endpoint with API information."""
        return {
            "message": f"Welcome to {settings.APP_NAME} API",
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc",
            "health": "/health"
        }

    # API Info endpoint
    @app.get("/api/v1/info")
    def api_info():
        """API information endpoint."""
        return {
            "name": settings.APP_NAME,
            "version": settings.VERSION,
            "endpoints": {
                "authentication": "/api/v1/auth",
                "users": "/api/v1/users",
                "doctors": "/api/v1/doctors",
                "appointments": "/api/v1/appointments",
                "medical_records": "/api/v1/medical-records",
                "admin": "/api/v1/admin",
                "docs": "/docs",
                "openapi": "/api/v1/openapi.json"
            }
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "healthcare_app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.DEBUG,
        log_level=default_settings.LOG_LEVEL.lower()
    )
