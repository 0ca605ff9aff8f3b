"""
Main FastAPI application entry point.
Configures the application, middleware, and includes routers.
"""
from dotenv import load_dotenv

# Load environment variables from .env file first
load_dotenv()

from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, settings
from .core.circuit_breaker import CircuitBreaker
from .core.middleware import setup_middlewares
from .exceptions import register_exception_handlers
from .medications.router import router as medications_router
from .status.cache import MedicationStatusCache
from .status.engine import StatusEngine
from .status.router import router as status_router
from .storage.factory import create_store

# Configure logging
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

API_VERSION = __version__


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    The store, status engine and status cache are created in the lifespan and
    kept on `app.state`; routers reach them through dependencies.

    Args:
        app_settings: Settings to use instead of the environment-loaded ones

    Returns:
        FastAPI: Configured application
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Starting MedAlert API...")
        store = create_store(app_settings)
        result = await store.init()
        if not result.success:
            logger.error(f"❌ Store initialization failed: {result.error.code} - {result.error.message}")

        engine = StatusEngine(store)
        breaker = CircuitBreaker(
            threshold=app_settings.circuit_breaker_threshold,
            reset_timeout=app_settings.circuit_breaker_timeout,
            context="status_cache",
        )
        app.state.store = store
        app.state.engine = engine
        app.state.status_cache = MedicationStatusCache(engine, breaker)
        try:
            yield
        finally:
            await store.close()
            logger.info("MedAlert API stopped")

    app = FastAPI(
        title="MedAlert API",
        description="Local API for medication reminders and daily status",
        version=API_VERSION,
        lifespan=lifespan,
    )

    # Register exception handlers
    register_exception_handlers(app)

    # Configure CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Setup custom middleware
    setup_middlewares(app)

    # Include routers
    app.include_router(medications_router, prefix="/api/v1/medications", tags=["Medications"])
    app.include_router(status_router, prefix="/api/v1/status", tags=["Status"])

    # Root endpoint
    @app.get("/")
    def root():
        """
        Root endpoint.

        Returns:
            dict: Welcome message and API version
        """
        return {"message": "Welcome to MedAlert API", "version": API_VERSION}

    # Health check endpoint
    @app.get("/health")
    async def health_check(request: Request):
        """
        Health check endpoint for monitoring.

        Returns:
            JSONResponse: 200 when the store is healthy, 503 otherwise
        """
        health = await request.app.state.store.health_check()
        return JSONResponse(
            status_code=200 if health["healthy"] else 503,
            content={
                "status": "healthy" if health["healthy"] else "unhealthy",
                "database": request.app.state.store.platform,
                "message": health["message"],
                "details": health["details"],
            },
        )

    return app


app = create_app()
