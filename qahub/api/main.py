"""
FastAPI application entrypoint for the QA Resource Hub API.

This module initializes the FastAPI app with all necessary
configurations, middleware, and route handlers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from common.config import get_settings
from common.db import create_engine_from_url, create_session_factory, create_tables
from common.locks import create_keyed_lock
from common.logging_conf import setup_fastapi_logging
from modules.identity import SupabaseIdentityProvider
from modules.kv_store import KeyValueStore
from modules.submission_service import SubmissionService

from .errors import register_exception_handlers
from .routes.router import api_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events for the application.
    """
    # Startup
    settings = get_settings()
    setup_fastapi_logging(settings)
    logger.info("Starting QA Resource Hub API...")

    if not settings.supabase_url or not settings.supabase_service_role_key:
        raise RuntimeError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set"
        )

    # Initialize key-value store
    engine = create_engine_from_url(
        settings.database_url,
        echo=settings.debug
    )
    create_tables(engine)
    store = KeyValueStore(create_session_factory(engine))

    # Initialize identity provider
    identity_provider = SupabaseIdentityProvider(
        settings.supabase_url,
        settings.supabase_service_role_key,
        timeout=settings.identity_timeout_seconds
    )

    locks, redis_client = create_keyed_lock(
        settings.lock_backend,
        settings.redis_url,
        timeout=settings.lock_timeout_seconds
    )

    # Store in app state
    app.state.submission_service = SubmissionService(
        store,
        locks,
        identity_provider=identity_provider,
        admin_secret=settings.admin_secret
    )

    logger.info(
        f"QA Resource Hub API started "
        f"({engine.url.get_backend_name()} store, "
        f"{settings.lock_backend} locks)"
    )

    yield

    # Shutdown
    logger.info("Shutting down QA Resource Hub API...")
    identity_provider.close()
    engine.dispose()
    if redis_client is not None:
        redis_client.close()
    logger.info("QA Resource Hub API shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Routes are served at the root and, for clients of the earlier
    Express backend, under /api as well.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="QA Resource Hub API",
        description="Community QA resources with admin moderation",
        version="0.1.0",
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include API routes
    app.include_router(api_router)
    app.include_router(api_router, prefix="/api", include_in_schema=False)

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
