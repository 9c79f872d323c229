"""
Main FastAPI application.

WHY: This is the entry point for the application. It configures exception
handlers and builds the process-wide engine components once: the
authorization matrix is loaded and validated at startup and is immutable
for the lifetime of the process.
"""

import logging
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from worktrack.core.authorization_matrix import AuthorizationMatrix
from worktrack.core.config import settings
from worktrack.core.exception_handlers import register_exception_handlers
from worktrack.services.entity_service import EntityService
from worktrack.services.lifecycle_service import EntityLifecycleService
from worktrack.services.mutation import MutationCoordinator
from worktrack.services.notification_service import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from worktrack.services.scope_resolver import ScopeResolver

logger = logging.getLogger(__name__)


def create_app(
    matrix: Optional[AuthorizationMatrix] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    WHY: Factory pattern allows tests to inject their own matrix, database
    and dispatcher.

    Args:
        matrix: Authorization matrix (defaults to the configured one)
        session_factory: Session factory (defaults to the configured database)
        dispatcher: Event transport (defaults to logging only)

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Work tracking API",
        version=settings.VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # WHY: Every failure reaches the client as {code, message, details}
    register_exception_handlers(app)

    if matrix is None:
        matrix = AuthorizationMatrix.from_settings(settings.AUTHORIZATION_MATRIX_PATH)
    if session_factory is None:
        from worktrack.db.session import AsyncSessionLocal

        session_factory = AsyncSessionLocal
    dispatcher = dispatcher or LoggingNotificationDispatcher()

    resolver = ScopeResolver(matrix)
    coordinator = MutationCoordinator(session_factory)

    app.state.authorization_matrix = matrix
    app.state.scope_resolver = resolver
    app.state.mutation_coordinator = coordinator
    app.state.lifecycle_service = EntityLifecycleService(
        session_factory, resolver, coordinator, dispatcher
    )
    app.state.entity_service = EntityService(session_factory, resolver, coordinator, dispatcher)

    logger.info("Application configured with authorization matrix %s", matrix.version)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """
        Health check endpoint.

        Returns:
            Service status, version and the loaded authorization matrix version
        """
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "authorization_matrix_version": matrix.version,
        }

    return app


if __name__ == "__main__":
    import uvicorn

    # Development entry point: `python -m worktrack.main`.
    # In production run `uvicorn worktrack.main:create_app --factory`.
    uvicorn.run(
        "worktrack.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info" if settings.DEBUG else "warning",
    )
