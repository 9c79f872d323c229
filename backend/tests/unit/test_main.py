"""
Tests for the application factory.

WHY: The matrix and engine components are built once per process; the
factory must wire them into app.state and expose the loaded matrix
version on the health endpoint.
"""

import json

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker

from worktrack.core.authorization_matrix import DEFAULT_MATRIX_PATH, AuthorizationMatrix
from worktrack.core.config import settings
from worktrack.main import create_app
from worktrack.services.notification_service import LoggingNotificationDispatcher


class TestCreateApp:
    """create_app wiring."""

    def test_health(self):
        matrix = AuthorizationMatrix.default()
        app = create_app(matrix=matrix, session_factory=async_sessionmaker())

        response = TestClient(app).get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "version": settings.VERSION,
            "authorization_matrix_version": matrix.version,
        }

    def test_components_share_matrix_and_dispatcher(self, dispatcher):
        matrix = AuthorizationMatrix.default()
        session_factory = async_sessionmaker()

        app = create_app(matrix=matrix, session_factory=session_factory, dispatcher=dispatcher)

        assert app.state.authorization_matrix is matrix
        assert app.state.scope_resolver.matrix is matrix
        assert app.state.lifecycle_service.dispatcher is dispatcher
        assert app.state.entity_service.dispatcher is dispatcher
        assert app.state.lifecycle_service.coordinator is app.state.mutation_coordinator
        assert app.state.mutation_coordinator.session_factory is session_factory

    def test_defaults_to_logging_dispatcher(self):
        app = create_app(matrix=AuthorizationMatrix.default(), session_factory=async_sessionmaker())

        assert isinstance(app.state.lifecycle_service.dispatcher, LoggingNotificationDispatcher)

    def test_matrix_loaded_from_settings(self, tmp_path, monkeypatch):
        data = json.loads(DEFAULT_MATRIX_PATH.read_text())
        data["version"] = "2.0.0-test"
        path = tmp_path / "matrix.json"
        path.write_text(json.dumps(data))
        monkeypatch.setattr(settings, "AUTHORIZATION_MATRIX_PATH", str(path))

        app = create_app(session_factory=async_sessionmaker())

        assert app.state.authorization_matrix.version == "2.0.0-test"
