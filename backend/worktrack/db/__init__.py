"""Database engine and session factory."""

from worktrack.db.session import AsyncSessionLocal, build_engine, build_session_factory

__all__ = ["AsyncSessionLocal", "build_engine", "build_session_factory"]
