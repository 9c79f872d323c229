"""Data access objects."""

from worktrack.dao.base import BaseDAO

__all__ = ["BaseDAO"]
