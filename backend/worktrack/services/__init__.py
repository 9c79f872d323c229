"""
Service layer.

WHY: Services hold the business rules; DAOs hold the queries. Every
state change goes through the MutationCoordinator.
"""

from worktrack.services.cascade import CascadeEngine, CascadeResult
from worktrack.services.entity_service import EntityService
from worktrack.services.lifecycle_service import EntityLifecycleService, LifecycleResult
from worktrack.services.mutation import MutationCoordinator
from worktrack.services.notification_service import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from worktrack.services.scope_resolver import PermissionCheck, ScopeResolver

__all__ = [
    "CascadeEngine",
    "CascadeResult",
    "EntityService",
    "EntityLifecycleService",
    "LifecycleResult",
    "MutationCoordinator",
    "LoggingNotificationDispatcher",
    "NotificationDispatcher",
    "PermissionCheck",
    "ScopeResolver",
]
