"""
Notification Dispatcher for entity lifecycle events.

WHAT: Formats post-commit events ("task:deleted", "comment:created", ...)
and delivers them to the rooms of the affected organization and
department.

WHY: Separates notification logic from business logic. The services only
decide *that* something happened; the dispatcher decides how the world
hears about it, and a real-time transport (websocket rooms, a queue) can
be plugged in without touching the services.

HOW: Services call ``notify_entity_event`` from the mutation
coordinator's post-commit callback. The default dispatcher writes
structured log records; delivery guarantees belong to the dispatcher.
"""

import logging
from typing import Any, Dict, List, Optional

from worktrack.models.department import Department
from worktrack.models.entity_types import EntityType, TASK_TYPES
from worktrack.models.graph import entity_type_of
from worktrack.models.organization import Organization

logger = logging.getLogger(__name__)


_EVENT_PREFIXES = {
    EntityType.ORGANIZATION: "organization",
    EntityType.DEPARTMENT: "department",
    EntityType.USER: "user",
    EntityType.VENDOR: "vendor",
    EntityType.MATERIAL: "material",
    EntityType.TASK_ACTIVITY: "activity",
    EntityType.TASK_COMMENT: "comment",
    EntityType.ATTACHMENT: "attachment",
}


def event_prefix_for(entity_type: EntityType) -> str:
    """Event namespace of an entity type (all task variants share "task")."""
    entity_type = EntityType(entity_type)
    if entity_type in TASK_TYPES:
        return "task"
    return _EVENT_PREFIXES[entity_type]


def audience_for(document: Any) -> List[str]:
    """
    Rooms that should hear about a document.

    Returns:
        ["organization:<id>", "department:<id>"] (department omitted for
        organizations)
    """
    if isinstance(document, Organization):
        return [f"organization:{document.id}"]
    if isinstance(document, Department):
        return [f"organization:{document.organization_id}", f"department:{document.id}"]
    return [
        f"organization:{document.organization_id}",
        f"department:{document.department_id}",
    ]


class NotificationDispatcher:
    """
    Interface of the event transport.

    Subclasses implement ``dispatch``.
    """

    async def dispatch(self, event_name: str, payload: Dict[str, Any], audience: List[str]) -> None:
        """
        Deliver one event.

        Args:
            event_name: "<prefix>:<action>", e.g. "task:deleted"
            payload: JSON-serializable event body
            audience: Room names, e.g. ["organization:1", "department:4"]
        """
        raise NotImplementedError


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Dispatcher that only logs events. Used when no transport is configured."""

    async def dispatch(self, event_name: str, payload: Dict[str, Any], audience: List[str]) -> None:
        logger.info(
            "Event %s -> %s",
            event_name,
            ", ".join(audience),
            extra={"event_name": event_name, "event_payload": payload, "audience": audience},
        )


async def notify_entity_event(
    dispatcher: Optional[NotificationDispatcher],
    action: str,
    document: Any,
    actor_id: int,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Build and dispatch a lifecycle event for a committed document.

    Args:
        dispatcher: Transport (no-op when None)
        action: "created", "updated", "deleted" or "restored"
        document: The committed root document
        actor_id: User who performed the action
        extra: Additional payload fields (e.g. affected_count)
    """
    if dispatcher is None:
        return

    entity_type = entity_type_of(document)
    payload: Dict[str, Any] = {
        "entity_type": entity_type.value,
        "entity_id": document.id,
        "actor_id": actor_id,
    }
    if extra:
        payload.update(extra)

    await dispatcher.dispatch(
        f"{event_prefix_for(entity_type)}:{action}",
        payload,
        audience_for(document),
    )


async def notify_head_pruned(
    dispatcher: Optional[NotificationDispatcher],
    department: Department,
    user_id: int,
    actor_id: int,
    reason: str,
) -> None:
    """
    Tell a department's rooms that its head reference was cleared.

    Args:
        dispatcher: Transport (no-op when None)
        department: The department that lost its head
        user_id: The former head
        actor_id: User whose delete/restore caused it
        reason: Short human-readable cause
    """
    if dispatcher is None:
        return

    await dispatcher.dispatch(
        "department:hod_pruned",
        {
            "department_id": department.id,
            "user_id": user_id,
            "actor_id": actor_id,
            "reason": reason,
        },
        audience_for(department),
    )
