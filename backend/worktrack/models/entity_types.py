"""
Entity and resource type enumerations.

WHAT: Names of every node in the entity graph and every resource type in
the authorization matrix.

WHY: Polymorphic parent references are stored as a tagged union
(parent_id + parent_model). parent_model is always one of these enum
values, never inferred from the referenced row.
"""

from enum import Enum


class EntityType(str, Enum):
    """
    Concrete entity types (graph nodes).

    The three task variants are distinct nodes: child edges and parent
    discriminators are keyed by the variant name.
    """

    ORGANIZATION = "Organization"
    DEPARTMENT = "Department"
    USER = "User"
    VENDOR = "Vendor"
    MATERIAL = "Material"
    PROJECT_TASK = "ProjectTask"
    ROUTINE_TASK = "RoutineTask"
    ASSIGNED_TASK = "AssignedTask"
    TASK_ACTIVITY = "TaskActivity"
    TASK_COMMENT = "TaskComment"
    ATTACHMENT = "Attachment"


class ResourceType(str, Enum):
    """
    Resource types known to the authorization matrix.

    All task variants are authorized as ``Task``.
    """

    ORGANIZATION = "Organization"
    DEPARTMENT = "Department"
    USER = "User"
    VENDOR = "Vendor"
    MATERIAL = "Material"
    TASK = "Task"
    TASK_ACTIVITY = "TaskActivity"
    TASK_COMMENT = "TaskComment"
    ATTACHMENT = "Attachment"


TASK_TYPES = (
    EntityType.PROJECT_TASK,
    EntityType.ROUTINE_TASK,
    EntityType.ASSIGNED_TASK,
)


def resource_type_for(entity_type: EntityType) -> ResourceType:
    """Map a graph node type to its authorization resource type."""
    entity_type = EntityType(entity_type)
    if entity_type in TASK_TYPES:
        return ResourceType.TASK
    return ResourceType(entity_type.value)
