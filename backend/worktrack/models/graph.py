"""
Entity graph model.

WHAT: The fixed parent/child edge table of the tenancy graph:

    Organization -> Department -> {User, Vendor, Material, ProjectTask,
                                   RoutineTask, AssignedTask}
    ProjectTask | AssignedTask -> {TaskActivity, TaskComment, Attachment}
    RoutineTask                -> {TaskComment, Attachment}
    TaskActivity               -> {TaskComment, Attachment}
    TaskComment                -> {TaskComment, Attachment}

WHY: This table is the single source of truth walked by the cascade engine
(downwards, for delete) and by the restore ancestor check (upwards).
There is no runtime discovery: a change to the graph is a change here.

HOW: Edges are keyed by the concrete EntityType. A polymorphic edge carries
the discriminator value the child stores in parent_model, so the child
lookup is ``fk == parent.id AND parent_model == discriminator``.
"""

from typing import Any, Dict, NamedTuple, Optional, Tuple, Type

from worktrack.models.attachment import Attachment
from worktrack.models.base import Base
from worktrack.models.department import Department
from worktrack.models.entity_types import EntityType, TASK_TYPES
from worktrack.models.material import Material
from worktrack.models.organization import Organization
from worktrack.models.task import BaseTask, ProjectTask, RoutineTask, AssignedTask
from worktrack.models.task_activity import TaskActivity
from worktrack.models.task_comment import TaskComment
from worktrack.models.user import User
from worktrack.models.vendor import Vendor


class ChildEdge(NamedTuple):
    """
    One downward edge of the graph.

    Attributes:
        child_type: Entity type of the children
        foreign_key: Column on the child holding the parent id
        discriminator: parent_model value for polymorphic edges, else None
    """

    child_type: EntityType
    foreign_key: str
    discriminator: Optional[EntityType] = None


class ParentEdge(NamedTuple):
    """
    The upward edge of an entity type.

    Attributes:
        foreign_key: Column holding the parent id
        parent_type: Fixed parent type for direct edges
        discriminator_field: Column holding the parent type for polymorphic edges
    """

    foreign_key: str
    parent_type: Optional[EntityType] = None
    discriminator_field: Optional[str] = None


ENTITY_MODELS: Dict[EntityType, Type[Base]] = {
    EntityType.ORGANIZATION: Organization,
    EntityType.DEPARTMENT: Department,
    EntityType.USER: User,
    EntityType.VENDOR: Vendor,
    EntityType.MATERIAL: Material,
    EntityType.PROJECT_TASK: ProjectTask,
    EntityType.ROUTINE_TASK: RoutineTask,
    EntityType.ASSIGNED_TASK: AssignedTask,
    EntityType.TASK_ACTIVITY: TaskActivity,
    EntityType.TASK_COMMENT: TaskComment,
    EntityType.ATTACHMENT: Attachment,
}


def _task_children(task_type: EntityType, with_activities: bool) -> Tuple[ChildEdge, ...]:
    edges = []
    if with_activities:
        edges.append(ChildEdge(EntityType.TASK_ACTIVITY, "parent_id", task_type))
    edges.append(ChildEdge(EntityType.TASK_COMMENT, "parent_id", task_type))
    edges.append(ChildEdge(EntityType.ATTACHMENT, "parent_id", task_type))
    return tuple(edges)


CASCADE_GRAPH: Dict[EntityType, Tuple[ChildEdge, ...]] = {
    EntityType.ORGANIZATION: (
        ChildEdge(EntityType.DEPARTMENT, "organization_id"),
    ),
    EntityType.DEPARTMENT: (
        ChildEdge(EntityType.USER, "department_id"),
        ChildEdge(EntityType.VENDOR, "department_id"),
        ChildEdge(EntityType.MATERIAL, "department_id"),
        ChildEdge(EntityType.PROJECT_TASK, "department_id"),
        ChildEdge(EntityType.ROUTINE_TASK, "department_id"),
        ChildEdge(EntityType.ASSIGNED_TASK, "department_id"),
    ),
    EntityType.USER: (),
    EntityType.VENDOR: (),
    EntityType.MATERIAL: (),
    EntityType.PROJECT_TASK: _task_children(EntityType.PROJECT_TASK, with_activities=True),
    EntityType.ROUTINE_TASK: _task_children(EntityType.ROUTINE_TASK, with_activities=False),
    EntityType.ASSIGNED_TASK: _task_children(EntityType.ASSIGNED_TASK, with_activities=True),
    EntityType.TASK_ACTIVITY: (
        ChildEdge(EntityType.TASK_COMMENT, "parent_id", EntityType.TASK_ACTIVITY),
        ChildEdge(EntityType.ATTACHMENT, "parent_id", EntityType.TASK_ACTIVITY),
    ),
    EntityType.TASK_COMMENT: (
        ChildEdge(EntityType.TASK_COMMENT, "parent_id", EntityType.TASK_COMMENT),
        ChildEdge(EntityType.ATTACHMENT, "parent_id", EntityType.TASK_COMMENT),
    ),
    EntityType.ATTACHMENT: (),
}


PARENT_EDGES: Dict[EntityType, Optional[ParentEdge]] = {
    EntityType.ORGANIZATION: None,
    EntityType.DEPARTMENT: ParentEdge("organization_id", parent_type=EntityType.ORGANIZATION),
    EntityType.USER: ParentEdge("department_id", parent_type=EntityType.DEPARTMENT),
    EntityType.VENDOR: ParentEdge("department_id", parent_type=EntityType.DEPARTMENT),
    EntityType.MATERIAL: ParentEdge("department_id", parent_type=EntityType.DEPARTMENT),
    EntityType.PROJECT_TASK: ParentEdge("department_id", parent_type=EntityType.DEPARTMENT),
    EntityType.ROUTINE_TASK: ParentEdge("department_id", parent_type=EntityType.DEPARTMENT),
    EntityType.ASSIGNED_TASK: ParentEdge("department_id", parent_type=EntityType.DEPARTMENT),
    EntityType.TASK_ACTIVITY: ParentEdge("parent_id", discriminator_field="parent_model"),
    EntityType.TASK_COMMENT: ParentEdge("parent_id", discriminator_field="parent_model"),
    EntityType.ATTACHMENT: ParentEdge("parent_id", discriminator_field="parent_model"),
}


def _check_exhaustive() -> None:
    missing = [t for t in EntityType if t not in CASCADE_GRAPH or t not in PARENT_EDGES]
    if missing:
        raise RuntimeError(f"Entity graph is missing node(s): {missing}")

    # Every downward edge must be matched by the child's upward edge
    for parent_type, edges in CASCADE_GRAPH.items():
        for edge in edges:
            parent_edge = PARENT_EDGES[edge.child_type]
            if parent_edge is None or parent_edge.foreign_key != edge.foreign_key:
                raise RuntimeError(
                    f"Edge {parent_type.value} -> {edge.child_type.value} has no matching parent edge"
                )
            if (edge.discriminator is None) != (parent_edge.discriminator_field is None):
                raise RuntimeError(
                    f"Edge {parent_type.value} -> {edge.child_type.value} disagrees on polymorphism"
                )


_check_exhaustive()


def child_types_of(entity_type: EntityType) -> Tuple[ChildEdge, ...]:
    """
    Ordered child edges of an entity type.

    Args:
        entity_type: Parent entity type

    Returns:
        Tuple of (child_type, foreign_key, discriminator) edges
    """
    return CASCADE_GRAPH[EntityType(entity_type)]


def model_for(entity_type: EntityType) -> Type[Base]:
    """SQLAlchemy model class for an entity type."""
    return ENTITY_MODELS[EntityType(entity_type)]


def entity_type_of(document: Any) -> EntityType:
    """
    Entity type of a loaded document.

    Tasks report their discriminator; every other model maps one-to-one.
    """
    if isinstance(document, BaseTask):
        return EntityType(document.task_type)
    for entity_type, model in ENTITY_MODELS.items():
        if entity_type not in TASK_TYPES and type(document) is model:
            return entity_type
    raise TypeError(f"{type(document).__name__} is not an entity of the graph")


def parent_ref_of(entity_type: EntityType, document: Any) -> Optional[Tuple[EntityType, int]]:
    """
    Reference to the parent of a document, following its upward edge.

    Args:
        entity_type: Type of the document
        document: Loaded entity

    Returns:
        (parent_type, parent_id), or None for the root (Organization)
    """
    edge = PARENT_EDGES[EntityType(entity_type)]
    if edge is None:
        return None

    parent_id = getattr(document, edge.foreign_key)
    if edge.discriminator_field is not None:
        parent_type = EntityType(getattr(document, edge.discriminator_field))
    else:
        parent_type = edge.parent_type
    return parent_type, parent_id


def allowed_parent_types(entity_type: EntityType) -> Tuple[EntityType, ...]:
    """Entity types that may appear as the parent of ``entity_type``."""
    entity_type = EntityType(entity_type)
    return tuple(
        parent_type
        for parent_type, edges in CASCADE_GRAPH.items()
        if any(edge.child_type == entity_type for edge in edges)
    )
