"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from worktrack.models.base import Base, TimestampMixin, PrimaryKeyMixin, utcnow
from worktrack.models.soft_delete import SoftDeleteMixin
from worktrack.models.entity_types import EntityType, ResourceType, TASK_TYPES, resource_type_for
from worktrack.models.organization import Organization
from worktrack.models.department import Department
from worktrack.models.user import User, UserRole
from worktrack.models.vendor import Vendor
from worktrack.models.material import Material, MaterialCategory
from worktrack.models.task import (
    BaseTask,
    ProjectTask,
    RoutineTask,
    AssignedTask,
    TaskAssignee,
    TaskWatcher,
    TaskStatus,
    TaskPriority,
    TASK_MODELS,
)
from worktrack.models.task_activity import TaskActivity, TaskActivityMaterial
from worktrack.models.task_comment import TaskComment, CommentMention
from worktrack.models.attachment import Attachment, AttachmentType, FILE_SIZE_LIMITS
from worktrack.models.graph import (
    ChildEdge,
    ParentEdge,
    CASCADE_GRAPH,
    child_types_of,
    model_for,
    entity_type_of,
    parent_ref_of,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "SoftDeleteMixin",
    "utcnow",
    "EntityType",
    "ResourceType",
    "TASK_TYPES",
    "resource_type_for",
    "Organization",
    "Department",
    "User",
    "UserRole",
    "Vendor",
    "Material",
    "MaterialCategory",
    "BaseTask",
    "ProjectTask",
    "RoutineTask",
    "AssignedTask",
    "TaskAssignee",
    "TaskWatcher",
    "TaskStatus",
    "TaskPriority",
    "TASK_MODELS",
    "TaskActivity",
    "TaskActivityMaterial",
    "TaskComment",
    "CommentMention",
    "Attachment",
    "AttachmentType",
    "FILE_SIZE_LIMITS",
    "ChildEdge",
    "ParentEdge",
    "CASCADE_GRAPH",
    "child_types_of",
    "model_for",
    "entity_type_of",
    "parent_ref_of",
]
