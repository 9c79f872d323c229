"""
Task models (polymorphic root of the task hierarchy).

WHAT: BaseTask with three concrete variants stored in one table:
- ProjectTask: vendor-backed work with cost tracking
- RoutineTask: recurring work with a constrained status/priority domain
- AssignedTask: work assigned to a bounded set of users

WHY: Task children (activities, comments, attachments) reference their task
polymorphically through parent_id + parent_model. The task_type
discriminator column records which variant a row is, and parent_model
always names that same variant.

HOW: SQLAlchemy single-table inheritance with polymorphic_on=task_type.
Assignees and watchers are association rows loaded with selectin so they
are available to the scope resolver without lazy loads.
"""

from enum import Enum
from typing import List

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Numeric,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship

from worktrack.models.base import Base, TimestampMixin, PrimaryKeyMixin
from worktrack.models.entity_types import EntityType
from worktrack.models.soft_delete import SoftDeleteMixin


MAX_ASSIGNEES = 20
MAX_WATCHERS = 20


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    TO_DO = "To Do"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    PENDING = "Pending"


class TaskPriority(str, Enum):
    """Task priority level."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


# RoutineTask may never be "To Do" nor "Low" priority
ROUTINE_TASK_STATUSES = (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.PENDING)
ROUTINE_TASK_PRIORITIES = (TaskPriority.MEDIUM, TaskPriority.HIGH, TaskPriority.URGENT)


class TaskWatcher(Base):
    """Association row: a user watching a task."""

    __tablename__ = "task_watchers"

    task_id = Column(Integer, ForeignKey("tasks.id"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True, index=True)


class TaskAssignee(Base):
    """Association row: a user assigned to an AssignedTask."""

    __tablename__ = "task_assignees"

    task_id = Column(Integer, ForeignKey("tasks.id"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True, index=True)


class BaseTask(Base, PrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """
    Common task fields shared by all variants.

    Attributes:
        task_type: Discriminator (ProjectTask / RoutineTask / AssignedTask)
        title: Short title (ProjectTask and AssignedTask)
        description: Task description
        status: Current status
        priority: Priority level
        organization_id: Owning organization (immutable)
        department_id: Owning department (immutable)
        created_by: Creating user
        start_date / due_date: Optional schedule
        watcher_links: Users watching the task
    """

    __tablename__ = "tasks"

    task_type = Column(String(32), nullable=False, index=True)

    title = Column(String(50), nullable=True)
    description = Column(Text, nullable=False)

    status = Column(
        SQLEnum(TaskStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=TaskStatus.TO_DO,
    )
    priority = Column(
        SQLEnum(TaskPriority, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=TaskPriority.MEDIUM,
    )

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    start_date = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)

    watcher_links = relationship(
        "TaskWatcher",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    # Only AssignedTask rows have assignees
    assignee_links = relationship(
        "TaskAssignee",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {
        "polymorphic_on": task_type,
        # Variant columns are loaded with the base row; no lazy loads under asyncio
        "with_polymorphic": "*",
    }

    @property
    def entity_type(self) -> EntityType:
        return EntityType(self.task_type)

    @property
    def watcher_ids(self) -> List[int]:
        return [link.user_id for link in self.watcher_links]

    def set_watchers(self, user_ids: List[int]) -> None:
        """Replace the watcher set (duplicates collapsed, order kept)."""
        existing = {link.user_id: link for link in self.watcher_links}
        self.watcher_links = [
            existing.get(uid) or TaskWatcher(user_id=uid) for uid in dict.fromkeys(user_ids)
        ]

    def __repr__(self) -> str:
        return f"<{self.task_type}(id={self.id}, dept={self.department_id}, deleted={self.is_deleted})>"


class ProjectTask(BaseTask):
    """
    Task carried out with an external vendor.

    Restoring a ProjectTask requires its vendor to be active.
    """

    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True, index=True)
    estimated_cost = Column(Numeric(12, 2), nullable=True)
    actual_cost = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=True, default="ETB")

    __mapper_args__ = {"polymorphic_identity": EntityType.PROJECT_TASK.value}


class RoutineTask(BaseTask):
    """
    Recurring task. Status is never "To Do" and priority is never "Low".

    Routine tasks carry no activities.
    """

    __mapper_args__ = {"polymorphic_identity": EntityType.ROUTINE_TASK.value}


class AssignedTask(BaseTask):
    """
    Task assigned to between 1 and MAX_ASSIGNEES users.

    Restoring prunes deleted assignees and fails if none remain.
    """

    __mapper_args__ = {"polymorphic_identity": EntityType.ASSIGNED_TASK.value}

    @property
    def assignee_ids(self) -> List[int]:
        return [link.user_id for link in self.assignee_links]

    def set_assignees(self, user_ids: List[int]) -> None:
        """Replace the assignee set (duplicates collapsed, order kept)."""
        existing = {link.user_id: link for link in self.assignee_links}
        self.assignee_links = [
            existing.get(uid) or TaskAssignee(user_id=uid) for uid in dict.fromkeys(user_ids)
        ]


TASK_MODELS = {
    EntityType.PROJECT_TASK: ProjectTask,
    EntityType.ROUTINE_TASK: RoutineTask,
    EntityType.ASSIGNED_TASK: AssignedTask,
}
