"""
Task activity model.

WHAT: A log entry of work done on a ProjectTask or AssignedTask, with the
materials consumed.

WHY: Activities are children of a task variant through a polymorphic
reference (parent_id + parent_model). Material cost is never stored; it is
derived at read time as price x quantity.
"""

from typing import List

from sqlalchemy import Column, ForeignKey, Integer, Numeric, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship

from worktrack.models.base import Base, TimestampMixin, PrimaryKeyMixin
from worktrack.models.entity_types import EntityType
from worktrack.models.soft_delete import SoftDeleteMixin


MAX_MATERIALS = 20

ACTIVITY_PARENT_TYPES = (EntityType.PROJECT_TASK, EntityType.ASSIGNED_TASK)


class TaskActivityMaterial(Base, PrimaryKeyMixin):
    """A material consumed by an activity."""

    __tablename__ = "task_activity_materials"

    activity_id = Column(Integer, ForeignKey("task_activities.id"), nullable=False, index=True)
    material_id = Column(Integer, ForeignKey("materials.id"), nullable=False, index=True)
    quantity = Column(Numeric(12, 2), nullable=False, default=0)


class TaskActivity(Base, PrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """
    Activity attached to a task variant.

    Attributes:
        activity: Description of the work done
        parent_id / parent_model: Tagged reference to the owning task
        material_usages: Materials consumed with quantities
    """

    __tablename__ = "task_activities"

    activity = Column(Text, nullable=False)

    parent_id = Column(Integer, nullable=False, index=True)
    parent_model = Column(
        SQLEnum(EntityType, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    material_usages = relationship(
        "TaskActivityMaterial",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="TaskActivityMaterial.id",
    )

    @property
    def material_ids(self) -> List[int]:
        return [usage.material_id for usage in self.material_usages]
