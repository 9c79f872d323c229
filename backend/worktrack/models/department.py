"""
Department model.

WHY: Departments partition an organization. Users, vendors, materials and
tasks belong to exactly one department, which is what the ownDept scope
constrains on.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text, UniqueConstraint

from worktrack.models.base import Base, TimestampMixin, PrimaryKeyMixin
from worktrack.models.soft_delete import SoftDeleteMixin


class Department(Base, PrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """
    Department within an organization.

    organization_id is immutable after creation. hod_id is cleared when
    the head is deleted, and on restore when it no longer points at an
    active head of the same organization.
    """

    __tablename__ = "departments"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_departments_organization_name"),
    )

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    # Head of department (a user of the same organization with is_hod set)
    hod_id = Column(Integer, nullable=True, index=True)

    created_by = Column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<Department(id={self.id}, name='{self.name}', org={self.organization_id})>"
