"""
Vendor model.

WHY: Vendors are external suppliers referenced by project tasks. A deleted
vendor blocks the restore of any project task that references it.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text

from worktrack.models.base import Base, TimestampMixin, PrimaryKeyMixin
from worktrack.models.soft_delete import SoftDeleteMixin


class Vendor(Base, PrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """Vendor owned by a department."""

    __tablename__ = "vendors"

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    contact_person = Column(String(100), nullable=True)
    email = Column(String(50), nullable=True)
    phone = Column(String(20), nullable=True)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
