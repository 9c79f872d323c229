"""
Material model.

WHAT: Consumable materials priced per unit and referenced by task activities.

WHY: Activity cost is derived at read time as price x quantity, so a price
change is reflected everywhere without rewriting activities.
"""

from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, Text, Enum as SQLEnum

from worktrack.models.base import Base, TimestampMixin, PrimaryKeyMixin
from worktrack.models.soft_delete import SoftDeleteMixin


class MaterialCategory(str, Enum):
    """Material categories."""

    ELECTRICAL = "Electrical"
    MECHANICAL = "Mechanical"
    PLUMBING = "Plumbing"
    HARDWARE = "Hardware"
    CLEANING = "Cleaning"
    TEXTILES = "Textiles"
    CONSUMABLES = "Consumables"
    CONSTRUCTION = "Construction"
    OTHER = "Other"


class Material(Base, PrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """Material owned by a department."""

    __tablename__ = "materials"

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(
        SQLEnum(MaterialCategory, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=MaterialCategory.OTHER,
    )
    unit_type = Column(String(20), nullable=False, default="pcs")
    price = Column(Numeric(12, 2), nullable=False, default=0)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
