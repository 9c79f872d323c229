"""
Pydantic schemas for tenancy resources.

WHAT: Write payloads and read projections for departments, vendors and
materials, plus the soft-delete state projection shared by every entity.

WHY: organization_id is never taken from a payload except for platform
users creating departments in another tenant; everywhere else it is the
actor's organization, so a request cannot place data in a foreign tenant.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from worktrack.models.material import MaterialCategory


# ============================================================================
# Department
# ============================================================================


class DepartmentCreate(BaseModel):
    """Department creation request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    organization_id: Optional[int] = Field(
        None, description="Target organization (defaults to the actor's)"
    )
    hod_id: Optional[int] = Field(None, description="User to appoint as head of department")


class DepartmentResponse(BaseModel):
    """Department read projection."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    organization_id: int
    hod_id: Optional[int] = None
    is_deleted: bool
    created_at: datetime


# ============================================================================
# Vendor
# ============================================================================


class VendorCreate(BaseModel):
    """Vendor creation request. department_id defaults to the actor's."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    contact_person: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    department_id: Optional[int] = None


class VendorResponse(BaseModel):
    """Vendor read projection."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    organization_id: int
    department_id: int
    is_deleted: bool


# ============================================================================
# Material
# ============================================================================


class MaterialCreate(BaseModel):
    """Material creation request. department_id defaults to the actor's."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    category: MaterialCategory = MaterialCategory.OTHER
    unit_type: str = Field("pcs", min_length=1, max_length=20)
    price: Decimal = Field(Decimal("0"), ge=0)
    department_id: Optional[int] = None


class MaterialResponse(BaseModel):
    """Material read projection."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: MaterialCategory
    unit_type: str
    price: Decimal
    organization_id: int
    department_id: int
    is_deleted: bool


# ============================================================================
# Soft-delete state
# ============================================================================


class SoftDeleteState(BaseModel):
    """
    Soft-delete audit fields of any entity.

    WHY: Returned by delete/restore so callers can show who deleted or
    restored a record and when.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[int] = None
    restored_at: Optional[datetime] = None
    restored_by: Optional[int] = None
