"""
Organization model.

WHY: Organizations are the root tenant boundary. Every other entity carries
an organization_id and every scope other than crossOrg is constrained to the
actor's organization.
"""

from sqlalchemy import Column, String, Text, Boolean, Integer, false

from worktrack.models.base import Base, TimestampMixin, PrimaryKeyMixin
from worktrack.models.soft_delete import SoftDeleteMixin


class Organization(Base, PrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """
    Organization model representing a tenant.

    The platform organization (is_platform_org=True) hosts the platform
    users who may act across tenants on Organization records. It can never
    be deleted.
    """

    __tablename__ = "organizations"

    name = Column(String(100), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    email = Column(String(50), nullable=True)

    # WHY: Users of the platform organization get is_platform_user=True,
    # which enables the platform rows of the authorization matrix.
    is_platform_org = Column(Boolean, nullable=False, default=False, server_default=false())

    created_by = Column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name='{self.name}', deleted={self.is_deleted})>"
