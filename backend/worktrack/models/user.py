"""
User model.

WHY: Users are the actors of every operation. Their role selects a row of
the authorization matrix; organization_id and department_id bound the
crossDept and ownDept scopes.
"""

import enum
from sqlalchemy import Column, Integer, String, Enum, ForeignKey, Boolean, false

from worktrack.models.base import Base, TimestampMixin, PrimaryKeyMixin
from worktrack.models.soft_delete import SoftDeleteMixin


class UserRole(str, enum.Enum):
    """
    User role enumeration, in descending privilege order.
    """

    SUPER_ADMIN = "SuperAdmin"
    ADMIN = "Admin"
    MANAGER = "Manager"
    USER = "User"


class User(Base, PrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """
    User model.

    is_platform_user mirrors the owning organization's is_platform_org and
    is set when the user is created. is_hod marks a department head; a
    restored user never gets it back automatically.
    """

    __tablename__ = "users"

    first_name = Column(String(20), nullable=False)
    last_name = Column(String(20), nullable=False)
    email = Column(String(50), unique=True, index=True, nullable=False)
    position = Column(String(100), nullable=True)

    # Stored as the role value ("Manager"), VARCHAR on every backend
    role = Column(
        Enum(UserRole, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserRole.USER,
    )

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)

    is_platform_user = Column(Boolean, nullable=False, default=False, server_default=false())
    is_hod = Column(Boolean, nullable=False, default=False, server_default=false())

    created_by = Column(Integer, nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"
