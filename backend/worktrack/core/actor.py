"""
Authenticated actor.

WHAT: The identity every operation runs as.

WHY: Authentication is a collaborator; the engine only needs the fields
that decide permissions. Keeping them in a small frozen value means the
resolver never touches a live ORM row that could change mid-request.
"""

from dataclasses import dataclass
from typing import Optional

from worktrack.core.exceptions import AuthenticationError
from worktrack.models.user import User, UserRole


@dataclass(frozen=True)
class Actor:
    """
    Authenticated user as seen by the authorization engine.

    Attributes:
        id: User ID
        role: User role
        organization_id: Actor's organization
        department_id: Actor's department
        is_platform_user: Member of the platform organization
    """

    id: int
    role: UserRole
    organization_id: int
    department_id: int
    is_platform_user: bool = False

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        """Build an actor from an active user row."""
        if user is None or user.is_deleted:
            raise AuthenticationError("User is missing or deactivated")
        return cls(
            id=user.id,
            role=UserRole(user.role),
            organization_id=user.organization_id,
            department_id=user.department_id,
            is_platform_user=bool(user.is_platform_user),
        )


def require_actor(actor: Optional[Actor]) -> Actor:
    """
    Ensure an actor is attached to the operation.

    Raises:
        AuthenticationError: If no actor is present
    """
    if actor is None:
        raise AuthenticationError()
    return actor
