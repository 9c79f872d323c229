"""
Authorization matrix.

WHAT: The static table (resource, role) -> operation -> allowed scopes,
plus the platform table consulted for platform users on Organization.

WHY: Permissions are data, not code. The matrix is loaded once at process
start, validated, and then never changes, so every permission decision in
a process is made against the same version of the table.

HOW: The JSON document is validated by the MatrixDocument pydantic model,
then frozen into read-only mappings. AuthorizationMatrix is passed
explicitly to the ScopeResolver. Lookups never raise: a missing
resource, role or operation simply yields no scopes (deny).
"""

import logging
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from worktrack.core.exceptions import ConfigurationError
from worktrack.models.entity_types import ResourceType
from worktrack.models.user import UserRole

logger = logging.getLogger(__name__)

DEFAULT_MATRIX_PATH = Path(__file__).resolve().parent.parent / "config" / "authorization_matrix.json"


class Scope(str, Enum):
    """
    Access scopes, broadest first.

    crossOrg:  any organization (platform table only)
    crossDept: any department of the actor's organization
    ownDept:   the actor's own department
    own:       resources the actor owns inside their own department
    """

    CROSS_ORG = "crossOrg"
    CROSS_DEPT = "crossDept"
    OWN_DEPT = "ownDept"
    OWN = "own"

    @property
    def rank(self) -> int:
        """Breadth rank; lower is broader."""
        return _SCOPE_ORDER.index(self)


_SCOPE_ORDER = (Scope.CROSS_ORG, Scope.CROSS_DEPT, Scope.OWN_DEPT, Scope.OWN)


class Operation(str, Enum):
    """Operations governed by the matrix."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    RESTORE = "restore"


ScopeRows = Dict[ResourceType, Dict[UserRole, Dict[Operation, List[Scope]]]]
ScopeTable = Mapping[ResourceType, Mapping[UserRole, Mapping[Operation, Tuple[Scope, ...]]]]


class MatrixDocument(BaseModel):
    """
    Shape of the matrix JSON document.

    Unknown resources, roles, operations and scopes fail enum validation.
    crossOrg is reserved for the platform table, which only covers
    Organization.
    """

    model_config = ConfigDict(extra="forbid")

    version: str = Field(..., min_length=1)
    resources: ScopeRows = Field(default_factory=dict)
    platform: ScopeRows = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_cross_org(self) -> "MatrixDocument":
        for resource in self.platform:
            if resource is not ResourceType.ORGANIZATION:
                raise ValueError(
                    f"The platform table may only grant Organization permissions, not {resource.value}"
                )
        for resource, roles in self.resources.items():
            for role, operations in roles.items():
                for operation, scopes in operations.items():
                    if Scope.CROSS_ORG in scopes:
                        raise ValueError(
                            "crossOrg may only be granted by the platform table on Organization "
                            f"({resource.value}/{role.value}/{operation.value})"
                        )
        return self


def _freeze(rows: ScopeRows) -> ScopeTable:
    """Read-only copy with scopes deduplicated and ordered broadest first."""
    return MappingProxyType(
        {
            resource: MappingProxyType(
                {
                    role: MappingProxyType(
                        {
                            operation: tuple(sorted(set(scopes), key=lambda s: s.rank))
                            for operation, scopes in operations.items()
                        }
                    )
                    for role, operations in roles.items()
                }
            )
            for resource, roles in rows.items()
        }
    )


def _configuration_error(message: str, error: PydanticValidationError, **context: Any) -> ConfigurationError:
    errors = [
        {"loc": ".".join(str(part) for part in e["loc"]), "message": e["msg"]}
        for e in error.errors()
    ]
    return ConfigurationError(message, errors=errors, **context)


class AuthorizationMatrix:
    """
    Immutable, validated authorization matrix.

    Attributes:
        version: Version string of the loaded matrix
    """

    def __init__(self, data: Union[Mapping[str, Any], MatrixDocument]):
        """
        Build and validate a matrix from its JSON-shaped mapping.

        Args:
            data: ``{"version", "resources", "platform"}`` mapping, or an
                already validated MatrixDocument

        Raises:
            ConfigurationError: If the mapping has an invalid shape or
                references unknown resources, roles, operations or scopes
        """
        if not isinstance(data, MatrixDocument):
            try:
                data = MatrixDocument.model_validate(data)
            except PydanticValidationError as e:
                raise _configuration_error("Invalid authorization matrix", e) from e

        self._version = data.version
        self._resources = _freeze(data.resources)
        self._platform = _freeze(data.platform)

    @property
    def version(self) -> str:
        return self._version

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "AuthorizationMatrix":
        """
        Load a matrix from a JSON file.

        Raises:
            ConfigurationError: If the file is missing, not JSON, or invalid
        """
        path = Path(path)
        try:
            document = MatrixDocument.model_validate_json(path.read_bytes())
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read authorization matrix from {path}: {e}", path=str(path)
            ) from e
        except PydanticValidationError as e:
            raise _configuration_error(
                f"Invalid authorization matrix in {path}", e, path=str(path)
            ) from e

        matrix = cls(document)
        logger.info("Loaded authorization matrix version %s from %s", matrix.version, path)
        return matrix

    @classmethod
    def default(cls) -> "AuthorizationMatrix":
        """The matrix bundled with the package."""
        return cls.from_file(DEFAULT_MATRIX_PATH)

    @classmethod
    def from_settings(cls, path: Optional[str] = None) -> "AuthorizationMatrix":
        """
        Load the configured matrix, falling back to the bundled one.

        Args:
            path: Explicit path (typically settings.AUTHORIZATION_MATRIX_PATH)
        """
        if path:
            return cls.from_file(path)
        return cls.default()

    def scopes_for(
        self,
        resource: ResourceType,
        role: UserRole,
        operation: Operation,
        platform: bool = False,
    ) -> Tuple[Scope, ...]:
        """
        Allowed scopes for a (resource, role, operation) triple.

        Args:
            resource: Resource type
            role: Actor role
            operation: Operation
            platform: Read the platform table instead of the regular one

        Returns:
            Scopes ordered broadest first; empty tuple means deny
        """
        table = self._platform if platform else self._resources
        try:
            resource = ResourceType(resource)
            role = UserRole(role)
            operation = Operation(operation)
        except ValueError:
            return ()
        return table.get(resource, {}).get(role, {}).get(operation, ())

    def has_platform_row(self, resource: ResourceType, role: UserRole) -> bool:
        """Whether the platform table defines (resource, role)."""
        return UserRole(role) in self._platform.get(ResourceType(resource), {})

    def resources(self) -> Tuple[ResourceType, ...]:
        """Resource types present in the regular table."""
        return tuple(self._resources.keys())
