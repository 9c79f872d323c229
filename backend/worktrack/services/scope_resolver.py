"""
Scope Resolver.

WHAT: Turns (actor, resource type, operation) into a permission decision,
a SQLAlchemy filter over the resource's table, and a per-document check.

WHY: Every read and write in the system is bounded by the scopes the
matrix grants. Computing the filter in one place guarantees that listing,
loading and mutating agree on what an actor can see:

    crossOrg  -> any organization (platform users, Organization only)
    crossDept -> organization_id == actor.organization_id
    ownDept   -> ... and department_id == actor.department_id
    own       -> ... and the actor owns the document

Each scope's predicate implies the next broader one, so a document
matched by a narrow scope is always matched by a broader one.

HOW: The SQL predicate (resolve_scope_filter) and the Python predicate
(can_access_resource) are built from the same per-resource column table,
so they stay in agreement.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Type

from sqlalchemy import and_, false, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from worktrack.core.actor import Actor
from worktrack.core.authorization_matrix import AuthorizationMatrix, Operation, Scope
from worktrack.core.exceptions import AuthorizationError, ScopeCeilingError
from worktrack.models.attachment import Attachment
from worktrack.models.base import Base
from worktrack.models.department import Department
from worktrack.models.entity_types import ResourceType, resource_type_for
from worktrack.models.graph import entity_type_of
from worktrack.models.material import Material
from worktrack.models.organization import Organization
from worktrack.models.task import AssignedTask, BaseTask, TaskAssignee, TaskWatcher
from worktrack.models.task_activity import TaskActivity
from worktrack.models.task_comment import CommentMention, TaskComment
from worktrack.models.user import User, UserRole
from worktrack.models.vendor import Vendor

logger = logging.getLogger(__name__)


RESOURCE_MODELS: Dict[ResourceType, Type[Base]] = {
    ResourceType.ORGANIZATION: Organization,
    ResourceType.DEPARTMENT: Department,
    ResourceType.USER: User,
    ResourceType.VENDOR: Vendor,
    ResourceType.MATERIAL: Material,
    ResourceType.TASK: BaseTask,
    ResourceType.TASK_ACTIVITY: TaskActivity,
    ResourceType.TASK_COMMENT: TaskComment,
    ResourceType.ATTACHMENT: Attachment,
}


@dataclass(frozen=True)
class PermissionCheck:
    """
    Result of a permission lookup.

    Attributes:
        allowed: True when at least one scope is granted
        allowed_scopes: Granted scopes, broadest first
    """

    allowed: bool
    allowed_scopes: Tuple[Scope, ...]


def _organization_column(model: Type[Base]):
    # Organization rows are their own tenant
    if model is Organization:
        return Organization.id
    return model.organization_id


def _department_column(model: Type[Base]):
    if model is Organization:
        return None
    if model is Department:
        return Department.id
    return model.department_id


def _organization_value(document: Any) -> Optional[int]:
    if isinstance(document, Organization):
        return document.id
    return getattr(document, "organization_id", None)


def _department_value(document: Any) -> Optional[int]:
    if isinstance(document, Organization):
        return None
    if isinstance(document, Department):
        return document.id
    return getattr(document, "department_id", None)


def _ownership_predicate(resource_type: ResourceType, actor: Actor) -> ColumnElement:
    """SQL predicate: the actor owns the row."""
    if resource_type is ResourceType.USER:
        return User.id == actor.id
    if resource_type is ResourceType.TASK:
        return or_(
            BaseTask.created_by == actor.id,
            BaseTask.id.in_(select(TaskAssignee.task_id).where(TaskAssignee.user_id == actor.id)),
            BaseTask.id.in_(select(TaskWatcher.task_id).where(TaskWatcher.user_id == actor.id)),
        )
    if resource_type is ResourceType.TASK_COMMENT:
        return or_(
            TaskComment.created_by == actor.id,
            TaskComment.id.in_(
                select(CommentMention.comment_id).where(CommentMention.user_id == actor.id)
            ),
        )
    if resource_type is ResourceType.ATTACHMENT:
        return Attachment.uploaded_by == actor.id
    return RESOURCE_MODELS[resource_type].created_by == actor.id


def _owns(resource_type: ResourceType, actor: Actor, document: Any) -> bool:
    """Python predicate: the actor owns the loaded document."""
    if resource_type is ResourceType.USER:
        return document.id == actor.id
    if resource_type is ResourceType.TASK:
        if document.created_by == actor.id or actor.id in document.watcher_ids:
            return True
        return isinstance(document, AssignedTask) and actor.id in document.assignee_ids
    if resource_type is ResourceType.TASK_COMMENT:
        return document.created_by == actor.id or actor.id in document.mention_ids
    if resource_type is ResourceType.ATTACHMENT:
        return document.uploaded_by == actor.id
    return getattr(document, "created_by", None) == actor.id


class ScopeResolver:
    """
    Resolves permissions and scope filters against an AuthorizationMatrix.

    The resolver is stateless apart from the immutable matrix and can be
    shared by all requests of a process.
    """

    def __init__(self, matrix: AuthorizationMatrix):
        self.matrix = matrix

    # =========================================================================
    # Permission lookups
    # =========================================================================

    def check_permission(
        self, actor: Actor, resource_type: ResourceType, operation: Operation
    ) -> PermissionCheck:
        """
        Look up the scopes granted to an actor.

        WHY: Platform users get the platform rows for Organization only; for
        every other resource they are treated like any tenant user.

        Args:
            actor: Authenticated actor
            resource_type: Resource being accessed
            operation: Operation being performed

        Returns:
            PermissionCheck (allowed=False when no scope is granted)
        """
        resource_type = ResourceType(resource_type)
        use_platform = (
            actor.is_platform_user
            and resource_type is ResourceType.ORGANIZATION
            and self.matrix.has_platform_row(resource_type, actor.role)
        )
        scopes = self.matrix.scopes_for(resource_type, actor.role, operation, platform=use_platform)
        return PermissionCheck(allowed=bool(scopes), allowed_scopes=scopes)

    def require_permission(
        self, actor: Actor, resource_type: ResourceType, operation: Operation
    ) -> PermissionCheck:
        """
        Like check_permission, but raise when nothing is granted.

        Raises:
            AuthorizationError: If the actor has no scope for the operation
        """
        check = self.check_permission(actor, resource_type, operation)
        if not check.allowed:
            logger.warning(
                "Permission denied: user=%s role=%s resource=%s operation=%s",
                actor.id,
                UserRole(actor.role).value,
                ResourceType(resource_type).value,
                Operation(operation).value,
            )
            raise AuthorizationError(
                f"You do not have permission to {Operation(operation).value} "
                f"{ResourceType(resource_type).value}",
                resource_type=ResourceType(resource_type).value,
                operation=Operation(operation).value,
            )
        return check

    def get_highest_scope(
        self, actor: Actor, resource_type: ResourceType, operation: Operation
    ) -> Optional[Scope]:
        """Broadest granted scope, or None when nothing is granted."""
        check = self.check_permission(actor, resource_type, operation)
        if not check.allowed:
            return None
        return min(check.allowed_scopes, key=lambda s: s.rank)

    def get_all_permissions(self, actor: Actor) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """
        Every (resource, operation) decision for an actor.

        Returns:
            {resource: {operation: {"allowed": bool, "allowed_scopes": [...]}}}
        """
        permissions: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for resource_type in ResourceType:
            permissions[resource_type.value] = {}
            for operation in Operation:
                check = self.check_permission(actor, resource_type, operation)
                permissions[resource_type.value][operation.value] = {
                    "allowed": check.allowed,
                    "allowed_scopes": [scope.value for scope in check.allowed_scopes],
                }
        return permissions

    # =========================================================================
    # SQL filters
    # =========================================================================

    def _scope_predicate(
        self, actor: Actor, scope: Scope, resource_type: ResourceType
    ) -> ColumnElement:
        model = RESOURCE_MODELS[resource_type]
        scope = Scope(scope)

        if scope is Scope.CROSS_ORG:
            return true()

        clauses = [_organization_column(model) == actor.organization_id]
        if scope in (Scope.OWN_DEPT, Scope.OWN):
            department_column = _department_column(model)
            if department_column is not None:
                clauses.append(department_column == actor.department_id)
        if scope is Scope.OWN:
            clauses.append(_ownership_predicate(resource_type, actor))
        return and_(*clauses)

    def resolve_scope_filter(
        self,
        actor: Actor,
        scope: Scope,
        resource_type: ResourceType,
        with_deleted: bool = False,
    ) -> ColumnElement:
        """
        SQL predicate selecting the rows visible under one scope.

        Args:
            actor: Authenticated actor
            scope: Scope to translate
            resource_type: Resource whose table is filtered
            with_deleted: Do not restrict to active rows

        Returns:
            SQLAlchemy boolean expression over the resource's model
        """
        resource_type = ResourceType(resource_type)
        predicate = self._scope_predicate(actor, scope, resource_type)
        if with_deleted:
            return predicate
        model = RESOURCE_MODELS[resource_type]
        return and_(model.is_deleted.is_(False), predicate)

    def build_read_filter(
        self,
        actor: Actor,
        resource_type: ResourceType,
        operation: Operation = Operation.READ,
        with_deleted: bool = False,
    ) -> ColumnElement:
        """
        Union of the predicates of every scope granted for an operation.

        Raises:
            AuthorizationError: If no scope is granted
        """
        resource_type = ResourceType(resource_type)
        check = self.require_permission(actor, resource_type, operation)

        predicate = or_(
            false(),
            *(self._scope_predicate(actor, scope, resource_type) for scope in check.allowed_scopes),
        )
        if with_deleted:
            return predicate
        model = RESOURCE_MODELS[resource_type]
        return and_(model.is_deleted.is_(False), predicate)

    # =========================================================================
    # Document checks
    # =========================================================================

    def document_in_scope(
        self, actor: Actor, scope: Scope, document: Any, resource_type: ResourceType
    ) -> bool:
        """Python-side evaluation of one scope predicate on a loaded document."""
        scope = Scope(scope)
        resource_type = ResourceType(resource_type)

        if scope is Scope.CROSS_ORG:
            return True
        if _organization_value(document) != actor.organization_id:
            return False
        if scope is Scope.CROSS_DEPT:
            return True

        department = _department_value(document)
        if department is not None and department != actor.department_id:
            return False
        if scope is Scope.OWN_DEPT:
            return True
        return _owns(resource_type, actor, document)

    def can_access_resource(
        self,
        actor: Actor,
        document: Any,
        operation: Operation,
        resource_type: Optional[ResourceType] = None,
    ) -> bool:
        """
        Whether any granted scope admits a loaded document.

        Deletion state is not considered; restore needs to reach deleted
        documents and reads filter them out separately.

        Args:
            actor: Authenticated actor
            document: Loaded entity
            operation: Operation to be performed
            resource_type: Resource type (derived from the document if omitted)
        """
        if resource_type is None:
            resource_type = resource_type_for(entity_type_of(document))
        check = self.check_permission(actor, resource_type, operation)
        return any(
            self.document_in_scope(actor, scope, document, resource_type)
            for scope in check.allowed_scopes
        )

    def enforce_scope_ceiling(
        self,
        actor: Actor,
        resource_type: ResourceType,
        operation: Operation,
        organization_id: int,
        department_id: Optional[int] = None,
    ) -> Scope:
        """
        Ensure a write targets an organization/department inside the
        actor's highest granted scope.

        A target without a department is organization-level and needs at
        least crossDept.

        Returns:
            The scope the write is performed under

        Raises:
            AuthorizationError: If nothing is granted
            ScopeCeilingError: If the target is outside the ceiling
        """
        self.require_permission(actor, resource_type, operation)
        highest = self.get_highest_scope(actor, resource_type, operation)

        if highest is Scope.CROSS_ORG:
            return highest

        within = organization_id == actor.organization_id
        if within and highest is not Scope.CROSS_DEPT:
            within = department_id is not None and department_id == actor.department_id

        if not within:
            logger.warning(
                "Scope ceiling exceeded: user=%s scope=%s target org=%s dept=%s",
                actor.id,
                highest.value,
                organization_id,
                department_id,
            )
            raise ScopeCeilingError(
                resource_type=ResourceType(resource_type).value,
                operation=Operation(operation).value,
                scope=highest.value,
                organization_id=organization_id,
                department_id=department_id,
            )
        return highest
