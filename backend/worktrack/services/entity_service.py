"""
Entity Service.

WHAT: Create/update operations for departments, vendors, materials, tasks
and the task children (activities, comments, attachments).

WHY: Writes are where the graph invariants are established. A new entity
must hang below an active parent in the actor's organization, and every
reference it carries (vendor, assignees, watchers, mentions, materials)
must point at an active entity of the same tenant. Otherwise a later
cascade could leave an active child under a deleted parent, or a task
could leak into a foreign tenant.

HOW: Each operation:
1. Resolves the actor's permission and applies the scope ceiling to the
   target organization/department
2. Validates references inside the write transaction
3. Commits through the MutationCoordinator
4. Emits "<prefix>:created" / "<prefix>:updated" after commit
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from worktrack.core.actor import Actor, require_actor
from worktrack.core.authorization_matrix import Operation
from worktrack.core.exceptions import (
    AuthorizationError,
    ResourceNotFoundError,
    ValidationError,
)
from worktrack.dao.base import BaseDAO
from worktrack.models.attachment import Attachment
from worktrack.models.department import Department
from worktrack.models.entity_types import EntityType, ResourceType
from worktrack.models.material import Material
from worktrack.models.task import (
    AssignedTask,
    BaseTask,
    ProjectTask,
    RoutineTask,
    ROUTINE_TASK_PRIORITIES,
    ROUTINE_TASK_STATUSES,
    TASK_MODELS,
)
from worktrack.models.task_activity import TaskActivity, TaskActivityMaterial
from worktrack.models.task_comment import MAX_COMMENT_DEPTH, TaskComment
from worktrack.models.user import User
from worktrack.models.vendor import Vendor
from worktrack.schemas.organization import DepartmentCreate, MaterialCreate, VendorCreate
from worktrack.schemas.task import TaskCreate, TaskUpdate
from worktrack.schemas.task_children import AttachmentCreate, TaskActivityCreate, TaskCommentCreate
from worktrack.services.cascade import CascadeEngine, RowLock
from worktrack.services.mutation import MutationCoordinator
from worktrack.services.notification_service import NotificationDispatcher, notify_entity_event
from worktrack.services.scope_resolver import ScopeResolver

logger = logging.getLogger(__name__)

_PROJECT_TASK_FIELDS = {"vendor_id", "estimated_cost", "actual_cost", "currency"}


class EntityService:
    """
    Write operations with validation and scope ceiling.

    Attributes:
        session_factory: Factory for sessions (used by the coordinator)
        resolver: Scope resolver
        coordinator: Transaction boundary
        dispatcher: Post-commit event transport
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        resolver: ScopeResolver,
        coordinator: Optional[MutationCoordinator] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        cascade: Optional[CascadeEngine] = None,
    ):
        self.session_factory = session_factory
        self.resolver = resolver
        self.coordinator = coordinator or MutationCoordinator(session_factory)
        self.dispatcher = dispatcher
        self.cascade = cascade or CascadeEngine()

    async def _commit(
        self,
        actor: Actor,
        action: str,
        operation: Callable[[AsyncSession], Awaitable[Any]],
    ) -> Any:
        async def events(document: Any) -> None:
            await notify_entity_event(self.dispatcher, action, document, actor.id)

        return await self.coordinator.execute_with_retry(operation, events)

    # =========================================================================
    # Reference validation
    # =========================================================================

    async def _require_department(
        self, session: AsyncSession, actor: Actor, department_id: int
    ) -> Department:
        department = await self.cascade.load(
            session, EntityType.DEPARTMENT, department_id, lock=RowLock.SHARE
        )
        if (
            department is None
            or department.is_deleted
            or department.organization_id != actor.organization_id
        ):
            raise ValidationError(
                "Department not found, deleted, or outside your organization",
                department_id=department_id,
            )
        return department

    async def _require_users(
        self, session: AsyncSession, actor: Actor, user_ids: List[int], field_name: str
    ) -> None:
        if not user_ids:
            return
        users = await BaseDAO(User, session).get_many_by_ids(user_ids)
        valid = {u.id for u in users if u.organization_id == actor.organization_id}
        invalid = [uid for uid in user_ids if uid not in valid]
        if invalid:
            raise ValidationError(
                f"Invalid {field_name}: users not found, deleted, or outside your organization",
                field=field_name,
                invalid_ids=invalid,
            )

    async def _require_head(
        self, session: AsyncSession, organization_id: int, user_id: int
    ) -> User:
        head = await self.cascade.load(session, EntityType.USER, user_id, lock=RowLock.SHARE)
        if head is None or head.is_deleted or head.organization_id != organization_id:
            raise ValidationError(
                "Department head not found, deleted, or outside the organization",
                field="hod_id",
                user_id=user_id,
            )
        return head

    async def _require_vendor(self, session: AsyncSession, actor: Actor, vendor_id: int) -> Vendor:
        vendor = await BaseDAO(Vendor, session).get_by_id_and_org(vendor_id, actor.organization_id)
        if vendor is None:
            raise ValidationError(
                "Vendor not found, deleted, or outside your organization", vendor_id=vendor_id
            )
        return vendor

    async def _require_materials(
        self, session: AsyncSession, actor: Actor, material_ids: List[int]
    ) -> None:
        if not material_ids:
            return
        materials = await BaseDAO(Material, session).get_many_by_ids(material_ids)
        valid = {m.id for m in materials if m.organization_id == actor.organization_id}
        invalid = [mid for mid in material_ids if mid not in valid]
        if invalid:
            raise ValidationError(
                "Invalid materials: not found, deleted, or outside your organization",
                field="materials",
                invalid_ids=invalid,
            )

    async def _require_parent(
        self,
        session: AsyncSession,
        actor: Actor,
        parent_type: EntityType,
        parent_id: int,
        resource_type: ResourceType,
    ) -> Any:
        """
        Load the active parent of a new task child and apply the ceiling
        to the parent's organization/department.

        The parent stays share-locked until commit, so a cascade deleting
        it concurrently either waits for this insert or makes it fail.
        """
        parent = await self.cascade.load(session, parent_type, parent_id, lock=RowLock.SHARE)
        if parent is None or parent.is_deleted:
            raise ValidationError(
                f"Parent {EntityType(parent_type).value} not found or deleted",
                parent_model=EntityType(parent_type).value,
                parent_id=parent_id,
            )
        self.resolver.enforce_scope_ceiling(
            actor, resource_type, Operation.CREATE, parent.organization_id, parent.department_id
        )
        return parent

    async def _comment_depth(self, session: AsyncSession, comment: TaskComment) -> int:
        """Nesting level of a comment (1 for a comment on a task or activity)."""
        depth = 1
        current = comment
        while current.parent_model == EntityType.TASK_COMMENT:
            current = await self.cascade.load(session, EntityType.TASK_COMMENT, current.parent_id)
            if current is None:
                break
            depth += 1
        return depth

    # =========================================================================
    # Tenancy resources
    # =========================================================================

    async def create_department(self, actor: Optional[Actor], data: DepartmentCreate) -> Department:
        """
        Create a department in the actor's organization.

        When hod_id is given, that user becomes the department head.

        Raises:
            ScopeCeilingError: Target organization is not the actor's
            ValidationError: Organization missing or deleted, or the head is
                not an active user of the organization
            ResourceAlreadyExistsError: Name taken in the organization
        """
        actor = require_actor(actor)
        organization_id = data.organization_id or actor.organization_id
        self.resolver.enforce_scope_ceiling(
            actor, ResourceType.DEPARTMENT, Operation.CREATE, organization_id
        )

        async def operation(session: AsyncSession) -> Department:
            organization = await self.cascade.load(
                session, EntityType.ORGANIZATION, organization_id, lock=RowLock.SHARE
            )
            if organization is None or organization.is_deleted:
                raise ValidationError(
                    "Organization not found or deleted", organization_id=organization_id
                )
            department = await BaseDAO(Department, session).create(
                name=data.name,
                description=data.description,
                organization_id=organization_id,
                created_by=actor.id,
            )
            if data.hod_id is not None:
                head = await self._require_head(session, organization_id, data.hod_id)
                department.hod_id = head.id
                head.is_hod = True
                await session.flush()
            return department

        return await self._commit(actor, "created", operation)

    async def create_vendor(self, actor: Optional[Actor], data: VendorCreate) -> Vendor:
        """Create a vendor in a department of the actor's organization."""
        actor = require_actor(actor)
        department_id = data.department_id or actor.department_id
        self.resolver.enforce_scope_ceiling(
            actor, ResourceType.VENDOR, Operation.CREATE, actor.organization_id, department_id
        )

        async def operation(session: AsyncSession) -> Vendor:
            await self._require_department(session, actor, department_id)
            return await BaseDAO(Vendor, session).create(
                **data.model_dump(exclude={"department_id"}),
                organization_id=actor.organization_id,
                department_id=department_id,
                created_by=actor.id,
            )

        return await self._commit(actor, "created", operation)

    async def create_material(self, actor: Optional[Actor], data: MaterialCreate) -> Material:
        """Create a material in a department of the actor's organization."""
        actor = require_actor(actor)
        department_id = data.department_id or actor.department_id
        self.resolver.enforce_scope_ceiling(
            actor, ResourceType.MATERIAL, Operation.CREATE, actor.organization_id, department_id
        )

        async def operation(session: AsyncSession) -> Material:
            await self._require_department(session, actor, department_id)
            return await BaseDAO(Material, session).create(
                **data.model_dump(exclude={"department_id"}),
                organization_id=actor.organization_id,
                department_id=department_id,
                created_by=actor.id,
            )

        return await self._commit(actor, "created", operation)

    # =========================================================================
    # Tasks
    # =========================================================================

    async def create_task(self, actor: Optional[Actor], data: TaskCreate) -> BaseTask:
        """
        Create a ProjectTask, RoutineTask or AssignedTask.

        Raises:
            ScopeCeilingError: Target department outside the actor's ceiling
            ValidationError: Department, vendor, assignees or watchers invalid
        """
        actor = require_actor(actor)
        department_id = data.department_id or actor.department_id
        self.resolver.enforce_scope_ceiling(
            actor, ResourceType.TASK, Operation.CREATE, actor.organization_id, department_id
        )

        async def operation(session: AsyncSession) -> BaseTask:
            await self._require_department(session, actor, department_id)
            await self._require_users(session, actor, data.watcher_ids, "watchers")

            model = TASK_MODELS[data.task_type]
            task = model(
                title=data.title,
                description=data.description,
                status=data.status,
                priority=data.priority,
                organization_id=actor.organization_id,
                department_id=department_id,
                created_by=actor.id,
                start_date=data.start_date,
                due_date=data.due_date,
            )

            if isinstance(task, ProjectTask):
                await self._require_vendor(session, actor, data.vendor_id)
                task.vendor_id = data.vendor_id
                task.estimated_cost = data.estimated_cost
                task.actual_cost = data.actual_cost
                task.currency = data.currency
            if isinstance(task, AssignedTask):
                await self._require_users(session, actor, data.assignee_ids, "assignees")
                task.set_assignees(data.assignee_ids)
            task.set_watchers(data.watcher_ids)

            session.add(task)
            await session.flush()
            return task

        return await self._commit(actor, "created", operation)

    async def update_task(self, actor: Optional[Actor], task_id: int, data: TaskUpdate) -> BaseTask:
        """
        Partially update a task.

        organization_id and department_id are immutable; variant-specific
        fields are only accepted on their variant.

        Raises:
            ResourceNotFoundError: Task missing or deleted
            AuthorizationError: Task outside the actor's update scopes
            ValidationError: Immutable field changed or invalid values
        """
        actor = require_actor(actor)
        self.resolver.require_permission(actor, ResourceType.TASK, Operation.UPDATE)
        changes = data.model_dump(exclude_unset=True)

        async def operation(session: AsyncSession) -> BaseTask:
            task = await BaseDAO(BaseTask, session).get_by_id(task_id)
            if task is None:
                raise ResourceNotFoundError("Task not found", task_id=task_id)
            if not self.resolver.can_access_resource(
                actor, task, Operation.UPDATE, ResourceType.TASK
            ):
                raise AuthorizationError(
                    "You are not authorized to update this task", task_id=task_id
                )

            for tenancy_field in ("organization_id", "department_id"):
                if tenancy_field in changes and changes[tenancy_field] != getattr(task, tenancy_field):
                    raise ValidationError(
                        f"{tenancy_field} cannot be changed after creation", field=tenancy_field
                    )
                changes.pop(tenancy_field, None)

            self.resolver.enforce_scope_ceiling(
                actor, ResourceType.TASK, Operation.UPDATE, task.organization_id, task.department_id
            )

            if not isinstance(task, ProjectTask) and _PROJECT_TASK_FIELDS & changes.keys():
                raise ValidationError("Vendor and cost fields only apply to project tasks")
            if not isinstance(task, AssignedTask) and "assignee_ids" in changes:
                raise ValidationError("Assignees only apply to assigned tasks")

            if isinstance(task, RoutineTask):
                if changes.get("status", task.status) not in ROUTINE_TASK_STATUSES:
                    raise ValidationError("A routine task cannot be 'To Do'", field="status")
                if changes.get("priority", task.priority) not in ROUTINE_TASK_PRIORITIES:
                    raise ValidationError("A routine task cannot have 'Low' priority", field="priority")

            start_date = changes.get("start_date", task.start_date)
            due_date = changes.get("due_date", task.due_date)
            if start_date and due_date and start_date > due_date:
                raise ValidationError("start_date must not be after due_date")

            if "vendor_id" in changes:
                if changes["vendor_id"] is None:
                    raise ValidationError("A project task requires a vendor", field="vendor_id")
                await self._require_vendor(session, actor, changes["vendor_id"])
            if "watcher_ids" in changes:
                await self._require_users(session, actor, changes["watcher_ids"] or [], "watchers")
                task.set_watchers(changes.pop("watcher_ids") or [])
            if "assignee_ids" in changes:
                await self._require_users(session, actor, changes["assignee_ids"], "assignees")
                task.set_assignees(changes.pop("assignee_ids"))

            for field_name, value in changes.items():
                setattr(task, field_name, value)

            await session.flush()
            return task

        return await self._commit(actor, "updated", operation)

    # =========================================================================
    # Task children
    # =========================================================================

    async def create_activity(self, actor: Optional[Actor], data: TaskActivityCreate) -> TaskActivity:
        """
        Log an activity on a ProjectTask or AssignedTask.

        Raises:
            ValidationError: Parent missing/deleted, materials invalid
            ScopeCeilingError: Parent outside the actor's ceiling
        """
        actor = require_actor(actor)
        self.resolver.require_permission(actor, ResourceType.TASK_ACTIVITY, Operation.CREATE)

        async def operation(session: AsyncSession) -> TaskActivity:
            parent = await self._require_parent(
                session, actor, data.parent_model, data.parent_id, ResourceType.TASK_ACTIVITY
            )
            await self._require_materials(session, actor, [m.material_id for m in data.materials])

            activity = TaskActivity(
                activity=data.activity,
                parent_id=parent.id,
                parent_model=data.parent_model,
                organization_id=parent.organization_id,
                department_id=parent.department_id,
                created_by=actor.id,
                material_usages=[
                    TaskActivityMaterial(material_id=m.material_id, quantity=m.quantity)
                    for m in data.materials
                ],
            )
            session.add(activity)
            await session.flush()
            return activity

        return await self._commit(actor, "created", operation)

    async def create_comment(self, actor: Optional[Actor], data: TaskCommentCreate) -> TaskComment:
        """
        Comment on a task, an activity, or reply to a comment.

        Raises:
            ValidationError: Parent missing/deleted, reply nested deeper than
                MAX_COMMENT_DEPTH, or invalid mentions
        """
        actor = require_actor(actor)
        self.resolver.require_permission(actor, ResourceType.TASK_COMMENT, Operation.CREATE)

        async def operation(session: AsyncSession) -> TaskComment:
            parent = await self._require_parent(
                session, actor, data.parent_model, data.parent_id, ResourceType.TASK_COMMENT
            )
            if isinstance(parent, TaskComment):
                depth = await self._comment_depth(session, parent) + 1
                if depth > MAX_COMMENT_DEPTH:
                    raise ValidationError(
                        f"Replies cannot be nested more than {MAX_COMMENT_DEPTH} levels deep",
                        depth=depth,
                    )
            await self._require_users(session, actor, data.mention_ids, "mentions")

            comment = TaskComment(
                comment=data.comment,
                parent_id=parent.id,
                parent_model=data.parent_model,
                organization_id=parent.organization_id,
                department_id=parent.department_id,
                created_by=actor.id,
            )
            comment.set_mentions(data.mention_ids)
            session.add(comment)
            await session.flush()
            return comment

        return await self._commit(actor, "created", operation)

    async def create_attachment(self, actor: Optional[Actor], data: AttachmentCreate) -> Attachment:
        """Record attachment metadata on a task, an activity or a comment."""
        actor = require_actor(actor)
        self.resolver.require_permission(actor, ResourceType.ATTACHMENT, Operation.CREATE)

        async def operation(session: AsyncSession) -> Attachment:
            parent = await self._require_parent(
                session, actor, data.parent_model, data.parent_id, ResourceType.ATTACHMENT
            )
            return await BaseDAO(Attachment, session).create(
                filename=data.filename,
                file_url=data.file_url,
                file_type=data.file_type,
                file_size=data.file_size,
                parent_id=parent.id,
                parent_model=data.parent_model,
                organization_id=parent.organization_id,
                department_id=parent.department_id,
                uploaded_by=actor.id,
            )

        return await self._commit(actor, "created", operation)
