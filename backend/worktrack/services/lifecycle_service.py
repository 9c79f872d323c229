"""
Entity Lifecycle Service.

WHAT: Entry points for deleting, restoring and reading any entity of the
graph on behalf of an actor.

WHY: Delete and restore always follow the same sequence, whatever the
entity type:
1. Resolve the actor's permission for the operation
2. Pre-read the target outside the write transaction: missing -> 404,
   outside every granted scope -> 403, already in the target state ->
   no-op success without opening a transaction or emitting events
3. Inside one transaction: re-load, re-check, run the cascade
4. After commit: emit "<prefix>:deleted" / "<prefix>:restored" to the
   organization and department rooms

HOW: Coordinates ScopeResolver, CascadeEngine, MutationCoordinator and the
NotificationDispatcher. The pre-read is repeated inside the transaction
because the target may have changed between the two.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from worktrack.core.actor import Actor, require_actor
from worktrack.core.authorization_matrix import Operation
from worktrack.core.exceptions import AuthorizationError, ResourceNotFoundError, ValidationError
from worktrack.dao.base import BaseDAO
from worktrack.models.entity_types import EntityType, ResourceType, resource_type_for
from worktrack.models.material import Material
from worktrack.models.organization import Organization
from worktrack.models.user import User, UserRole
from worktrack.schemas.task_children import ActivityCostResponse, MaterialCostLine
from worktrack.services.cascade import CascadeEngine, CascadeResult, EntityRef, RowLock
from worktrack.services.mutation import MutationCoordinator
from worktrack.services.notification_service import (
    NotificationDispatcher,
    notify_entity_event,
    notify_head_pruned,
)
from worktrack.services.scope_resolver import RESOURCE_MODELS, ScopeResolver

logger = logging.getLogger(__name__)


@dataclass
class LifecycleResult:
    """
    Outcome of a delete or restore request.

    Attributes:
        entity_type: Type of the targeted entity
        entity_id: Id of the targeted entity
        action: "deleted" or "restored"
        changed: False when the entity was already in the target state
        affected_count: Number of entities whose state changed
        affected: (entity type, id) of each changed entity
        document: The targeted entity after the operation
    """

    entity_type: EntityType
    entity_id: int
    action: str
    changed: bool
    affected_count: int = 0
    affected: List[EntityRef] = field(default_factory=list)
    document: Optional[Any] = None


class EntityLifecycleService:
    """
    Delete / restore / read entry points for every entity type.

    Attributes:
        session_factory: Factory for read sessions
        resolver: Scope resolver bound to the process's matrix
        coordinator: Transaction boundary for writes
        dispatcher: Post-commit event transport
        cascade: Cascade engine
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

    # =========================================================================
    # Shared checks
    # =========================================================================

    def _check_access(
        self, actor: Actor, entity_type: EntityType, document: Any, operation: Operation
    ) -> None:
        if document is None:
            raise ResourceNotFoundError(
                f"{entity_type.value} not found", entity_type=entity_type.value
            )
        if not self.resolver.can_access_resource(
            actor, document, operation, resource_type_for(entity_type)
        ):
            logger.warning(
                "User %s denied %s on %s %s (outside granted scopes)",
                actor.id,
                operation.value,
                entity_type.value,
                document.id,
            )
            raise AuthorizationError(
                f"You are not authorized to {operation.value} this {entity_type.value}",
                entity_type=entity_type.value,
                entity_id=document.id,
            )

    def _check_deletable(self, document: Any) -> None:
        if isinstance(document, Organization) and document.is_platform_org:
            raise ValidationError(
                "The platform organization cannot be deleted", organization_id=document.id
            )

    async def _check_removed_users(
        self, session: AsyncSession, actor: Actor, entity_type: EntityType, result: CascadeResult
    ) -> None:
        """
        Rules on the users a cascade has just deleted (flushed, uncommitted).

        Users go away with their department or organization as well as on
        their own, so the rules apply to the whole subtree:
        - the actor's own account can never be part of it
        - an organization that survives the deletion keeps one active
          SuperAdmin

        Raises:
            ValidationError: Either rule is broken (the transaction rolls back)
        """
        user_ids = [uid for etype, uid in result.affected if etype is EntityType.USER]
        if not user_ids:
            return

        if actor.id in user_ids:
            logger.warning(
                "User %s tried to delete their own account via %s %s",
                actor.id,
                entity_type.value,
                result.root.id,
            )
            raise ValidationError("You cannot delete your own account", user_id=actor.id)

        # Deleting an organization takes its SuperAdmins with it
        if entity_type is EntityType.ORGANIZATION:
            return

        organizations = await session.execute(
            select(User.organization_id)
            .where(User.id.in_(user_ids), User.role == UserRole.SUPER_ADMIN)
            .distinct()
        )
        for organization_id in organizations.scalars().all():
            remaining = await session.execute(
                select(func.count(User.id)).where(
                    User.organization_id == organization_id,
                    User.role == UserRole.SUPER_ADMIN,
                    User.is_deleted.is_(False),
                )
            )
            if remaining.scalar_one() == 0:
                logger.warning(
                    "Deleting %s %s would remove the last SuperAdmin of organization %s",
                    entity_type.value,
                    result.root.id,
                    organization_id,
                )
                raise ValidationError(
                    "Cannot delete the last SuperAdmin in the organization",
                    organization_id=organization_id,
                )

    async def _notify_pruned_heads(self, result: CascadeResult, actor: Actor, reason: str) -> None:
        for department, user_id in result.pruned_heads:
            await notify_head_pruned(self.dispatcher, department, user_id, actor.id, reason)

    async def _pre_read(self, entity_type: EntityType, entity_id: int) -> Optional[Any]:
        async with self.session_factory() as session:
            return await self.cascade.load(session, entity_type, entity_id)

    # =========================================================================
    # Delete / Restore
    # =========================================================================

    async def delete(
        self, actor: Optional[Actor], entity_type: EntityType, entity_id: int
    ) -> LifecycleResult:
        """
        Soft-delete an entity and its dependent subtree.

        Args:
            actor: Authenticated actor
            entity_type: Type of the entity to delete
            entity_id: Id of the entity to delete

        Returns:
            LifecycleResult (changed=False if it was already deleted)

        Raises:
            AuthenticationError: No actor
            AuthorizationError: No delete scope, or the entity is outside it
            ResourceNotFoundError: Entity does not exist
            ValidationError: Platform organization, or the subtree holds the
                actor's own account or the organization's last SuperAdmin
            TransactionConflictError: Concurrent modification
        """
        actor = require_actor(actor)
        entity_type = EntityType(entity_type)
        self.resolver.require_permission(actor, resource_type_for(entity_type), Operation.DELETE)

        document = await self._pre_read(entity_type, entity_id)
        self._check_access(actor, entity_type, document, Operation.DELETE)
        if document.is_deleted:
            logger.info("%s %s already deleted, nothing to do", entity_type.value, entity_id)
            return LifecycleResult(entity_type, entity_id, "deleted", changed=False, document=document)

        async def operation(session: AsyncSession) -> CascadeResult:
            target = await self.cascade.load(session, entity_type, entity_id, lock=RowLock.UPDATE)
            self._check_access(actor, entity_type, target, Operation.DELETE)
            self._check_deletable(target)
            result = await self.cascade.cascade_delete(entity_type, entity_id, actor.id, session)
            await self._check_removed_users(session, actor, entity_type, result)
            return result

        async def events(result: CascadeResult) -> None:
            if result.affected_count:
                await notify_entity_event(
                    self.dispatcher,
                    "deleted",
                    result.root,
                    actor.id,
                    extra={"affected_count": result.affected_count},
                )
            await self._notify_pruned_heads(result, actor, "head deleted")

        result = await self.coordinator.execute_with_retry(operation, events)
        return LifecycleResult(
            entity_type,
            entity_id,
            "deleted",
            changed=result.affected_count > 0,
            affected_count=result.affected_count,
            affected=result.affected,
            document=result.root,
        )

    async def restore(
        self,
        actor: Optional[Actor],
        entity_type: EntityType,
        entity_id: int,
        include_descendants: bool = False,
    ) -> LifecycleResult:
        """
        Restore a soft-deleted entity.

        Only the entity itself is restored unless include_descendants is
        set, in which case descendants deleted by the same cascade come
        back too. A descendant the actor could not restore directly stays
        deleted, and so does everything below it.

        Raises:
            AuthenticationError: No actor
            AuthorizationError: No restore scope, or the entity is outside it
            ResourceNotFoundError: Entity does not exist
            AncestorStillDeletedError: An ancestor is deleted or missing
            RestoreDependencyError: A required dependency is deleted
            NoActiveAssigneesError: Assigned task without active assignees
            TransactionConflictError: Concurrent modification
        """
        actor = require_actor(actor)
        entity_type = EntityType(entity_type)
        self.resolver.require_permission(actor, resource_type_for(entity_type), Operation.RESTORE)

        document = await self._pre_read(entity_type, entity_id)
        self._check_access(actor, entity_type, document, Operation.RESTORE)
        if not document.is_deleted:
            logger.info("%s %s is not deleted, nothing to restore", entity_type.value, entity_id)
            return LifecycleResult(entity_type, entity_id, "restored", changed=False, document=document)

        def can_restore(child_type: EntityType, child: Any) -> bool:
            return self.resolver.can_access_resource(
                actor, child, Operation.RESTORE, resource_type_for(child_type)
            )

        async def operation(session: AsyncSession) -> CascadeResult:
            target = await self.cascade.load(session, entity_type, entity_id)
            self._check_access(actor, entity_type, target, Operation.RESTORE)
            return await self.cascade.cascade_restore(
                entity_type,
                entity_id,
                actor.id,
                session,
                include_descendants=include_descendants,
                can_restore=can_restore,
            )

        async def events(result: CascadeResult) -> None:
            if result.affected_count:
                await notify_entity_event(
                    self.dispatcher,
                    "restored",
                    result.root,
                    actor.id,
                    extra={"affected_count": result.affected_count},
                )
            await self._notify_pruned_heads(result, actor, "invalid head on restore")

        result = await self.coordinator.execute_with_retry(operation, events)
        return LifecycleResult(
            entity_type,
            entity_id,
            "restored",
            changed=result.affected_count > 0,
            affected_count=result.affected_count,
            affected=result.affected,
            document=result.root,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(
        self,
        actor: Optional[Actor],
        entity_type: EntityType,
        entity_id: int,
        with_deleted: bool = False,
    ) -> Any:
        """
        Read one entity inside the actor's read scopes.

        Soft-deleted entities are reported as missing unless with_deleted.

        Raises:
            ResourceNotFoundError: Missing (or deleted and not requested)
            AuthorizationError: No read scope, or the entity is outside it
        """
        actor = require_actor(actor)
        entity_type = EntityType(entity_type)
        self.resolver.require_permission(actor, resource_type_for(entity_type), Operation.READ)

        document = await self._pre_read(entity_type, entity_id)
        if document is not None and document.is_deleted and not with_deleted:
            document = None
        self._check_access(actor, entity_type, document, Operation.READ)
        return document

    async def list(
        self,
        actor: Optional[Actor],
        resource_type: ResourceType,
        with_deleted: bool = False,
        only_deleted: bool = False,
        skip: int = 0,
        limit: int = 100,
        **filters: Any,
    ) -> List[Any]:
        """
        List the documents of a resource type visible to the actor.

        Args:
            actor: Authenticated actor
            resource_type: Resource to list (Task lists every variant)
            with_deleted: Include soft-deleted documents
            only_deleted: Return soft-deleted documents only
            skip: Pagination offset
            limit: Page size
            **filters: Column equality filters (e.g. department_id=3)

        Raises:
            AuthorizationError: No read scope
        """
        actor = require_actor(actor)
        resource_type = ResourceType(resource_type)
        scope_filter = self.resolver.build_read_filter(
            actor, resource_type, Operation.READ, with_deleted=True
        )

        async with self.session_factory() as session:
            dao = BaseDAO(RESOURCE_MODELS[resource_type], session)
            return await dao.get_all(
                skip=skip,
                limit=limit,
                with_deleted=with_deleted,
                only_deleted=only_deleted,
                where=scope_filter,
                **filters,
            )

    async def get_activity_cost(self, actor: Optional[Actor], activity_id: int) -> ActivityCostResponse:
        """
        Materials used by an activity with cost derived as price x quantity.

        Prices are read at call time, so a price change is reflected in
        every activity. Deleted materials still contribute their cost.
        """
        activity = await self.get(actor, EntityType.TASK_ACTIVITY, activity_id)

        async with self.session_factory() as session:
            dao = BaseDAO(Material, session)
            materials = {
                m.id: m for m in await dao.get_many_by_ids(activity.material_ids, with_deleted=True)
            }

        lines = []
        total = Decimal("0")
        for usage in activity.material_usages:
            material = materials.get(usage.material_id)
            if material is None:
                continue
            price = Decimal(material.price)
            quantity = Decimal(usage.quantity)
            cost = price * quantity
            total += cost
            lines.append(
                MaterialCostLine(
                    material_id=material.id,
                    name=material.name,
                    unit_type=material.unit_type,
                    price=price,
                    quantity=quantity,
                    cost=cost,
                )
            )

        return ActivityCostResponse(activity_id=activity.id, materials=lines, total_cost=total)
