"""
Cascade Engine.

WHAT: Soft-deletes an entity together with its whole dependent subtree,
and restores an entity once its ancestor chain is active again.

WHY: A child may be active only while every ancestor up to its
organization is active. Deleting therefore has to reach every descendant
in the same transaction, and restoring has to refuse while any ancestor
is still deleted. Restore is deliberately not cascading: children deleted
independently before the parent must not come back with it.

HOW:
- Delete walks the edge table in models.graph level by level. Each level
  is loaded with one query per (parent type, child edge), so the number
  of round trips is bounded by the depth of the graph, not the size of
  the subtree. Nodes are addressed by (entity type, id) and visited once.
  Already-deleted nodes are traversed but not touched, which keeps their
  original deletion audit and still reaches active nodes below them.
- Restore walks upwards through parent_ref_of to the organization, then
  runs the per-type restore guards before changing anything.
- Delete locks every node it visits with FOR UPDATE NOWAIT. Writes that
  attach a child hold their parent FOR SHARE, so a cascade and a
  concurrent insert below it cannot both commit; the loser gets a
  conflict and is retried on a fresh snapshot.

Both operations run inside the caller's session/transaction, share one
timestamp per operation and emit no events; the mutation coordinator
handles commit and notification.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from worktrack.core.exceptions import (
    AncestorStillDeletedError,
    ConflictError,
    NoActiveAssigneesError,
    ResourceNotFoundError,
    RestoreDependencyError,
)
from worktrack.models.base import utcnow
from worktrack.models.department import Department
from worktrack.models.entity_types import EntityType, TASK_TYPES
from worktrack.models.graph import child_types_of, model_for, parent_ref_of
from worktrack.models.task import AssignedTask, BaseTask, ProjectTask
from worktrack.models.user import User
from worktrack.models.vendor import Vendor

logger = logging.getLogger(__name__)

EntityRef = Tuple[EntityType, int]

# Decides whether a same-cascade descendant may come back with its root
RestoreFilter = Callable[[EntityType, Any], bool]


class RowLock(str, Enum):
    """Row lock taken while loading an entity inside a write transaction."""

    # FOR SHARE: the row must stay as read until commit
    SHARE = "share"
    # FOR UPDATE NOWAIT: fail at once if another transaction holds the row
    UPDATE = "update"


def with_row_lock(query: Select, model, lock: Optional[RowLock]) -> Select:
    """
    Apply a row lock to a query over ``model``.

    Only the model's own table is locked. Backends without row locks
    (SQLite) render no clause and rely on their database-level lock.
    """
    if lock is RowLock.SHARE:
        return query.with_for_update(read=True, of=model)
    if lock is RowLock.UPDATE:
        return query.with_for_update(nowait=True, of=model)
    return query


def entity_query(entity_type: EntityType, entity_id: int, lock: Optional[RowLock] = None) -> Select:
    """SELECT of one entity by id, optionally locked."""
    model = model_for(entity_type)
    return with_row_lock(select(model).where(model.id == entity_id), model, lock)


@dataclass
class CascadeResult:
    """
    Outcome of a cascade operation.

    Attributes:
        affected_count: Number of entities whose state changed
        affected: (entity type, id) of each changed entity, root first
        root: The root document after the operation
        pruned_heads: (department, former head id) for every department
            whose head reference was cleared
    """

    affected_count: int = 0
    affected: List[EntityRef] = field(default_factory=list)
    root: Optional[Any] = None
    pruned_heads: List[Tuple[Any, int]] = field(default_factory=list)

    @property
    def affected_ids(self) -> List[int]:
        return [entity_id for _, entity_id in self.affected]

    def record(self, entity_type: EntityType, entity_id: int) -> None:
        self.affected.append((EntityType(entity_type), entity_id))
        self.affected_count += 1


class CascadeEngine:
    """
    Applies soft-delete and restore transitions across the entity graph.

    The engine holds no state between calls and can be shared.
    """

    async def load(
        self,
        session: AsyncSession,
        entity_type: EntityType,
        entity_id: int,
        lock: Optional[RowLock] = None,
    ) -> Optional[Any]:
        """
        Load one entity regardless of its deletion state.

        For task variants the query is restricted to that variant, so a
        ProjectTask id looked up as an AssignedTask is reported missing.
        """
        result = await session.execute(entity_query(entity_type, entity_id, lock))
        return result.scalar_one_or_none()

    async def _require(
        self,
        session: AsyncSession,
        entity_type: EntityType,
        entity_id: int,
        lock: Optional[RowLock] = None,
    ) -> Any:
        document = await self.load(session, entity_type, entity_id, lock)
        if document is None:
            raise ResourceNotFoundError(
                f"{EntityType(entity_type).value} not found",
                entity_type=EntityType(entity_type).value,
                entity_id=entity_id,
            )
        return document

    async def _load_children(
        self,
        session: AsyncSession,
        parent_type: EntityType,
        parent_ids: List[int],
        lock: Optional[RowLock] = None,
    ) -> List[Tuple[EntityType, Any]]:
        """All children (deleted or not) of a batch of same-typed parents."""
        children: List[Tuple[EntityType, Any]] = []
        for edge in child_types_of(parent_type):
            model = model_for(edge.child_type)
            query = select(model).where(getattr(model, edge.foreign_key).in_(parent_ids))
            if edge.discriminator is not None:
                query = query.where(model.parent_model == edge.discriminator)
            query = with_row_lock(query.order_by(model.id), model, lock)
            result = await session.execute(query)
            children.extend((edge.child_type, child) for child in result.scalars().all())
        return children

    # =========================================================================
    # Delete
    # =========================================================================

    async def cascade_delete(
        self,
        root_type: EntityType,
        root_id: int,
        actor_id: int,
        session: AsyncSession,
    ) -> CascadeResult:
        """
        Soft-delete an entity and every descendant.

        Idempotent: calling it again on the same root affects 0 entities.
        Departments headed by a user deleted here lose their head.

        Args:
            root_type: Entity type of the root
            root_id: Root id
            actor_id: User performing the deletion
            session: Session with an open transaction

        Returns:
            CascadeResult listing every entity transitioned to deleted

        Raises:
            ResourceNotFoundError: If the root does not exist
            TransactionConflictError: (via the coordinator) if a visited
                row is locked by a concurrent write
        """
        root_type = EntityType(root_type)
        root = await self._require(session, root_type, root_id, lock=RowLock.UPDATE)
        now = utcnow()

        result = CascadeResult(root=root)
        visited: Set[EntityRef] = {(root_type, root.id)}
        level: List[Tuple[EntityType, Any]] = [(root_type, root)]

        while level:
            by_type: Dict[EntityType, List[int]] = {}
            for entity_type, document in level:
                if document.mark_deleted(actor_id, at=now):
                    result.record(entity_type, document.id)
                by_type.setdefault(entity_type, []).append(document.id)

            next_level: List[Tuple[EntityType, Any]] = []
            for parent_type, parent_ids in by_type.items():
                children = await self._load_children(
                    session, parent_type, parent_ids, lock=RowLock.UPDATE
                )
                for child_type, child in children:
                    ref = (child_type, child.id)
                    if ref in visited:
                        continue
                    visited.add(ref)
                    next_level.append((child_type, child))
            level = next_level

        await session.flush()
        await self._release_heads(session, result)

        logger.info(
            "Cascade delete of %s %s by user %s affected %d entities",
            root_type.value,
            root_id,
            actor_id,
            result.affected_count,
        )
        return result

    async def _release_heads(self, session: AsyncSession, result: CascadeResult) -> None:
        """Clear the head of every active department whose head was deleted."""
        user_ids = [entity_id for entity_type, entity_id in result.affected if entity_type is EntityType.USER]
        if not user_ids:
            return

        departments = await session.execute(
            select(Department)
            .where(Department.hod_id.in_(user_ids), Department.is_deleted.is_(False))
            .order_by(Department.id)
        )
        for department in departments.scalars().all():
            logger.info(
                "Department %s loses head %s (user deleted)", department.id, department.hod_id
            )
            result.pruned_heads.append((department, department.hod_id))
            department.hod_id = None
        await session.flush()

    # =========================================================================
    # Restore
    # =========================================================================

    async def check_ancestors(
        self, session: AsyncSession, entity_type: EntityType, document: Any
    ) -> None:
        """
        Ensure every ancestor up to the organization exists and is active.

        Raises:
            AncestorStillDeletedError: Naming the first blocking ancestor
        """
        ref = parent_ref_of(entity_type, document)
        while ref is not None:
            ancestor_type, ancestor_id = ref
            ancestor = await self.load(session, ancestor_type, ancestor_id)
            if ancestor is None or ancestor.is_deleted:
                logger.warning(
                    "Restore of %s %s blocked by %s %s ancestor %s",
                    EntityType(entity_type).value,
                    document.id,
                    "missing" if ancestor is None else "deleted",
                    ancestor_type.value,
                    ancestor_id,
                )
                raise AncestorStillDeletedError(
                    f"Cannot restore {EntityType(entity_type).value}: "
                    f"{ancestor_type.value} {ancestor_id} is deleted. Restore it first.",
                    ancestor_type=ancestor_type.value,
                    ancestor_id=ancestor_id,
                )
            ref = parent_ref_of(ancestor_type, ancestor)

    async def _active_ids(self, session: AsyncSession, model, ids: List[int]) -> Set[int]:
        if not ids:
            return set()
        # Restores made earlier in this session must be visible to the query
        await session.flush()
        result = await session.execute(
            select(model.id).where(model.id.in_(ids), model.is_deleted.is_(False))
        )
        return set(result.scalars().all())

    async def _prune_head(
        self, session: AsyncSession, department: Department, result: Optional[CascadeResult]
    ) -> None:
        if department.hod_id is None:
            return
        head = await self.load(session, EntityType.USER, department.hod_id)
        if (
            head is not None
            and not head.is_deleted
            and head.is_hod
            and head.organization_id == department.organization_id
        ):
            return

        logger.warning(
            "Department %s head %s pruned during restore (invalid reference)",
            department.id,
            department.hod_id,
            extra={"event": "DEPT_HOD_PRUNED"},
        )
        if result is not None:
            result.pruned_heads.append((department, department.hod_id))
        department.hod_id = None

    async def prepare_restore(
        self,
        session: AsyncSession,
        entity_type: EntityType,
        document: Any,
        result: Optional[CascadeResult] = None,
    ) -> None:
        """
        Run the per-type restore guards and prune dangling references.

        All checks run before anything is modified, so a failing guard
        leaves the document untouched.

        - Department: a head that is missing, deleted, no longer a head or
          in another organization is cleared (recorded on ``result``)
        - User: comes back without head status
        - Tasks: vendor and assignee guards, then inactive watchers and
          assignees are dropped

        Raises:
            RestoreDependencyError: ProjectTask whose vendor is deleted
            NoActiveAssigneesError: AssignedTask without an active assignee
        """
        entity_type = EntityType(entity_type)
        if entity_type is EntityType.DEPARTMENT:
            await self._prune_head(session, document, result)
            return
        if entity_type is EntityType.USER:
            document.is_hod = False
            return
        if entity_type not in TASK_TYPES:
            return

        task: BaseTask = document

        if isinstance(task, ProjectTask) and task.vendor_id is not None:
            vendor_active = await self._active_ids(session, Vendor, [task.vendor_id])
            if not vendor_active:
                raise RestoreDependencyError(
                    "Cannot restore project task while its vendor is deleted",
                    dependency_type=EntityType.VENDOR.value,
                    dependency_id=task.vendor_id,
                )

        active_assignees: Optional[List[int]] = None
        if isinstance(task, AssignedTask):
            active = await self._active_ids(session, User, task.assignee_ids)
            active_assignees = [uid for uid in task.assignee_ids if uid in active]
            if not active_assignees:
                raise NoActiveAssigneesError(task_id=task.id)

        active_watchers = await self._active_ids(session, User, task.watcher_ids)

        if active_assignees is not None and len(active_assignees) != len(task.assignee_ids):
            task.set_assignees(active_assignees)
        if len(active_watchers) != len(task.watcher_ids):
            task.set_watchers([uid for uid in task.watcher_ids if uid in active_watchers])

    async def cascade_restore(
        self,
        root_type: EntityType,
        root_id: int,
        actor_id: int,
        session: AsyncSession,
        include_descendants: bool = False,
        can_restore: Optional[RestoreFilter] = None,
    ) -> CascadeResult:
        """
        Restore an entity whose ancestors are all active.

        Only the root is restored, unless include_descendants is set: then
        descendants deleted by the same cascade as the root (same
        deleted_at and deleted_by) come back too. Traversal stops below any
        node that is not restored, so independently deleted branches stay
        deleted. A descendant rejected by ``can_restore`` or by its restore
        guards stays deleted together with its subtree.

        Args:
            root_type: Entity type of the root
            root_id: Root id
            actor_id: User performing the restore
            session: Session with an open transaction
            include_descendants: Also restore same-cascade descendants
            can_restore: Per-descendant check, typically the actor's
                restore scopes (every descendant passes when None)

        Returns:
            CascadeResult (affected_count 0 if the root is already active)

        Raises:
            ResourceNotFoundError: If the root does not exist
            AncestorStillDeletedError: If an ancestor is deleted or missing
            RestoreDependencyError / NoActiveAssigneesError: Guard failures
        """
        root_type = EntityType(root_type)
        root = await self._require(session, root_type, root_id)
        result = CascadeResult(root=root)

        if not root.is_deleted:
            return result

        await self.check_ancestors(session, root_type, root)
        await self.prepare_restore(session, root_type, root, result)

        deleted_at: datetime = root.deleted_at
        deleted_by: int = root.deleted_by
        now = utcnow()

        root.mark_restored(actor_id, at=now)
        result.record(root_type, root.id)

        if include_descendants:
            await self._restore_descendants(
                session, root_type, root, deleted_at, deleted_by, actor_id, now, result, can_restore
            )

        await session.flush()

        logger.info(
            "Restore of %s %s by user %s affected %d entities",
            root_type.value,
            root_id,
            actor_id,
            result.affected_count,
        )
        return result

    async def _restore_descendants(
        self,
        session: AsyncSession,
        root_type: EntityType,
        root: Any,
        deleted_at: datetime,
        deleted_by: int,
        actor_id: int,
        now: datetime,
        result: CascadeResult,
        can_restore: Optional[RestoreFilter],
    ) -> None:
        visited: Set[EntityRef] = {(root_type, root.id)}
        level: List[Tuple[EntityType, Any]] = [(root_type, root)]

        while level:
            by_type: Dict[EntityType, List[int]] = {}
            for entity_type, document in level:
                by_type.setdefault(entity_type, []).append(document.id)

            next_level: List[Tuple[EntityType, Any]] = []
            for parent_type, parent_ids in by_type.items():
                for child_type, child in await self._load_children(session, parent_type, parent_ids):
                    ref = (child_type, child.id)
                    if ref in visited:
                        continue
                    visited.add(ref)

                    same_cascade = (
                        child.is_deleted
                        and child.deleted_at == deleted_at
                        and child.deleted_by == deleted_by
                    )
                    if not same_cascade:
                        continue

                    if can_restore is not None and not can_restore(child_type, child):
                        logger.warning(
                            "Skipping restore of %s %s: outside the actor's restore scopes",
                            child_type.value,
                            child.id,
                        )
                        continue

                    try:
                        await self.prepare_restore(session, child_type, child, result)
                    except ConflictError as e:
                        logger.warning(
                            "Skipping restore of %s %s: %s", child_type.value, child.id, e.message
                        )
                        continue

                    child.mark_restored(actor_id, at=now)
                    result.record(child_type, child.id)
                    next_level.append((child_type, child))
            level = next_level
