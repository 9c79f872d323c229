"""
Soft-delete capability shared by every entity.

WHAT: Mixin adding the soft-delete columns and the two state transitions
(mark_deleted / mark_restored) to a model.

WHY: Entities are never physically erased. Deletion is a state transition
and must keep the following invariant at all times:

    is_deleted=False  and deleted_at is None     and deleted_by is None
    is_deleted=True   and deleted_at is not None and deleted_by is not None

restored_at / restored_by are only set on an entity that was deleted and
then restored, and are cleared again by a later delete.

HOW: Composed into each model next to PrimaryKeyMixin and TimestampMixin.
The transitions only mutate the in-memory instance; persisting them is the
caller's job (the cascade engine flushes inside its transaction).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, false

from worktrack.models.base import utcnow


class SoftDeleteMixin:
    """
    Mixin adding soft-delete fields and transitions.

    Attributes:
        is_deleted: Whether the entity is currently deleted
        deleted_at: When the current deletion happened
        deleted_by: User who performed the current deletion
        restored_at: When the entity was last restored
        restored_by: User who last restored the entity
    """

    is_deleted = Column(Boolean, nullable=False, default=False, server_default=false(), index=True)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by = Column(Integer, nullable=True)
    restored_at = Column(DateTime, nullable=True)
    restored_by = Column(Integer, nullable=True)

    @property
    def is_active(self) -> bool:
        """True while the entity is not soft-deleted."""
        return not self.is_deleted

    def mark_deleted(self, actor_id: int, at: Optional[datetime] = None) -> bool:
        """
        Transition to the deleted state.

        An already-deleted entity keeps its original deletion audit.

        Args:
            actor_id: User performing the deletion
            at: Deletion timestamp (one value is shared by a whole cascade)

        Returns:
            True if the state changed, False if already deleted
        """
        if self.is_deleted:
            return False

        self.is_deleted = True
        self.deleted_at = at or utcnow()
        self.deleted_by = actor_id
        self.restored_at = None
        self.restored_by = None
        return True

    def mark_restored(self, actor_id: int, at: Optional[datetime] = None) -> bool:
        """
        Transition back to the active state.

        Args:
            actor_id: User performing the restore
            at: Restore timestamp

        Returns:
            True if the state changed, False if already active
        """
        if not self.is_deleted:
            return False

        self.is_deleted = False
        self.deleted_at = None
        self.deleted_by = None
        self.restored_at = at or utcnow()
        self.restored_by = actor_id
        return True

    def soft_delete_state(self) -> dict:
        """Snapshot of the soft-delete fields (restore audit view)."""
        return {
            "id": self.id,
            "is_deleted": self.is_deleted,
            "deleted_at": self.deleted_at,
            "deleted_by": self.deleted_by,
            "restored_at": self.restored_at,
            "restored_by": self.restored_by,
        }
