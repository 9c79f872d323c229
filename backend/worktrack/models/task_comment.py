"""
Task comment model.

WHAT: Threaded comments on a task, an activity, or another comment.

WHY: Replies nest at most MAX_COMMENT_DEPTH levels (comment -> reply ->
reply to reply). A comment's parent is a tagged reference, so deleting a
comment cascades into its replies through the same edge table as tasks.
"""

from typing import List

from sqlalchemy import Column, ForeignKey, Integer, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship

from worktrack.models.base import Base, TimestampMixin, PrimaryKeyMixin
from worktrack.models.entity_types import EntityType, TASK_TYPES
from worktrack.models.soft_delete import SoftDeleteMixin


MAX_MENTIONS = 5
MAX_COMMENT_DEPTH = 3

COMMENT_PARENT_TYPES = TASK_TYPES + (EntityType.TASK_ACTIVITY, EntityType.TASK_COMMENT)


class CommentMention(Base):
    """Association row: a user mentioned in a comment."""

    __tablename__ = "comment_mentions"

    comment_id = Column(Integer, ForeignKey("task_comments.id"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True, index=True)


class TaskComment(Base, PrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """Comment with a polymorphic parent."""

    __tablename__ = "task_comments"

    comment = Column(Text, nullable=False)

    parent_id = Column(Integer, nullable=False, index=True)
    parent_model = Column(
        SQLEnum(EntityType, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    mention_links = relationship(
        "CommentMention",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def mention_ids(self) -> List[int]:
        return [link.user_id for link in self.mention_links]

    def set_mentions(self, user_ids: List[int]) -> None:
        existing = {link.user_id: link for link in self.mention_links}
        self.mention_links = [
            existing.get(uid) or CommentMention(user_id=uid) for uid in dict.fromkeys(user_ids)
        ]
