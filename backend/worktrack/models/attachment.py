"""
Attachment model.

WHAT: File metadata attached to a task, an activity or a comment.

WHY: Attachments are leaves of the entity graph. Their owner for the
``own`` scope is the uploader.
"""

from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer, String, BigInteger, Enum as SQLEnum

from worktrack.models.base import Base, TimestampMixin, PrimaryKeyMixin
from worktrack.models.entity_types import EntityType, TASK_TYPES
from worktrack.models.soft_delete import SoftDeleteMixin


class AttachmentType(str, Enum):
    """Attachment file types."""

    IMAGE = "Image"
    VIDEO = "Video"
    DOCUMENT = "Document"
    AUDIO = "Audio"
    OTHER = "Other"


# Maximum file size per type, in bytes
FILE_SIZE_LIMITS = {
    AttachmentType.IMAGE: 10 * 1024 * 1024,
    AttachmentType.VIDEO: 100 * 1024 * 1024,
    AttachmentType.DOCUMENT: 25 * 1024 * 1024,
    AttachmentType.AUDIO: 20 * 1024 * 1024,
    AttachmentType.OTHER: 50 * 1024 * 1024,
}

ATTACHMENT_PARENT_TYPES = TASK_TYPES + (EntityType.TASK_ACTIVITY, EntityType.TASK_COMMENT)


class Attachment(Base, PrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """File attachment with a polymorphic parent."""

    __tablename__ = "attachments"

    filename = Column(String(255), nullable=False)
    file_url = Column(String(1024), nullable=False)
    file_type = Column(
        SQLEnum(AttachmentType, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    file_size = Column(BigInteger, nullable=False)

    parent_id = Column(Integer, nullable=False, index=True)
    parent_model = Column(
        SQLEnum(EntityType, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
