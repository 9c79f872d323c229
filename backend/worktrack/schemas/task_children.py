"""
Pydantic schemas for task activities, comments and attachments.

WHAT: Write payloads for the three polymorphic task children and the
activity cost projection.

WHY: The parent of a child is a tagged reference (parent_id +
parent_model). The schema restricts parent_model to the kinds of parent
each child accepts; whether the parent exists, is active and is in the
actor's organization is checked by the entity service.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from worktrack.models.attachment import ATTACHMENT_PARENT_TYPES, FILE_SIZE_LIMITS, AttachmentType
from worktrack.models.entity_types import EntityType
from worktrack.models.task_activity import ACTIVITY_PARENT_TYPES, MAX_MATERIALS
from worktrack.models.task_comment import COMMENT_PARENT_TYPES, MAX_MENTIONS


def _check_parent(value: EntityType, allowed, child: str) -> EntityType:
    if value not in allowed:
        raise ValueError(
            f"{child} parent must be one of {[t.value for t in allowed]}, got '{value.value}'"
        )
    return value


# ============================================================================
# Task Activity
# ============================================================================


class MaterialUsage(BaseModel):
    """A material consumed by an activity."""

    material_id: int
    quantity: Decimal = Field(..., ge=0)


class TaskActivityCreate(BaseModel):
    """
    Activity creation request.

    RoutineTask is not an accepted parent.
    """

    parent_id: int
    parent_model: EntityType
    activity: str = Field(..., min_length=1, max_length=2000)
    materials: List[MaterialUsage] = Field(default_factory=list, max_length=MAX_MATERIALS)

    @field_validator("parent_model")
    @classmethod
    def validate_parent_model(cls, v: EntityType) -> EntityType:
        return _check_parent(v, ACTIVITY_PARENT_TYPES, "TaskActivity")

    @field_validator("materials")
    @classmethod
    def validate_unique_materials(cls, v: List[MaterialUsage]) -> List[MaterialUsage]:
        ids = [usage.material_id for usage in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Each material may appear only once per activity")
        return v


class MaterialCostLine(BaseModel):
    """One material line of an activity, with its derived cost."""

    material_id: int
    name: str
    unit_type: str
    price: Decimal
    quantity: Decimal
    cost: Decimal


class ActivityCostResponse(BaseModel):
    """Materials of an activity with cost derived at read time."""

    activity_id: int
    materials: List[MaterialCostLine]
    total_cost: Decimal


class TaskActivityResponse(BaseModel):
    """Activity read projection."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    activity: str
    parent_id: int
    parent_model: EntityType
    organization_id: int
    department_id: int
    created_by: int
    material_ids: List[int] = Field(default_factory=list)
    is_deleted: bool


# ============================================================================
# Task Comment
# ============================================================================


class TaskCommentCreate(BaseModel):
    """
    Comment creation request.

    Replies are comments whose parent_model is TaskComment; nesting depth
    is validated by the entity service.
    """

    parent_id: int
    parent_model: EntityType
    comment: str = Field(..., min_length=1, max_length=2000)
    mention_ids: List[int] = Field(default_factory=list)

    @field_validator("parent_model")
    @classmethod
    def validate_parent_model(cls, v: EntityType) -> EntityType:
        return _check_parent(v, COMMENT_PARENT_TYPES, "TaskComment")

    @field_validator("mention_ids")
    @classmethod
    def validate_mentions(cls, v: List[int]) -> List[int]:
        v = list(dict.fromkeys(v))
        if len(v) > MAX_MENTIONS:
            raise ValueError(f"A comment can mention at most {MAX_MENTIONS} users")
        return v


class TaskCommentResponse(BaseModel):
    """Comment read projection."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    comment: str
    parent_id: int
    parent_model: EntityType
    organization_id: int
    department_id: int
    created_by: int
    mention_ids: List[int] = Field(default_factory=list)
    is_deleted: bool


# ============================================================================
# Attachment
# ============================================================================


class AttachmentCreate(BaseModel):
    """
    Attachment metadata.

    WHY: The upload itself is handled by storage; only metadata is recorded.
    Size limits depend on the file type.
    """

    parent_id: int
    parent_model: EntityType
    filename: str = Field(..., min_length=1, max_length=255)
    file_url: str = Field(..., min_length=1, max_length=1024)
    file_type: AttachmentType
    file_size: int = Field(..., gt=0)

    @field_validator("parent_model")
    @classmethod
    def validate_parent_model(cls, v: EntityType) -> EntityType:
        return _check_parent(v, ATTACHMENT_PARENT_TYPES, "Attachment")

    @model_validator(mode="after")
    def validate_size(self) -> "AttachmentCreate":
        limit = FILE_SIZE_LIMITS[self.file_type]
        if self.file_size > limit:
            raise ValueError(
                f"{self.file_type.value} attachments are limited to {limit // (1024 * 1024)} MB"
            )
        return self


class AttachmentResponse(BaseModel):
    """Attachment read projection."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    filename: str
    file_url: str
    file_type: AttachmentType
    file_size: int
    parent_id: int
    parent_model: EntityType
    uploaded_by: int
    is_deleted: bool
    restored_at: Optional[datetime] = None
