"""
Pydantic schemas for tasks.

WHAT: Write payloads for creating/updating the three task variants and
the read projection returned to callers.

WHY: Variant rules live here so a malformed task never reaches the
database:
1. ProjectTask requires a vendor
2. RoutineTask is never "To Do" and never "Low" priority
3. AssignedTask has between 1 and 20 assignees
4. start_date is not after due_date

HOW: One create schema with a task_type discriminator, checked by a
model validator. Cross-entity rules (the vendor exists and belongs to the
same organization) are checked by the entity service.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from worktrack.models.entity_types import EntityType, TASK_TYPES
from worktrack.models.task import (
    MAX_ASSIGNEES,
    MAX_WATCHERS,
    ROUTINE_TASK_PRIORITIES,
    ROUTINE_TASK_STATUSES,
    TaskPriority,
    TaskStatus,
)


def _dedupe(ids: List[int]) -> List[int]:
    return list(dict.fromkeys(ids))


# ============================================================================
# Request Schemas
# ============================================================================


class TaskCreate(BaseModel):
    """
    Task creation request.

    department_id defaults to the actor's own department.
    """

    task_type: EntityType = Field(..., description="ProjectTask, RoutineTask or AssignedTask")
    title: Optional[str] = Field(None, max_length=50)
    description: str = Field(..., min_length=1, max_length=2000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    department_id: Optional[int] = Field(None, description="Target department")
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    watcher_ids: List[int] = Field(default_factory=list)

    # ProjectTask
    vendor_id: Optional[int] = None
    estimated_cost: Optional[Decimal] = Field(None, ge=0)
    actual_cost: Optional[Decimal] = Field(None, ge=0)
    currency: str = Field("ETB", min_length=3, max_length=3)

    # AssignedTask
    assignee_ids: List[int] = Field(default_factory=list)

    @field_validator("task_type")
    @classmethod
    def validate_task_type(cls, v: EntityType) -> EntityType:
        if v not in TASK_TYPES:
            raise ValueError(f"task_type must be one of {[t.value for t in TASK_TYPES]}")
        return v

    @field_validator("watcher_ids", "assignee_ids")
    @classmethod
    def dedupe_user_ids(cls, v: List[int]) -> List[int]:
        return _dedupe(v)

    @model_validator(mode="after")
    def validate_variant(self) -> "TaskCreate":
        """
        Apply the per-variant rules and fill variant defaults.

        WHY: Defaults differ per variant (a routine task starts "In Progress").
        """
        if len(self.watcher_ids) > MAX_WATCHERS:
            raise ValueError(f"A task can have at most {MAX_WATCHERS} watchers")

        if self.start_date and self.due_date and self.start_date > self.due_date:
            raise ValueError("start_date must not be after due_date")

        if self.task_type == EntityType.PROJECT_TASK:
            if self.vendor_id is None:
                raise ValueError("vendor_id is required for a ProjectTask")
        elif self.vendor_id is not None:
            raise ValueError("vendor_id is only allowed on a ProjectTask")

        if self.task_type == EntityType.ASSIGNED_TASK:
            if not 1 <= len(self.assignee_ids) <= MAX_ASSIGNEES:
                raise ValueError(f"An AssignedTask needs between 1 and {MAX_ASSIGNEES} assignees")
        elif self.assignee_ids:
            raise ValueError("assignee_ids is only allowed on an AssignedTask")

        if self.task_type == EntityType.ROUTINE_TASK:
            if self.status is None:
                self.status = TaskStatus.IN_PROGRESS
            if self.priority is None:
                self.priority = TaskPriority.MEDIUM
            if self.status not in ROUTINE_TASK_STATUSES:
                raise ValueError(f"A RoutineTask cannot have status '{self.status.value}'")
            if self.priority not in ROUTINE_TASK_PRIORITIES:
                raise ValueError(f"A RoutineTask cannot have priority '{self.priority.value}'")
        else:
            if self.status is None:
                self.status = TaskStatus.TO_DO
            if self.priority is None:
                self.priority = TaskPriority.MEDIUM

        return self


class TaskUpdate(BaseModel):
    """
    Partial task update.

    organization_id and department_id are accepted so that an attempt to
    move a task is reported instead of silently ignored.
    """

    title: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    watcher_ids: Optional[List[int]] = Field(None, max_length=MAX_WATCHERS)

    vendor_id: Optional[int] = None
    estimated_cost: Optional[Decimal] = Field(None, ge=0)
    actual_cost: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)

    assignee_ids: Optional[List[int]] = Field(None, min_length=1, max_length=MAX_ASSIGNEES)

    organization_id: Optional[int] = None
    department_id: Optional[int] = None

    @field_validator("watcher_ids", "assignee_ids")
    @classmethod
    def dedupe_user_ids(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        return _dedupe(v) if v is not None else v

    @model_validator(mode="after")
    def validate_dates(self) -> "TaskUpdate":
        if self.start_date and self.due_date and self.start_date > self.due_date:
            raise ValueError("start_date must not be after due_date")
        return self


# ============================================================================
# Response Schemas
# ============================================================================


class TaskResponse(BaseModel):
    """Task read projection (all variants)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    task_type: EntityType
    title: Optional[str] = None
    description: str
    status: TaskStatus
    priority: TaskPriority
    organization_id: int
    department_id: int
    created_by: int
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    watcher_ids: List[int] = Field(default_factory=list)

    vendor_id: Optional[int] = None
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    currency: Optional[str] = None

    assignee_ids: List[int] = Field(default_factory=list)

    is_deleted: bool
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[int] = None
    restored_at: Optional[datetime] = None
    restored_by: Optional[int] = None
    created_at: datetime
