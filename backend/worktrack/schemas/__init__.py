"""Pydantic schemas for write payloads and read projections."""

from worktrack.schemas.organization import (
    DepartmentCreate,
    DepartmentResponse,
    MaterialCreate,
    MaterialResponse,
    SoftDeleteState,
    VendorCreate,
    VendorResponse,
)
from worktrack.schemas.task import TaskCreate, TaskResponse, TaskUpdate
from worktrack.schemas.task_children import (
    ActivityCostResponse,
    AttachmentCreate,
    AttachmentResponse,
    MaterialCostLine,
    MaterialUsage,
    TaskActivityCreate,
    TaskActivityResponse,
    TaskCommentCreate,
    TaskCommentResponse,
)

__all__ = [
    "DepartmentCreate",
    "DepartmentResponse",
    "MaterialCreate",
    "MaterialResponse",
    "SoftDeleteState",
    "VendorCreate",
    "VendorResponse",
    "TaskCreate",
    "TaskResponse",
    "TaskUpdate",
    "ActivityCostResponse",
    "AttachmentCreate",
    "AttachmentResponse",
    "MaterialCostLine",
    "MaterialUsage",
    "TaskActivityCreate",
    "TaskActivityResponse",
    "TaskCommentCreate",
    "TaskCommentResponse",
]
