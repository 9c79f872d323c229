"""
Tests for the EntityService.

WHY: Writes establish the graph invariants. These tests check that new
entities only hang below active parents of the actor's organization,
that references are validated inside the transaction, and that the
scope ceiling applies to the target department.
"""

from decimal import Decimal

import pytest

from worktrack.core.exceptions import (
    AuthorizationError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    ScopeCeilingError,
    ValidationError,
)
from worktrack.models.attachment import AttachmentType
from worktrack.models.department import Department
from worktrack.models.entity_types import EntityType
from worktrack.models.material import Material
from worktrack.models.task import AssignedTask, BaseTask, RoutineTask, TaskPriority, TaskStatus
from worktrack.models.task_activity import TaskActivity
from worktrack.models.task_comment import TaskComment
from worktrack.models.user import User
from worktrack.schemas.organization import DepartmentCreate, MaterialCreate, VendorCreate
from worktrack.schemas.task import TaskCreate, TaskUpdate
from worktrack.schemas.task_children import (
    AttachmentCreate,
    MaterialUsage,
    TaskActivityCreate,
    TaskCommentCreate,
)
from worktrack.services.cascade import CascadeEngine, RowLock
from worktrack.services.entity_service import EntityService

from tests.factories import (
    CommentFactory,
    MaterialFactory,
    TaskFactory,
    VendorFactory,
)


class TestCreateTask:
    """Task creation."""

    async def test_create_assigned_task(self, entity_service, dispatcher, fetch, world):
        data = TaskCreate(
            task_type=EntityType.ASSIGNED_TASK,
            title="Replace filters",
            description="Replace the air filters on floor 2",
            assignee_ids=[world.user_a1.id, world.colleague_a1.id],
            watcher_ids=[world.admin_a.id],
        )

        task = await entity_service.create_task(world.actor("manager_a1"), data)

        stored = await fetch(AssignedTask, task.id)
        assert stored.organization_id == world.org_a.id
        assert stored.department_id == world.dept_a1.id
        assert stored.status == TaskStatus.TO_DO
        assert sorted(stored.assignee_ids) == sorted([world.user_a1.id, world.colleague_a1.id])
        assert stored.watcher_ids == [world.admin_a.id]

        assert dispatcher.names == ["task:created"]
        assert dispatcher.events[0]["audience"] == [
            f"organization:{world.org_a.id}",
            f"department:{world.dept_a1.id}",
        ]

    async def test_routine_task_defaults(self, entity_service, world):
        data = TaskCreate(task_type=EntityType.ROUTINE_TASK, description="Daily boiler check")

        task = await entity_service.create_task(world.actor("user_a1"), data)

        assert isinstance(task, RoutineTask)
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.priority == TaskPriority.MEDIUM

    async def test_admin_creates_in_other_department(self, entity_service, fetch, world):
        data = TaskCreate(
            task_type=EntityType.ROUTINE_TASK,
            description="Inspect loading bay",
            department_id=world.dept_a2.id,
        )

        task = await entity_service.create_task(world.actor("admin_a"), data)

        assert (await fetch(BaseTask, task.id)).department_id == world.dept_a2.id

    async def test_manager_limited_to_own_department(self, entity_service, dispatcher, world):
        """
        Test that a Manager cannot create a task in another department.

        WHY: The Manager's create scope is ownDept, so the target
        department is above their ceiling.
        """
        data = TaskCreate(
            task_type=EntityType.ROUTINE_TASK,
            description="Inspect loading bay",
            department_id=world.dept_a2.id,
        )

        with pytest.raises(ScopeCeilingError):
            await entity_service.create_task(world.actor("manager_a1"), data)

        assert dispatcher.events == []

    async def test_assignee_from_other_organization(self, entity_service, world):
        data = TaskCreate(
            task_type=EntityType.ASSIGNED_TASK,
            description="Fix the door",
            assignee_ids=[world.user_a1.id, world.manager_b1.id],
        )

        with pytest.raises(ValidationError) as exc_info:
            await entity_service.create_task(world.actor("manager_a1"), data)

        assert exc_info.value.context["invalid_ids"] == [world.manager_b1.id]

    async def test_deleted_vendor_is_rejected(self, entity_service, lifecycle_service, db_session, world):
        vendor = await VendorFactory.create(db_session, world.dept_a1, created_by=world.manager_a1)
        await lifecycle_service.delete(world.actor("manager_a1"), EntityType.VENDOR, vendor.id)
        data = TaskCreate(
            task_type=EntityType.PROJECT_TASK,
            description="Roof repair",
            vendor_id=vendor.id,
        )

        with pytest.raises(ValidationError):
            await entity_service.create_task(world.actor("manager_a1"), data)

    async def test_vendor_of_other_organization(self, entity_service, db_session, world):
        vendor = await VendorFactory.create(db_session, world.dept_b1, created_by=world.manager_b1)
        data = TaskCreate(
            task_type=EntityType.PROJECT_TASK,
            description="Roof repair",
            vendor_id=vendor.id,
        )

        with pytest.raises(ValidationError):
            await entity_service.create_task(world.actor("manager_a1"), data)


class TestUpdateTask:
    """Partial task updates."""

    async def test_update_title(self, entity_service, dispatcher, fetch, db_session, world):
        task = await TaskFactory.routine(db_session, world.dept_a1, world.manager_a1)

        await entity_service.update_task(
            world.actor("manager_a1"), task.id, TaskUpdate(title="Boiler check")
        )

        assert (await fetch(RoutineTask, task.id)).title == "Boiler check"
        assert dispatcher.names == ["task:updated"]

    async def test_department_is_immutable(self, entity_service, fetch, db_session, world):
        task = await TaskFactory.routine(db_session, world.dept_a1, world.manager_a1)

        with pytest.raises(ValidationError) as exc_info:
            await entity_service.update_task(
                world.actor("admin_a"), task.id, TaskUpdate(department_id=world.dept_a2.id)
            )

        assert exc_info.value.context["field"] == "department_id"
        assert (await fetch(RoutineTask, task.id)).department_id == world.dept_a1.id

    async def test_routine_task_cannot_be_to_do(self, entity_service, db_session, world):
        task = await TaskFactory.routine(db_session, world.dept_a1, world.manager_a1)

        with pytest.raises(ValidationError):
            await entity_service.update_task(
                world.actor("manager_a1"), task.id, TaskUpdate(status=TaskStatus.TO_DO)
            )

    async def test_assignees_only_on_assigned_tasks(self, entity_service, db_session, world):
        vendor = await VendorFactory.create(db_session, world.dept_a1, created_by=world.manager_a1)
        task = await TaskFactory.project(db_session, world.dept_a1, world.manager_a1, vendor)

        with pytest.raises(ValidationError):
            await entity_service.update_task(
                world.actor("manager_a1"), task.id, TaskUpdate(assignee_ids=[world.user_a1.id])
            )

    async def test_replace_assignees(self, entity_service, fetch, db_session, world):
        task = await TaskFactory.assigned(
            db_session, world.dept_a1, world.manager_a1, assignees=[world.user_a1]
        )

        await entity_service.update_task(
            world.actor("manager_a1"), task.id, TaskUpdate(assignee_ids=[world.colleague_a1.id])
        )

        assert (await fetch(AssignedTask, task.id)).assignee_ids == [world.colleague_a1.id]

    async def test_user_cannot_update_colleague_task(self, entity_service, db_session, world):
        task = await TaskFactory.routine(db_session, world.dept_a1, world.colleague_a1)

        with pytest.raises(AuthorizationError):
            await entity_service.update_task(world.actor("user_a1"), task.id, TaskUpdate(title="Mine now"))

    async def test_deleted_task_is_not_found(self, entity_service, lifecycle_service, db_session, world):
        task = await TaskFactory.routine(db_session, world.dept_a1, world.manager_a1)
        await lifecycle_service.delete(world.actor("manager_a1"), EntityType.ROUTINE_TASK, task.id)

        with pytest.raises(ResourceNotFoundError):
            await entity_service.update_task(world.actor("manager_a1"), task.id, TaskUpdate(title="x"))


class TestTaskChildren:
    """Activities, comments and attachments."""

    async def test_create_activity_with_materials(self, entity_service, dispatcher, db_session, world):
        task = await TaskFactory.assigned(
            db_session, world.dept_a1, world.manager_a1, assignees=[world.user_a1]
        )
        bolts = await MaterialFactory.create(db_session, world.dept_a1, name="Bolts")

        activity = await entity_service.create_activity(
            world.actor("user_a1"),
            TaskActivityCreate(
                parent_id=task.id,
                parent_model=EntityType.ASSIGNED_TASK,
                activity="Tightened the frame",
                materials=[MaterialUsage(material_id=bolts.id, quantity=Decimal("6"))],
            ),
        )

        assert isinstance(activity, TaskActivity)
        assert activity.material_ids == [bolts.id]
        assert activity.department_id == world.dept_a1.id
        assert dispatcher.names == ["activity:created"]

    async def test_activity_material_from_other_organization(self, entity_service, db_session, world):
        task = await TaskFactory.assigned(
            db_session, world.dept_a1, world.manager_a1, assignees=[world.user_a1]
        )
        foreign = await MaterialFactory.create(db_session, world.dept_b1, name="Foreign bolts")

        with pytest.raises(ValidationError):
            await entity_service.create_activity(
                world.actor("manager_a1"),
                TaskActivityCreate(
                    parent_id=task.id,
                    parent_model=EntityType.ASSIGNED_TASK,
                    activity="Tightened the frame",
                    materials=[MaterialUsage(material_id=foreign.id, quantity=Decimal("1"))],
                ),
            )

    async def test_activity_parent_variant_must_match(self, entity_service, db_session, world):
        task = await TaskFactory.assigned(
            db_session, world.dept_a1, world.manager_a1, assignees=[world.user_a1]
        )

        with pytest.raises(ValidationError):
            await entity_service.create_activity(
                world.actor("manager_a1"),
                TaskActivityCreate(
                    parent_id=task.id, parent_model=EntityType.PROJECT_TASK, activity="Wrong variant"
                ),
            )

    async def test_reply_depth_is_limited(self, entity_service, db_session, world):
        """
        Test that replies nest at most three levels deep.

        WHY: A comment on a task is level 1, so the third reply in a chain
        would be level 4.
        """
        task = await TaskFactory.routine(db_session, world.dept_a1, world.manager_a1)
        level1 = await CommentFactory.create(db_session, task, world.manager_a1)
        level2 = await CommentFactory.create(db_session, level1, world.user_a1)
        level3 = await CommentFactory.create(db_session, level2, world.manager_a1)
        actor = world.actor("user_a1")

        with pytest.raises(ValidationError):
            await entity_service.create_comment(
                actor,
                TaskCommentCreate(
                    parent_id=level3.id, parent_model=EntityType.TASK_COMMENT, comment="Too deep"
                ),
            )

        reply = await entity_service.create_comment(
            actor,
            TaskCommentCreate(parent_id=level2.id, parent_model=EntityType.TASK_COMMENT, comment="Fine"),
        )
        assert isinstance(reply, TaskComment)

    async def test_comment_on_deleted_task(self, entity_service, lifecycle_service, db_session, world):
        task = await TaskFactory.routine(db_session, world.dept_a1, world.manager_a1)
        await lifecycle_service.delete(world.actor("manager_a1"), EntityType.ROUTINE_TASK, task.id)

        with pytest.raises(ValidationError):
            await entity_service.create_comment(
                world.actor("manager_a1"),
                TaskCommentCreate(parent_id=task.id, parent_model=EntityType.ROUTINE_TASK, comment="Hello"),
            )

    async def test_comment_mentions(self, entity_service, fetch, db_session, world):
        task = await TaskFactory.routine(db_session, world.dept_a1, world.manager_a1)
        actor = world.actor("user_a1")

        comment = await entity_service.create_comment(
            actor,
            TaskCommentCreate(
                parent_id=task.id,
                parent_model=EntityType.ROUTINE_TASK,
                comment="@colleague please check",
                mention_ids=[world.colleague_a1.id],
            ),
        )
        assert (await fetch(TaskComment, comment.id)).mention_ids == [world.colleague_a1.id]

        with pytest.raises(ValidationError):
            await entity_service.create_comment(
                actor,
                TaskCommentCreate(
                    parent_id=task.id,
                    parent_model=EntityType.ROUTINE_TASK,
                    comment="@outsider",
                    mention_ids=[world.manager_b1.id],
                ),
            )

    async def test_comment_in_other_department(self, entity_service, db_session, world):
        task = await TaskFactory.routine(db_session, world.dept_a2, world.manager_a2)

        with pytest.raises(ScopeCeilingError):
            await entity_service.create_comment(
                world.actor("user_a1"),
                TaskCommentCreate(parent_id=task.id, parent_model=EntityType.ROUTINE_TASK, comment="Hi"),
            )

    async def test_create_attachment_on_comment(self, entity_service, dispatcher, db_session, world):
        task = await TaskFactory.routine(db_session, world.dept_a1, world.manager_a1)
        comment = await CommentFactory.create(db_session, task, world.manager_a1)

        attachment = await entity_service.create_attachment(
            world.actor("manager_a1"),
            AttachmentCreate(
                parent_id=comment.id,
                parent_model=EntityType.TASK_COMMENT,
                filename="leak.jpg",
                file_url="https://files.example.com/leak.jpg",
                file_type=AttachmentType.IMAGE,
                file_size=2048,
            ),
        )

        assert attachment.uploaded_by == world.manager_a1.id
        assert attachment.department_id == world.dept_a1.id
        assert dispatcher.names == ["attachment:created"]


class TestTenancyResources:
    """Departments, vendors and materials."""

    async def test_create_department(self, entity_service, dispatcher, world):
        department = await entity_service.create_department(
            world.actor("admin_a"), DepartmentCreate(name="Logistics")
        )

        assert department.organization_id == world.org_a.id
        assert dispatcher.names == ["department:created"]

    async def test_duplicate_department_name(self, entity_service, dispatcher, world):
        with pytest.raises(ResourceAlreadyExistsError):
            await entity_service.create_department(
                world.actor("admin_a"), DepartmentCreate(name="Maintenance")
            )
        assert dispatcher.events == []

    async def test_department_in_other_organization(self, entity_service, world):
        with pytest.raises(ScopeCeilingError):
            await entity_service.create_department(
                world.actor("admin_a"),
                DepartmentCreate(name="Logistics", organization_id=world.org_b.id),
            )

    async def test_manager_cannot_create_department(self, entity_service, world):
        with pytest.raises(AuthorizationError):
            await entity_service.create_department(
                world.actor("manager_a1"), DepartmentCreate(name="Logistics")
            )

    async def test_create_vendor(self, entity_service, dispatcher, world):
        vendor = await entity_service.create_vendor(
            world.actor("manager_a1"), VendorCreate(name="Parts Co", contact_person="Abebe")
        )

        assert vendor.department_id == world.dept_a1.id
        assert vendor.organization_id == world.org_a.id
        assert vendor.created_by == world.manager_a1.id
        assert dispatcher.names == ["vendor:created"]

    async def test_user_cannot_create_vendor(self, entity_service, world):
        with pytest.raises(AuthorizationError):
            await entity_service.create_vendor(world.actor("user_a1"), VendorCreate(name="Parts Co"))

    async def test_create_material(self, entity_service, fetch, world):
        material = await entity_service.create_material(
            world.actor("admin_a"),
            MaterialCreate(name="Copper wire", unit_type="m", price=Decimal("4.75"), department_id=world.dept_a2.id),
        )

        stored = await fetch(Material, material.id)
        assert stored.price == Decimal("4.75")
        assert stored.department_id == world.dept_a2.id

    async def test_create_department_with_head(self, entity_service, fetch, world):
        department = await entity_service.create_department(
            world.actor("admin_a"), DepartmentCreate(name="Logistics", hod_id=world.manager_a2.id)
        )

        assert (await fetch(Department, department.id)).hod_id == world.manager_a2.id
        assert (await fetch(User, world.manager_a2.id)).is_hod is True

    async def test_head_from_other_organization(self, entity_service, dispatcher, world):
        with pytest.raises(ValidationError) as exc_info:
            await entity_service.create_department(
                world.actor("admin_a"), DepartmentCreate(name="Logistics", hod_id=world.manager_b1.id)
            )

        assert exc_info.value.context["field"] == "hod_id"
        assert dispatcher.events == []


class LockRecordingEngine(CascadeEngine):
    """Cascade engine that records the row lock of every load."""

    def __init__(self):
        self.loads = []

    async def load(self, session, entity_type, entity_id, lock=None):
        self.loads.append((EntityType(entity_type), entity_id, lock))
        return await super().load(session, entity_type, entity_id, lock)


class TestParentLocks:
    """
    Parents are read under a share lock inside the write transaction.

    WHY: A cascade deleting the parent at the same time must either wait
    for the insert or make it fail, never leave an active orphan.
    """

    @pytest.fixture
    def engine(self):
        return LockRecordingEngine()

    @pytest.fixture
    def service(self, session_factory, resolver, coordinator, dispatcher, engine):
        return EntityService(session_factory, resolver, coordinator, dispatcher, cascade=engine)

    async def test_comment_locks_its_task(self, service, engine, db_session, world):
        task = await TaskFactory.routine(db_session, world.dept_a1, world.manager_a1)

        await service.create_comment(
            world.actor("user_a1"),
            TaskCommentCreate(parent_id=task.id, parent_model=EntityType.ROUTINE_TASK, comment="On it"),
        )

        assert engine.loads[0] == (EntityType.ROUTINE_TASK, task.id, RowLock.SHARE)

    async def test_attachment_locks_its_comment(self, service, engine, db_session, world):
        task = await TaskFactory.routine(db_session, world.dept_a1, world.manager_a1)
        comment = await CommentFactory.create(db_session, task, world.manager_a1)

        await service.create_attachment(
            world.actor("manager_a1"),
            AttachmentCreate(
                parent_id=comment.id,
                parent_model=EntityType.TASK_COMMENT,
                filename="gauge.jpg",
                file_url="https://files.example.com/gauge.jpg",
                file_type=AttachmentType.IMAGE,
                file_size=1024,
            ),
        )

        assert (EntityType.TASK_COMMENT, comment.id, RowLock.SHARE) in engine.loads

    async def test_department_locks_organization_and_head(self, service, engine, world):
        await service.create_department(
            world.actor("admin_a"), DepartmentCreate(name="Logistics", hod_id=world.manager_a1.id)
        )

        assert engine.loads == [
            (EntityType.ORGANIZATION, world.org_a.id, RowLock.SHARE),
            (EntityType.USER, world.manager_a1.id, RowLock.SHARE),
        ]
