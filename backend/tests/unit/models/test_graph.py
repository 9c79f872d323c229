"""
Tests for the entity graph edge table.

WHY: The cascade engine walks exactly these edges. A missing edge means a
child that survives its parent's deletion.
"""

import pytest

from worktrack.models.entity_types import EntityType, ResourceType, TASK_TYPES, resource_type_for
from worktrack.models.graph import (
    CASCADE_GRAPH,
    PARENT_EDGES,
    allowed_parent_types,
    child_types_of,
    entity_type_of,
    model_for,
    parent_ref_of,
)
from worktrack.models.organization import Organization
from worktrack.models.department import Department
from worktrack.models.task import AssignedTask, ProjectTask, RoutineTask
from worktrack.models.task_activity import TaskActivity
from worktrack.models.task_comment import TaskComment
from worktrack.models.user import User


def _children(entity_type):
    return [edge.child_type for edge in child_types_of(entity_type)]


class TestEdgeTable:
    def test_every_entity_type_is_a_node(self):
        assert set(CASCADE_GRAPH) == set(EntityType)
        assert set(PARENT_EDGES) == set(EntityType)

    def test_organization_is_the_only_root(self):
        roots = [t for t, edge in PARENT_EDGES.items() if edge is None]
        assert roots == [EntityType.ORGANIZATION]

    def test_department_children(self):
        assert _children(EntityType.DEPARTMENT) == [
            EntityType.USER,
            EntityType.VENDOR,
            EntityType.MATERIAL,
            EntityType.PROJECT_TASK,
            EntityType.ROUTINE_TASK,
            EntityType.ASSIGNED_TASK,
        ]

    def test_routine_task_has_no_activities(self):
        """
        Test that routine tasks only own comments and attachments.

        WHY: Activities are logged against project and assigned tasks only.
        """
        assert EntityType.TASK_ACTIVITY not in _children(EntityType.ROUTINE_TASK)
        assert EntityType.TASK_ACTIVITY in _children(EntityType.PROJECT_TASK)
        assert EntityType.TASK_ACTIVITY in _children(EntityType.ASSIGNED_TASK)

    def test_comments_nest(self):
        assert EntityType.TASK_COMMENT in _children(EntityType.TASK_COMMENT)

    @pytest.mark.parametrize("leaf", [EntityType.USER, EntityType.VENDOR, EntityType.MATERIAL, EntityType.ATTACHMENT])
    def test_leaves(self, leaf):
        assert child_types_of(leaf) == ()

    def test_polymorphic_edges_carry_the_parent_discriminator(self):
        for parent_type, edges in CASCADE_GRAPH.items():
            for edge in edges:
                if edge.foreign_key == "parent_id":
                    assert edge.discriminator == parent_type
                else:
                    assert edge.discriminator is None

    def test_allowed_parent_types(self):
        assert set(allowed_parent_types(EntityType.TASK_ACTIVITY)) == {
            EntityType.PROJECT_TASK,
            EntityType.ASSIGNED_TASK,
        }
        assert set(allowed_parent_types(EntityType.ATTACHMENT)) == set(TASK_TYPES) | {
            EntityType.TASK_ACTIVITY,
            EntityType.TASK_COMMENT,
        }
        assert allowed_parent_types(EntityType.ORGANIZATION) == ()


class TestDocumentHelpers:
    def test_model_for(self):
        assert model_for(EntityType.PROJECT_TASK) is ProjectTask
        assert model_for("TaskComment") is TaskComment

    def test_entity_type_of_task_variants(self):
        assert entity_type_of(ProjectTask()) == EntityType.PROJECT_TASK
        assert entity_type_of(RoutineTask()) == EntityType.ROUTINE_TASK
        assert entity_type_of(AssignedTask()) == EntityType.ASSIGNED_TASK

    def test_entity_type_of_other_models(self):
        assert entity_type_of(Organization()) == EntityType.ORGANIZATION
        assert entity_type_of(User()) == EntityType.USER

    def test_entity_type_of_rejects_foreign_objects(self):
        with pytest.raises(TypeError):
            entity_type_of(object())

    def test_parent_ref_of_direct_edge(self):
        department = Department(id=3, organization_id=1, name="Ops")
        assert parent_ref_of(EntityType.DEPARTMENT, department) == (EntityType.ORGANIZATION, 1)

    def test_parent_ref_of_polymorphic_edge(self):
        activity = TaskActivity(id=8, parent_id=5, parent_model=EntityType.ASSIGNED_TASK)
        assert parent_ref_of(EntityType.TASK_ACTIVITY, activity) == (EntityType.ASSIGNED_TASK, 5)

        reply = TaskComment(id=9, parent_id=4, parent_model=EntityType.TASK_COMMENT)
        assert parent_ref_of(EntityType.TASK_COMMENT, reply) == (EntityType.TASK_COMMENT, 4)

    def test_parent_ref_of_root(self):
        assert parent_ref_of(EntityType.ORGANIZATION, Organization(id=1)) is None


class TestResourceTypes:
    def test_task_variants_are_authorized_as_task(self):
        for task_type in TASK_TYPES:
            assert resource_type_for(task_type) == ResourceType.TASK

    def test_other_types_map_one_to_one(self):
        assert resource_type_for(EntityType.TASK_COMMENT) == ResourceType.TASK_COMMENT
        assert resource_type_for("Vendor") == ResourceType.VENDOR
