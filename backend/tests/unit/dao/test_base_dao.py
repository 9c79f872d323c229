"""
Tests for BaseDAO.

WHY: The DAO is where soft-deleted rows become invisible by default.
Every service read relies on this, so the visibility flags and the
organization check are tested directly.
"""

import pytest
import pytest_asyncio

from worktrack.dao.base import BaseDAO
from worktrack.models.organization import Organization
from worktrack.models.task import BaseTask, ProjectTask, RoutineTask
from worktrack.models.vendor import Vendor

from tests.factories import TaskFactory, VendorFactory


@pytest_asyncio.fixture
async def vendors(db_session, world):
    """Two active vendors and one deleted vendor in dept_a1, one vendor in org_b."""
    active = await VendorFactory.create(db_session, world.dept_a1, name="Active Parts")
    spare = await VendorFactory.create(db_session, world.dept_a1, name="Spare Parts")
    gone = await VendorFactory.create(db_session, world.dept_a1, name="Gone Parts")
    foreign = await VendorFactory.create(db_session, world.dept_b1, name="Foreign Parts")

    gone.mark_deleted(world.manager_a1.id)
    await db_session.commit()
    return active, spare, gone, foreign


class TestVisibility:
    """Soft-deleted rows are hidden unless requested."""

    async def test_get_by_id(self, db_session, vendors):
        active, _, gone, _ = vendors
        dao = BaseDAO(Vendor, db_session)

        assert (await dao.get_by_id(active.id)).name == "Active Parts"
        assert await dao.get_by_id(gone.id) is None
        assert (await dao.get_by_id(gone.id, with_deleted=True)).is_deleted
        assert await dao.get_by_id(9999, with_deleted=True) is None

    async def test_get_all(self, db_session, world, vendors):
        active, spare, gone, _ = vendors
        dao = BaseDAO(Vendor, db_session)

        assert [v.id for v in await dao.get_all(department_id=world.dept_a1.id)] == [active.id, spare.id]
        assert [v.id for v in await dao.get_all(only_deleted=True)] == [gone.id]
        assert len(await dao.get_all(with_deleted=True, department_id=world.dept_a1.id)) == 3

    async def test_get_all_pagination(self, db_session, world, vendors):
        _, spare, _, _ = vendors
        dao = BaseDAO(Vendor, db_session)

        page = await dao.get_all(skip=1, limit=1, organization_id=world.org_a.id)

        assert [v.id for v in page] == [spare.id]

    async def test_get_all_with_predicate(self, db_session, vendors):
        active, _, _, _ = vendors
        dao = BaseDAO(Vendor, db_session)

        result = await dao.get_all(where=Vendor.name.like("Active%"))

        assert [v.id for v in result] == [active.id]

    async def test_unknown_filters_are_ignored(self, db_session, vendors):
        dao = BaseDAO(Vendor, db_session)
        assert len(await dao.get_all(not_a_column=1)) == 3

    async def test_count(self, db_session, world, vendors):
        dao = BaseDAO(Vendor, db_session)

        assert await dao.count(organization_id=world.org_a.id) == 2
        assert await dao.count(with_deleted=True, organization_id=world.org_a.id) == 3
        assert await dao.count(only_deleted=True) == 1

    async def test_get_many_by_ids(self, db_session, vendors):
        active, spare, gone, _ = vendors
        dao = BaseDAO(Vendor, db_session)
        ids = [active.id, spare.id, gone.id, 9999]

        assert {v.id for v in await dao.get_many_by_ids(ids)} == {active.id, spare.id}
        assert len(await dao.get_many_by_ids(ids, with_deleted=True)) == 3
        assert await dao.get_many_by_ids([]) == []


class TestOrganizationScoping:
    """get_by_id_and_org hides other tenants' rows."""

    async def test_same_organization(self, db_session, world, vendors):
        active, _, _, _ = vendors
        dao = BaseDAO(Vendor, db_session)

        assert (await dao.get_by_id_and_org(active.id, world.org_a.id)).id == active.id

    async def test_other_organization_looks_missing(self, db_session, world, vendors):
        _, _, _, foreign = vendors
        dao = BaseDAO(Vendor, db_session)

        assert await dao.get_by_id_and_org(foreign.id, world.org_a.id) is None

    async def test_deleted_hidden_by_default(self, db_session, world, vendors):
        _, _, gone, _ = vendors
        dao = BaseDAO(Vendor, db_session)

        assert await dao.get_by_id_and_org(gone.id, world.org_a.id) is None
        assert await dao.get_by_id_and_org(gone.id, world.org_a.id, with_deleted=True) is not None

    async def test_requires_tenant_model(self, db_session, world):
        with pytest.raises(AttributeError):
            await BaseDAO(Organization, db_session).get_by_id_and_org(world.org_a.id, world.org_a.id)


class TestPolymorphicTasks:
    """Task variants share one table."""

    async def test_base_dao_returns_variants(self, db_session, world):
        vendor = await VendorFactory.create(db_session, world.dept_a1)
        project = await TaskFactory.project(db_session, world.dept_a1, world.manager_a1, vendor)
        routine = await TaskFactory.routine(db_session, world.dept_a1, world.manager_a1)

        tasks = await BaseDAO(BaseTask, db_session).get_all()

        assert [type(t) for t in tasks] == [ProjectTask, RoutineTask]
        assert [t.id for t in tasks] == [project.id, routine.id]

    async def test_variant_dao_filters_by_type(self, db_session, world):
        routine = await TaskFactory.routine(db_session, world.dept_a1, world.manager_a1)

        assert await BaseDAO(ProjectTask, db_session).get_by_id(routine.id) is None
        assert (await BaseDAO(RoutineTask, db_session).get_by_id(routine.id)).id == routine.id
